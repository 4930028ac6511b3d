"""
揭曉階段服務：判斷 reveal_stage 代表的意義

reveal_stage 的設計：
- Stage 0：投票進行中，結果不公開
- Stage 1-3：逐步揭曉（如何揭曉由前端渲染決定，例如先公布名次較後的啤酒）
- Stage 4：全部揭曉，典禮結束
"""
from models import MAX_REVEAL_STAGE


def voting_open(stage: int) -> bool:
    """
    檢查是否還能投票或修改選票

    用途：
        VotingManager 投票前檢查；一旦開始揭曉就鎖住選票
    """
    return stage == 0


def results_visible(stage: int) -> bool:
    """
    檢查公開結果頁是否可以顯示排名

    範例：
        results_visible(0) -> False
        results_visible(2) -> True
    """
    return stage > 0


def ceremony_complete(stage: int) -> bool:
    return stage >= MAX_REVEAL_STAGE
