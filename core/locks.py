"""
並發控制工具

提供 Database-level 的鎖定機制，防止競態條件（Race Condition）

主要使用 PostgreSQL 的 SELECT ... FOR UPDATE 來實現悲觀鎖（Pessimistic Locking）
SQLite 不支援 FOR UPDATE，SQLAlchemy 會直接省略，寫入仍由整個資料庫鎖保護
"""
from sqlalchemy.orm import Session, Query
from uuid import UUID

from models import Event, Voter


def with_event_lock(event_id: UUID, db: Session, shared: bool = False) -> Query:
    """
    鎖定一個 Event（行級鎖）

    使用場景：
    - 前進 / 重設 reveal_stage 時
    - 修改 max_points 時
    - 投票時用 shared=True（FOR SHARE）：多張選票可以並行，
      但會和上面兩種修改互斥，揭曉開始後不會再有選票寫入

    範例：
        event = with_event_lock(event_id, db).first()
        if not event:
            raise NotFound("Event")
        event.reveal_stage += 1

    注意：
        - nowait=False 表示如果鎖被佔用，會等待
        - 必須在 transaction 內使用（確保有 commit 或 rollback）
        - populate_existing：同一個 session 先前讀過的舊值會被鎖定後的最新值覆蓋
    """
    return db.query(Event).filter(
        Event.id == event_id
    ).with_for_update(read=shared, nowait=False).populate_existing()


def with_voter_lock(voter_id: UUID, db: Session) -> Query:
    """
    鎖定一個 Voter

    使用場景：
    - 投票時檢查點數預算，避免同一位投票者並發送出兩張票而超過上限
    """
    return db.query(Voter).filter(
        Voter.id == voter_id
    ).with_for_update(nowait=False).populate_existing()
