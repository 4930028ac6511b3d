"""
計票服務

職責：
- 把投票資料彙整成排名結果
- 純函式，不碰資料庫；呼叫端自行載入啤酒與投票再傳進來

使用者：公開結果頁、管理後台
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set
from uuid import UUID


@dataclass
class RankedBeer:
    """
    結果表中的一列

    欄位：
        beer_id: 啤酒 UUID
        name / brewer / style: 從啤酒複製過來，方便顯示
        total_points: 所有投票的分數總和
        voter_count: 給過分數的不同投票者數
        rank: 競賽式排名（同分同名次，下一個名次跳到實際位置）
        tied: 是否有其他啤酒同名次
    """
    beer_id: UUID
    name: str
    brewer: str
    style: Optional[str]
    total_points: int = 0
    voter_count: int = 0
    rank: int = 0
    tied: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "beer_id": str(self.beer_id),
            "name": self.name,
            "brewer": self.brewer,
            "style": self.style,
            "total_points": self.total_points,
            "voter_count": self.voter_count,
            "rank": self.rank,
            "tied": self.tied,
        }


@dataclass
class TallyStats:
    beer_count: int = 0
    voter_count: int = 0
    total_points_cast: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "beer_count": self.beer_count,
            "voter_count": self.voter_count,
            "total_points_cast": self.total_points_cast,
        }


@dataclass
class TallyResult:
    ranking: List[RankedBeer] = field(default_factory=list)
    stats: TallyStats = field(default_factory=TallyStats)

    def get_rank(self, beer_id: UUID) -> Optional[int]:
        """取得某支啤酒的名次；不在這次計票中則回傳 None"""
        for entry in self.ranking:
            if entry.beer_id == beer_id:
                return entry.rank
        return None


def assign_ranks(entries: List[RankedBeer]) -> List[RankedBeer]:
    """
    為已由高到低排序的結果指定名次

    例：分數 [10, 10, 7] 得到名次 [1, 1, 3]
    同分組取第一個成員的位置，下一個不同分數從自己的位置繼續

    參數：
        entries: 已排序的 RankedBeer

    返回：
        同一個 list（rank 與 tied 已填好）
    """
    for position, entry in enumerate(entries, start=1):
        if position > 1 and entry.total_points == entries[position - 2].total_points:
            entry.rank = entries[position - 2].rank
        else:
            entry.rank = position

    rank_sizes: Dict[int, int] = {}
    for entry in entries:
        rank_sizes[entry.rank] = rank_sizes.get(entry.rank, 0) + 1
    for entry in entries:
        entry.tied = rank_sizes[entry.rank] > 1

    return entries


def tally(beers: Iterable[Any], votes: Iterable[Any]) -> TallyResult:
    """
    計票

    參數：
        beers: 具有 id, name, brewer, style 的物件（ORM Beer 即可）
        votes: 具有 beer_id, voter_id, points 的物件

    返回：
        TallyResult：每支啤酒剛好出現一次，沒人投的也列出（0 分、0 人）
        不在 beers 裡的投票會被忽略
    """
    entries: Dict[UUID, RankedBeer] = {}
    for beer in beers:
        entries[beer.id] = RankedBeer(
            beer_id=beer.id,
            name=beer.name,
            brewer=beer.brewer,
            style=beer.style,
        )

    voters_by_beer: Dict[UUID, Set[UUID]] = {beer_id: set() for beer_id in entries}
    all_voters: Set[UUID] = set()
    total_points_cast = 0

    for vote in votes:
        entry = entries.get(vote.beer_id)
        if entry is None:
            continue
        entry.total_points += vote.points
        voters_by_beer[vote.beer_id].add(vote.voter_id)
        all_voters.add(vote.voter_id)
        total_points_cast += vote.points

    for beer_id, voters in voters_by_beer.items():
        entries[beer_id].voter_count = len(voters)

    # 同分時依名稱、id 排序，輸出順序固定
    ordered = sorted(
        entries.values(),
        key=lambda e: (-e.total_points, e.name.lower(), str(e.beer_id))
    )

    return TallyResult(
        ranking=assign_ranks(ordered),
        stats=TallyStats(
            beer_count=len(entries),
            voter_count=len(all_voters),
            total_points_cast=total_points_cast,
        ),
    )
