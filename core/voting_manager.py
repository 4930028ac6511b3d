"""
Voting Manager：投票者端的所有操作（不需要登入，全部透過短代碼）

職責：
1. 解析 (活動代碼, 投票者代碼) 並在第一次造訪時建立 Voter
2. 投票：檢查揭曉階段、分數範圍與每位投票者的點數預算
3. 回饋：每位投票者對每支啤酒一筆，可選擇分享給釀酒師
4. 釀酒師頁面：只顯示選擇分享的回饋
5. 公開結果頁

所有無效代碼都回 NotFound，不洩漏資源是否存在
"""
from dataclasses import dataclass
from typing import Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import Beer, BrewerToken, Event, Feedback, ShortCodeType, Vote, Voter
from core.event_manager import EventManager
from core.exceptions import Conflict, Invalid, NotFound
from core.locks import with_event_lock, with_voter_lock
from core.short_codes import ShortCodeResolver
from database import settings, transactional
from services.reveal_phase_service import results_visible, voting_open
from services.tally_service import RankedBeer, TallyStats

logger = logging.getLogger(__name__)


@dataclass
class Ballot:
    """投票頁需要的資料"""
    event: Event
    voter: Voter
    beers: List[Beer]
    votes: Dict[UUID, int]
    feedback: Dict[UUID, Feedback]

    @property
    def points_used(self) -> int:
        return sum(self.votes.values())

    @property
    def points_remaining(self) -> int:
        return max(self.event.max_points - self.points_used, 0)


@dataclass
class PublicResults:
    event: Event
    stats: TallyStats
    # stage 0 時為 None（只公開統計數字）
    ranking: Optional[List[RankedBeer]]
    registered_voters: int


class VotingManager:
    """投票流程管理器"""

    # ============ 投票者 ============

    @staticmethod
    def _insert_voter(db: Session, voter_id: UUID, event_id: UUID) -> Optional[Voter]:
        """
        在 SAVEPOINT 內建立 Voter

        返回：
            新建立的 Voter；若同一個 UUID 已被其他 transaction 寫入則回傳 None
        """
        voter = Voter(id=voter_id, event_id=event_id)
        try:
            with db.begin_nested():
                db.add(voter)
        except IntegrityError:
            logger.info(f"Voter {voter_id} was registered concurrently, fetching existing row")
            return None
        return voter

    @staticmethod
    def _get_or_create_voter(db: Session, voter_id: UUID, event_id: UUID) -> Voter:
        """
        insert-or-fetch：同一個投票者代碼同時被開兩次，只會有一筆 Voter

        流程：
        1. 先查；存在就直接用
        2. 不存在就 INSERT；撞到主鍵代表別人剛寫入，重新查一次（只重試一次）

        異常：
            NotFound: Voter 屬於其他活動
            Conflict: 重試後仍無法取得
        """
        for _ in range(2):
            voter = db.query(Voter).filter(Voter.id == voter_id).first()
            if voter is None:
                voter = VotingManager._insert_voter(db, voter_id, event_id)
                if voter is None:
                    continue
                logger.info(f"Registered voter {voter_id} for event {event_id}")

            if voter.event_id != event_id:
                raise NotFound("Voter")
            return voter

        raise Conflict(f"Could not register voter {voter_id}")

    @staticmethod
    def resolve_ballot_codes(db: Session, event_code: str, voter_code: str):
        """
        解析投票連結上的兩個代碼

        返回：
            (Event, voter_id)

        異常：
            NotFound: 任一代碼無效，或投票者代碼不屬於這個活動
        """
        event = EventManager.get_event_by_code(db, event_code)

        voter_row = ShortCodeResolver.lookup(db, voter_code, ShortCodeType.VOTER)
        if voter_row is None:
            raise NotFound("Voter")
        if voter_row.event_id is not None and voter_row.event_id != event.id:
            raise NotFound("Voter")
        return event, voter_row.target_id

    @staticmethod
    @transactional
    def register_voter(db: Session, event_code: str, voter_code: str) -> Voter:
        """
        投票者第一次造訪時建立 Voter（重複呼叫結果相同）

        異常：
            NotFound: 代碼無效
        """
        event, voter_id = VotingManager.resolve_ballot_codes(db, event_code, voter_code)
        return VotingManager._get_or_create_voter(db, voter_id, event.id)

    @staticmethod
    def _load_ballot(db: Session, event: Event, voter: Voter) -> Ballot:
        votes = {
            vote.beer_id: vote.points
            for vote in db.query(Vote).filter(Vote.voter_id == voter.id).all()
        }
        feedback = {
            row.beer_id: row
            for row in db.query(Feedback).filter(Feedback.voter_id == voter.id).all()
        }
        return Ballot(
            event=event,
            voter=voter,
            beers=EventManager.list_beers(db, event.id),
            votes=votes,
            feedback=feedback
        )

    @staticmethod
    def ballot(db: Session, event_code: str, voter_code: str) -> Ballot:
        """
        取得投票頁資料（第一次造訪會建立 Voter）

        返回：
            Ballot：活動、投票者、啤酒清單、自己目前的分數與回饋
        """
        voter = VotingManager.register_voter(db, event_code, voter_code)
        return VotingManager._load_ballot(db, voter.event, voter)

    # ============ 投票 ============

    @staticmethod
    @transactional
    def cast_vote(
        db: Session,
        event_code: str,
        voter_code: str,
        beer_id: UUID,
        points: int
    ) -> Ballot:
        """
        對一支啤酒投票（重複投票會覆蓋前一次的分數）

        流程：
        1. 解析代碼，以共享鎖重新讀取活動
        2. 檢查投票仍開放（reveal_stage == 0）
        3. 檢查分數範圍 0..max_points
        4. 建立或取得 Voter 並鎖定，計算其他啤酒已用掉的點數，確認總和不超過 max_points
        5. upsert Vote；points == 0 代表收回選票，直接刪除

        異常：
            NotFound: 代碼無效，或啤酒不屬於此活動
            Conflict: 已開始揭曉，投票關閉
            Invalid: 分數超出範圍或超過預算
        """
        event, voter_id = VotingManager.resolve_ballot_codes(db, event_code, voter_code)
        event = with_event_lock(event.id, db, shared=True).first()

        if not voting_open(event.reveal_stage):
            raise Conflict("Voting is closed for this event")

        if isinstance(points, bool) or not isinstance(points, int):
            raise Invalid("Points must be a whole number")
        if points < 0 or points > event.max_points:
            raise Invalid(f"Points must be between 0 and {event.max_points}")

        EventManager.get_beer(db, event.id, beer_id)

        VotingManager._get_or_create_voter(db, voter_id, event.id)
        voter = with_voter_lock(voter_id, db).first()

        spent_elsewhere = db.query(func.coalesce(func.sum(Vote.points), 0)).filter(
            Vote.voter_id == voter.id,
            Vote.beer_id != beer_id
        ).scalar()
        if spent_elsewhere + points > event.max_points:
            raise Invalid(
                f"Not enough points left: {event.max_points - spent_elsewhere} remaining"
            )

        vote = db.query(Vote).filter(
            Vote.voter_id == voter.id,
            Vote.beer_id == beer_id
        ).first()

        if points == 0:
            if vote:
                db.delete(vote)
                logger.info(f"Voter {voter.id} withdrew vote on beer {beer_id}")
        elif vote:
            vote.points = points
        else:
            db.add(Vote(voter_id=voter.id, beer_id=beer_id, points=points))

        db.flush()
        logger.info(f"Voter {voter.id} gave {points} point(s) to beer {beer_id}")
        return VotingManager._load_ballot(db, event, voter)

    # ============ 回饋 ============

    @staticmethod
    @transactional
    def submit_feedback(
        db: Session,
        event_code: str,
        voter_code: str,
        beer_id: UUID,
        notes: Optional[str],
        share_with_brewer: bool = False
    ) -> Feedback:
        """
        新增或更新對一支啤酒的回饋

        回饋不受揭曉階段限制；典禮後仍可補寫給釀酒師

        異常：
            NotFound: 代碼無效，或啤酒不屬於此活動
            Invalid: 內容過長
        """
        event, voter_id = VotingManager.resolve_ballot_codes(db, event_code, voter_code)

        notes = (notes or "").strip() or None
        if notes and len(notes) > settings.feedback_max_length:
            raise Invalid(f"Feedback must be at most {settings.feedback_max_length} characters")

        EventManager.get_beer(db, event.id, beer_id)
        voter = VotingManager._get_or_create_voter(db, voter_id, event.id)

        feedback = db.query(Feedback).filter(
            Feedback.voter_id == voter.id,
            Feedback.beer_id == beer_id
        ).first()
        if feedback:
            feedback.notes = notes
            feedback.share_with_brewer = share_with_brewer
        else:
            feedback = Feedback(
                voter_id=voter.id,
                beer_id=beer_id,
                notes=notes,
                share_with_brewer=share_with_brewer
            )
            db.add(feedback)

        db.flush()
        logger.info(f"Voter {voter.id} saved feedback on beer {beer_id} (shared={share_with_brewer})")
        return feedback

    # ============ 釀酒師 ============

    @staticmethod
    def _beer_for_brewer(db: Session, reference: str) -> Beer:
        beer_id = ShortCodeResolver.resolve(db, reference, ShortCodeType.BREWER)
        if beer_id is None:
            try:
                token_id = UUID(reference)
            except (TypeError, ValueError):
                raise NotFound("Beer")
            token = db.query(BrewerToken).filter(BrewerToken.id == token_id).first()
            if token is None:
                raise NotFound("Beer")
            beer_id = token.beer_id

        beer = db.query(Beer).filter(Beer.id == beer_id).first()
        if beer is None:
            raise NotFound("Beer")
        return beer

    @staticmethod
    def brewer_view(db: Session, reference: str):
        """
        釀酒師頁面：一支啤酒和投票者選擇分享的回饋

        參數：
            reference: 釀酒師短代碼，或 BrewerToken 的 UUID

        返回：
            (Beer, [Feedback, ...])，只包含 share_with_brewer 且有內容的回饋
        """
        beer = VotingManager._beer_for_brewer(db, reference)
        feedback = db.query(Feedback).filter(
            Feedback.beer_id == beer.id,
            Feedback.share_with_brewer.is_(True),
            Feedback.notes.isnot(None)
        ).order_by(Feedback.created_at).all()
        return beer, feedback

    # ============ 公開結果 ============

    @staticmethod
    def public_results(db: Session, event_code: str) -> PublicResults:
        """
        公開結果頁

        stage 0 只回傳統計數字，排名要等揭曉開始才公開

        異常：
            NotFound: 活動代碼無效
        """
        event = EventManager.get_event_by_code(db, event_code)
        result = EventManager.tally_event(db, event.id)
        return PublicResults(
            event=event,
            stats=result.stats,
            ranking=result.ranking if results_visible(event.reveal_stage) else None,
            registered_voters=EventManager.registered_voter_count(db, event.id)
        )
