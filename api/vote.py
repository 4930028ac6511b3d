"""
Vote API Endpoints（不需要登入）

投票連結：/api/vote/{event_code}/{voter_code}
兩個代碼任一無效，或投票者代碼屬於其他活動，一律回 404
"""
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from schemas import (
    BallotBeer,
    BallotResponse,
    FeedbackResponse,
    FeedbackSubmit,
    VoteSubmit
)
from core.voting_manager import Ballot, VotingManager
from services.reveal_phase_service import voting_open

router = APIRouter(prefix="/api/vote", tags=["vote"])


def _feedback_response(feedback) -> FeedbackResponse:
    return FeedbackResponse(
        beer_id=feedback.beer_id,
        notes=feedback.notes,
        share_with_brewer=feedback.share_with_brewer
    )


def _ballot_response(ballot: Ballot) -> BallotResponse:
    """
    組合投票頁資料

    盲測且投票仍開放時，只顯示「Beer #n」，不揭露名稱、釀酒師與風格
    """
    event = ballot.event
    hide_identity = event.blind_tasting and voting_open(event.reveal_stage)

    beers = []
    for position, beer in enumerate(ballot.beers, start=1):
        feedback = ballot.feedback.get(beer.id)
        beers.append(BallotBeer(
            id=beer.id,
            label=f"Beer #{position}" if hide_identity else beer.name,
            name=None if hide_identity else beer.name,
            brewer=None if hide_identity else beer.brewer,
            style=None if hide_identity else beer.style,
            points=ballot.votes.get(beer.id, 0),
            feedback=_feedback_response(feedback) if feedback else None
        ))

    return BallotResponse(
        event_name=event.name,
        max_points=event.max_points,
        points_used=ballot.points_used,
        points_remaining=ballot.points_remaining,
        voting_open=voting_open(event.reveal_stage),
        blind_tasting=event.blind_tasting,
        beers=beers
    )


@router.get("/{event_code}/{voter_code}", response_model=BallotResponse)
def get_ballot(event_code: str, voter_code: str, db: Session = Depends(get_db)):
    """
    取得投票頁

    第一次造訪時建立投票者記錄；同一個連結同時被開啟多次也只會有一筆
    """
    ballot = VotingManager.ballot(db, event_code, voter_code)
    return _ballot_response(ballot)


@router.put("/{event_code}/{voter_code}/beers/{beer_id}", response_model=BallotResponse)
def cast_vote(
    event_code: str,
    voter_code: str,
    beer_id: UUID,
    data: VoteSubmit,
    db: Session = Depends(get_db)
):
    """
    對一支啤酒給分（0 代表收回）

    錯誤：
    - 409：揭曉已開始，投票關閉
    - 400：分數超過單一上限或剩餘點數
    """
    ballot = VotingManager.cast_vote(db, event_code, voter_code, beer_id, data.points)
    return _ballot_response(ballot)


@router.put("/{event_code}/{voter_code}/beers/{beer_id}/feedback", response_model=FeedbackResponse)
def submit_feedback(
    event_code: str,
    voter_code: str,
    beer_id: UUID,
    data: FeedbackSubmit,
    db: Session = Depends(get_db)
):
    feedback = VotingManager.submit_feedback(
        db, event_code, voter_code, beer_id,
        data.notes,
        share_with_brewer=data.share_with_brewer
    )
    return _feedback_response(feedback)
