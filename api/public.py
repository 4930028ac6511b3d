"""
Public API Endpoints（不需要登入）

1. 公開結果頁：/api/results/{event_code}
2. 釀酒師頁面：/api/brewer/{brewer_code}
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from schemas import BrewerFeedback, BrewerResponse, PublicResultsResponse
from core.voting_manager import VotingManager
from api.presenters import ranking_response, stats_response

router = APIRouter(prefix="/api", tags=["public"])


@router.get("/results/{code}", response_model=PublicResultsResponse)
def get_results(code: str, db: Session = Depends(get_db)):
    """
    公開結果

    - stage 0：只有統計數字，ranking 為 null
    - stage 1-4：完整排名（前端依 reveal_stage 逐步顯示）
    """
    results = VotingManager.public_results(db, code)
    return PublicResultsResponse(
        event_name=results.event.name,
        reveal_stage=results.event.reveal_stage,
        results_visible=results.ranking is not None,
        ranking=ranking_response(results.ranking) if results.ranking is not None else None,
        stats=stats_response(results.stats, results.registered_voters)
    )


@router.get("/brewer/{code}", response_model=BrewerResponse)
def get_brewer_feedback(code: str, db: Session = Depends(get_db)):
    beer, feedback = VotingManager.brewer_view(db, code)
    return BrewerResponse(
        beer_name=beer.name,
        brewer=beer.brewer,
        style=beer.style,
        event_name=beer.event.name,
        feedback=[BrewerFeedback(notes=f.notes, created_at=f.created_at) for f in feedback]
    )
