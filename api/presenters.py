"""
ORM / tally 結果 → response schema 的轉換
"""
from typing import Dict, List, Optional
from uuid import UUID

from models import Beer
from schemas import BeerResponse, RankedBeerResponse, StatsResponse
from services.tally_service import RankedBeer, TallyStats


def beer_response(beer: Beer, brewer_codes: Optional[Dict[UUID, str]] = None) -> BeerResponse:
    return BeerResponse(
        id=beer.id,
        name=beer.name,
        brewer=beer.brewer,
        style=beer.style,
        brewer_code=(brewer_codes or {}).get(beer.id)
    )


def ranking_response(ranking: List[RankedBeer]) -> List[RankedBeerResponse]:
    return [RankedBeerResponse(**entry.to_dict()) for entry in ranking]


def stats_response(stats: TallyStats, registered_voters: int) -> StatsResponse:
    return StatsResponse(registered_voters=registered_voters, **stats.to_dict())
