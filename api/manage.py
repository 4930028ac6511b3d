"""
Manage API Endpoints（不需要登入）

持有管理連結的人可以查看活動並新增啤酒；{code} 是 manage 短代碼或 manage_token
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database import get_db
from schemas import BeerCreate, BeerResponse, ManageResponse
from core.event_manager import EventManager
from api.presenters import beer_response

router = APIRouter(prefix="/api/manage", tags=["manage"])


@router.get("/{code}", response_model=ManageResponse)
def get_manage_page(code: str, db: Session = Depends(get_db)):
    event = EventManager.get_event_for_manage(db, code)
    return ManageResponse(
        event_name=event.name,
        date=event.date,
        beers=[beer_response(beer) for beer in EventManager.list_beers(db, event.id)]
    )


@router.post("/{code}/beers", response_model=BeerResponse, status_code=status.HTTP_201_CREATED)
def add_beer(code: str, data: BeerCreate, db: Session = Depends(get_db)):
    """
    透過管理連結新增啤酒

    不回傳釀酒師代碼：釀酒師連結只在後台總覽顯示
    """
    beer = EventManager.add_beer_via_manage(db, code, data.name, brewer=data.brewer, style=data.style)
    return beer_response(beer)
