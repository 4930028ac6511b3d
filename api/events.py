"""
Event API Endpoints（後台，需要登入）

職責：
1. 活動 CRUD 與後台總覽
2. 啤酒管理
3. 發放投票者代碼、補發遺失的短代碼
4. 揭曉典禮（advance / reset）
5. 活動管理員指派

路徑上的 {code} 是活動短代碼（或活動 UUID）；找不到回 404，不在 scope 內回 403
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database import get_db
from models import Event, ShortCodeType
from schemas import (
    AdminResponse,
    BeerCreate,
    BeerResponse,
    EventAdminAssign,
    EventCreate,
    EventDashboard,
    EventSummary,
    EventUpdate,
    RegenerateResponse,
    RevealResponse,
    VoterBatchRequest,
    VoterCodesResponse
)
from core.admin_manager import AdminManager
from core.event_manager import EventManager
from core.reveal_state_machine import RevealStateMachine
from core.scope import AdminContext
from core.short_codes import ShortCodeResolver
from services.reveal_phase_service import voting_open
from api.admins import admin_response
from api.deps import get_admin_context
from api.presenters import beer_response, ranking_response, stats_response

router = APIRouter(prefix="/api/events", tags=["events"])


def _summary(event: Event, event_code: Optional[str]) -> EventSummary:
    return EventSummary(
        id=event.id,
        organization_id=event.organization_id,
        name=event.name,
        date=event.date,
        max_points=event.max_points,
        blind_tasting=event.blind_tasting,
        reveal_stage=event.reveal_stage,
        event_code=event_code
    )


def _dashboard(db: Session, event: Event) -> EventDashboard:
    """
    後台總覽：活動設定、所有連結代碼、啤酒、即時排名

    管理員在揭曉前就能看到排名（公開頁面才受 reveal_stage 限制）
    """
    beers = EventManager.list_beers(db, event.id)
    brewer_codes = ShortCodeResolver.codes_for(db, ShortCodeType.BREWER, [b.id for b in beers])
    result = EventManager.tally_event(db, event.id)

    summary = _summary(event, ShortCodeResolver.code_for(db, ShortCodeType.EVENT, event.id))
    return EventDashboard(
        **summary.model_dump(),
        manage_code=ShortCodeResolver.code_for(db, ShortCodeType.MANAGE, event.id),
        manage_token=event.manage_token,
        beers=[beer_response(beer, brewer_codes) for beer in beers],
        ranking=ranking_response(result.ranking),
        stats=stats_response(result.stats, EventManager.registered_voter_count(db, event.id))
    )


# ============ 活動 ============

@router.get("", response_model=List[EventSummary])
def list_events(
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    """列出 scope 內的活動（新到舊）"""
    events = EventManager.list_events(db, ctx)
    codes = ShortCodeResolver.codes_for(db, ShortCodeType.EVENT, [e.id for e in events])
    return [_summary(event, codes.get(event.id)) for event in events]


@router.post("", response_model=EventDashboard, status_code=status.HTTP_201_CREATED)
def create_event(
    data: EventCreate,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    """
    建立活動

    流程：
    1. 建立 Event（所屬組織預設為操作者的組織）
    2. 產生 event 與 manage 短代碼

    注意：
        短代碼產生失敗不會讓建立失敗；總覽中代碼為 null 時可呼叫 codes/regenerate
    """
    event = EventManager.create_event(
        db, ctx, data.name,
        date=data.date,
        max_points=data.max_points,
        blind_tasting=data.blind_tasting,
        organization_id=data.organization_id
    )
    return _dashboard(db, event)


@router.get("/{code}", response_model=EventDashboard)
def get_event(
    code: str,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    event = EventManager.get_admin_event(db, ctx, code)
    return _dashboard(db, event)


@router.patch("/{code}", response_model=EventDashboard)
def update_event(
    code: str,
    data: EventUpdate,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    event = EventManager.get_admin_event(db, ctx, code)
    event = EventManager.update_event(
        db, ctx, event.id,
        name=data.name,
        date=data.date,
        max_points=data.max_points,
        blind_tasting=data.blind_tasting
    )
    return _dashboard(db, event)


@router.delete("/{code}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(
    code: str,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    """刪除活動（啤酒、投票者、選票、回饋、短代碼一併刪除）"""
    event = EventManager.get_admin_event(db, ctx, code)
    EventManager.delete_event(db, ctx, event.id)


# ============ 啤酒 ============

@router.post("/{code}/beers", response_model=BeerResponse, status_code=status.HTTP_201_CREATED)
def add_beer(
    code: str,
    data: BeerCreate,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    event = EventManager.get_admin_event(db, ctx, code)
    beer = EventManager.add_beer(db, ctx, event.id, data.name, brewer=data.brewer, style=data.style)
    return beer_response(beer, {beer.id: ShortCodeResolver.code_for(db, ShortCodeType.BREWER, beer.id)})


@router.delete("/{code}/beers/{beer_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_beer(
    code: str,
    beer_id: UUID,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    event = EventManager.get_admin_event(db, ctx, code)
    EventManager.delete_beer(db, ctx, event.id, beer_id)


# ============ 短代碼 ============

@router.post("/{code}/voters", response_model=VoterCodesResponse, status_code=status.HTTP_201_CREATED)
def provision_voters(
    code: str,
    data: VoterBatchRequest,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    """
    批次產生投票者代碼

    返回的每個代碼搭配活動代碼組成投票連結：/vote/{event_code}/{voter_code}
    """
    event = EventManager.get_admin_event(db, ctx, code)
    codes = EventManager.provision_voters(db, ctx, event.id, data.count)
    return VoterCodesResponse(
        event_code=ShortCodeResolver.code_for(db, ShortCodeType.EVENT, event.id),
        voter_codes=codes
    )


@router.post("/{code}/test-voter", response_model=VoterCodesResponse, status_code=status.HTTP_201_CREATED)
def create_test_voter(
    code: str,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    event = EventManager.get_admin_event(db, ctx, code)
    voter_code = EventManager.create_test_voter(db, ctx, event.id)
    return VoterCodesResponse(
        event_code=ShortCodeResolver.code_for(db, ShortCodeType.EVENT, event.id),
        voter_codes=[voter_code]
    )


@router.post("/{code}/codes/regenerate", response_model=RegenerateResponse)
def regenerate_codes(
    code: str,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    """
    補發遺失的 event / manage / brewer 代碼

    活動代碼本身遺失時，{code} 改用活動 UUID
    """
    event = EventManager.get_admin_event(db, ctx, code)
    created = EventManager.regenerate_codes(db, ctx, event.id)
    return RegenerateResponse(created=created)


# ============ 揭曉典禮 ============

def _reveal_response(event: Event) -> RevealResponse:
    return RevealResponse(
        event_id=event.id,
        reveal_stage=event.reveal_stage,
        voting_open=voting_open(event.reveal_stage)
    )


@router.post("/{code}/reveal/advance", response_model=RevealResponse)
def advance_reveal(
    code: str,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    """前進一個揭曉階段；已經是最後階段回 409"""
    event = EventManager.get_admin_event(db, ctx, code)
    event = RevealStateMachine.advance(db, ctx.scope, event.id)
    return _reveal_response(event)


@router.post("/{code}/reveal/reset", response_model=RevealResponse)
def reset_reveal(
    code: str,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    """回到 stage 0，重新開放投票"""
    event = EventManager.get_admin_event(db, ctx, code)
    event = RevealStateMachine.reset(db, ctx.scope, event.id)
    return _reveal_response(event)


# ============ 活動管理員 ============

@router.get("/{code}/admins", response_model=List[AdminResponse])
def list_event_admins(
    code: str,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    event = EventManager.get_admin_event(db, ctx, code)
    return [admin_response(admin) for admin in AdminManager.list_event_admins(db, ctx, event)]


@router.post("/{code}/admins", response_model=AdminResponse, status_code=status.HTTP_201_CREATED)
def assign_event_admin(
    code: str,
    data: EventAdminAssign,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    event = EventManager.get_admin_event(db, ctx, code)
    admin = AdminManager.assign_event_admin(db, ctx, event, data.email)
    return admin_response(admin)


@router.delete("/{code}/admins/{admin_id}", status_code=status.HTTP_204_NO_CONTENT)
def unassign_event_admin(
    code: str,
    admin_id: UUID,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    """取消指派；活動只剩一位管理員時回 409"""
    event = EventManager.get_admin_event(db, ctx, code)
    AdminManager.unassign_event_admin(db, ctx, event, admin_id)
