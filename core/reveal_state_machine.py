"""
RevealStateMachine：每個活動的揭曉階段

狀態：0（隱藏）→ 1 → 2 → 3 → 4（全部揭曉）

轉換：
- advance：stage < 4 時 +1，否則丟 CeremonyComplete（stage 不變）
- reset：無條件回到 0

狀態機只管整數本身，不知道排名；排名由 tally_service 計算、前端決定如何逐步顯示
"""
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from models import Event
from core.exceptions import NotFound, CeremonyComplete
from core.locks import with_event_lock
from core.scope import Scope, require_event
from database import transactional
from services.reveal_phase_service import ceremony_complete

logger = logging.getLogger(__name__)


class RevealStateMachine:
    """揭曉階段狀態機"""

    @staticmethod
    def _locked_event(db: Session, scope: Scope, event_id: UUID) -> Event:
        event = with_event_lock(event_id, db).first()
        if not event:
            raise NotFound("Event")
        return require_event(scope, event)

    @staticmethod
    @transactional
    def advance(db: Session, scope: Scope, event_id: UUID) -> Event:
        """
        前進一個揭曉階段

        參數：
            db: SQLAlchemy Session
            scope: 操作者的 scope（必須包含此活動）
            event_id: 活動 UUID

        返回：
            更新後的 Event

        異常：
            NotFound: 活動不存在
            Forbidden: 活動不在 scope 內
            CeremonyComplete: 已經是最後階段
        """
        event = RevealStateMachine._locked_event(db, scope, event_id)

        if ceremony_complete(event.reveal_stage):
            raise CeremonyComplete(event_id)

        event.reveal_stage += 1
        logger.info(f"Event {event_id} reveal stage advanced to {event.reveal_stage}")
        return event

    @staticmethod
    @transactional
    def reset(db: Session, scope: Scope, event_id: UUID) -> Event:
        """
        重設揭曉階段為 0（重新開放投票）

        異常：
            NotFound: 活動不存在
            Forbidden: 活動不在 scope 內
        """
        event = RevealStateMachine._locked_event(db, scope, event_id)

        previous = event.reveal_stage
        event.reveal_stage = 0
        logger.info(f"Event {event_id} reveal stage reset from {previous} to 0")
        return event
