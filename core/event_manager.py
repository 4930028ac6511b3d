"""
Event Manager：管理活動與啤酒的完整生命週期

職責：
1. 建立 / 修改 / 刪除活動（所有修改都先經過 scope 檢查）
2. 新增 / 刪除啤酒（每支啤酒建立時同時產生唯一的 BrewerToken）
3. 發放短代碼：活動代碼、管理代碼、釀酒師代碼、投票者代碼
4. 計算活動結果（交給 tally_service）

Linus 原則：
- 單一職責：只管活動與啤酒，不管投票
- 資料結構優先：先檢查資料是否符合要求，再執行操作
- 次要產物（短代碼）失敗只記 log，不回滾主要實體；regenerate_codes 可以補回
"""
from datetime import date as date_type
from typing import Dict, List, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import Beer, BrewerToken, Event, EventAdmin, ShortCode, ShortCodeType, Vote, Voter
from core.exceptions import CodeSpaceExhausted, Invalid, NotFound
from core.locks import with_event_lock
from core.scope import AdminContext, SCOPE_MODEL_EVENT, SuperScope, require_event, require_organization
from core.short_codes import ShortCodeResolver
from core.organization_manager import OrganizationManager
from database import settings, transactional
from services.tally_service import TallyResult, tally

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 200


def _clean_text(value: Optional[str], field: str, required: bool = True) -> Optional[str]:
    value = (value or "").strip()
    if not value:
        if required:
            raise Invalid(f"{field} is required")
        return None
    if len(value) > MAX_NAME_LENGTH:
        raise Invalid(f"{field} must be at most {MAX_NAME_LENGTH} characters")
    return value


def _check_max_points(max_points: int) -> int:
    if isinstance(max_points, bool) or not isinstance(max_points, int) or max_points < 1:
        raise Invalid("Max points must be a positive number")
    return max_points


class EventManager:
    """活動生命週期管理器"""

    # ============ 短代碼（次要產物） ============

    @staticmethod
    def _provision_codes(
        db: Session,
        event_id: UUID,
        targets: List[Tuple[ShortCodeType, UUID]]
    ) -> Dict[ShortCodeType, str]:
        """
        為活動相關實體產生短代碼

        全部在一個 SAVEPOINT 內完成；失敗時只 rollback 這個 SAVEPOINT 並記錄錯誤，
        主要實體（活動 / 啤酒）照常 commit

        返回：
            成功建立的 {target_type: code}；失敗時為空 dict
        """
        created = {}
        try:
            with db.begin_nested():
                for target_type, target_id in targets:
                    row = ShortCodeResolver.reserve(db, target_type, target_id, event_id=event_id)
                    created[target_type] = row.code
        except (SQLAlchemyError, CodeSpaceExhausted) as e:
            logger.error(f"Failed to create short codes for event {event_id}: {e}", exc_info=True)
            return {}
        return created

    @staticmethod
    def _missing_code_targets(db: Session, event: Event) -> List[Tuple[ShortCodeType, UUID]]:
        targets = []
        for target_type in (ShortCodeType.EVENT, ShortCodeType.MANAGE):
            if ShortCodeResolver.code_for(db, target_type, event.id) is None:
                targets.append((target_type, event.id))

        beer_ids = [beer.id for beer in event.beers]
        existing = ShortCodeResolver.codes_for(db, ShortCodeType.BREWER, beer_ids)
        targets.extend(
            (ShortCodeType.BREWER, beer_id) for beer_id in beer_ids if beer_id not in existing
        )
        return targets

    @staticmethod
    @transactional
    def regenerate_codes(db: Session, ctx: AdminContext, event_id: UUID) -> int:
        """
        補回缺少的活動 / 管理 / 釀酒師短代碼

        用途：
            建立活動或啤酒時短代碼寫入失敗（非致命錯誤），事後由管理員補發

        返回：
            新建立的代碼數量

        異常：
            CodeSpaceExhausted: 這裡是主要操作，失敗要讓呼叫者知道
        """
        event = EventManager.get_event(db, event_id)
        require_event(ctx.scope, event)

        targets = EventManager._missing_code_targets(db, event)
        for target_type, target_id in targets:
            ShortCodeResolver.reserve(db, target_type, target_id, event_id=event.id)

        if targets:
            logger.info(f"Regenerated {len(targets)} short code(s) for event {event.id}")
        return len(targets)

    # ============ 查詢 ============

    @staticmethod
    def get_event(db: Session, event_id: UUID) -> Event:
        event = db.query(Event).filter(Event.id == event_id).first()
        if not event:
            raise NotFound("Event")
        return event

    @staticmethod
    def get_event_by_code(db: Session, code: str, code_type: ShortCodeType = ShortCodeType.EVENT) -> Event:
        """
        透過短代碼取得活動

        異常：
            NotFound: 代碼不存在、種類不符，或活動已被刪除
        """
        event_id = ShortCodeResolver.resolve(db, code, code_type)
        if not event_id:
            raise NotFound("Event")
        return EventManager.get_event(db, event_id)

    @staticmethod
    def get_event_for_manage(db: Session, reference: str) -> Event:
        """
        透過管理連結取得活動（不需要登入）

        reference 可以是 manage 短代碼，也可以是活動的 manage_token（UUID）；
        兩者都找不到時一律回 NotFound
        """
        event_id = ShortCodeResolver.resolve(db, reference, ShortCodeType.MANAGE)
        if event_id:
            return EventManager.get_event(db, event_id)

        try:
            token = UUID(reference)
        except (TypeError, ValueError):
            raise NotFound("Event")

        event = db.query(Event).filter(Event.manage_token == token).first()
        if not event:
            raise NotFound("Event")
        return event

    @staticmethod
    def get_admin_event(db: Session, ctx: AdminContext, reference: str) -> Event:
        """
        後台用：解析活動並檢查 scope（scope 外回 Forbidden）

        reference 通常是活動短代碼；代碼遺失時也接受活動 UUID
        """
        event_id = ShortCodeResolver.resolve(db, reference, ShortCodeType.EVENT)
        if event_id is None:
            try:
                event_id = UUID(reference)
            except (TypeError, ValueError):
                raise NotFound("Event")
        event = EventManager.get_event(db, event_id)
        return require_event(ctx.scope, event)

    @staticmethod
    def list_events(db: Session, ctx: AdminContext) -> List[Event]:
        query = ctx.scope.filter_events(db.query(Event))
        return query.order_by(Event.created_at.desc()).all()

    @staticmethod
    def get_beer(db: Session, event_id: UUID, beer_id: UUID) -> Beer:
        beer = db.query(Beer).filter(Beer.id == beer_id, Beer.event_id == event_id).first()
        if not beer:
            raise NotFound("Beer")
        return beer

    @staticmethod
    def list_beers(db: Session, event_id: UUID) -> List[Beer]:
        return db.query(Beer).filter(Beer.event_id == event_id).order_by(Beer.created_at).all()

    @staticmethod
    def tally_event(db: Session, event_id: UUID) -> TallyResult:
        """載入活動的啤酒與選票，交給 tally_service 計算排名"""
        beers = EventManager.list_beers(db, event_id)
        votes = db.query(Vote).join(Beer, Vote.beer_id == Beer.id).filter(
            Beer.event_id == event_id
        ).all()
        return tally(beers, votes)

    @staticmethod
    def registered_voter_count(db: Session, event_id: UUID) -> int:
        return db.query(Voter).filter(Voter.event_id == event_id).count()

    # ============ 活動 ============

    @staticmethod
    @transactional
    def create_event(
        db: Session,
        ctx: AdminContext,
        name: str,
        date: Optional[date_type] = None,
        max_points: Optional[int] = None,
        blind_tasting: bool = False,
        organization_id: Optional[UUID] = None
    ) -> Event:
        """
        建立活動

        流程：
        1. 驗證名稱與點數上限
        2. 決定所屬組織（super 可以指定，其他人固定為自己的組織）
        3. 建立 Event；per-event 模型下把建立者指派為活動管理員
        4. 產生 event + manage 短代碼（失敗不影響活動建立）

        異常：
            Invalid: 名稱空白、點數上限不合法
            Forbidden: 指定了 scope 外的組織
            NotFound: 指定的組織不存在
        """
        name = _clean_text(name, "Event name")
        max_points = _check_max_points(
            settings.default_max_points if max_points is None else max_points
        )

        if organization_id is None:
            organization_id = ctx.admin.organization_id
        elif not isinstance(ctx.scope, SuperScope):
            require_organization(ctx.scope, organization_id)
        OrganizationManager.get_organization(db, organization_id)

        event = Event(
            name=name,
            date=date,
            max_points=max_points,
            blind_tasting=blind_tasting,
            organization_id=organization_id,
            created_by_admin_id=ctx.admin.id
        )
        db.add(event)
        db.flush()  # 取得 event.id

        if ctx.scope_model == SCOPE_MODEL_EVENT:
            db.add(EventAdmin(event_id=event.id, admin_id=ctx.admin.id))
            db.flush()

        logger.info(f"Created event {event.id} ({name}) in organization {organization_id}")

        EventManager._provision_codes(db, event.id, [
            (ShortCodeType.EVENT, event.id),
            (ShortCodeType.MANAGE, event.id),
        ])
        return event

    @staticmethod
    @transactional
    def update_event(
        db: Session,
        ctx: AdminContext,
        event_id: UUID,
        name: Optional[str] = None,
        date: Optional[date_type] = None,
        max_points: Optional[int] = None,
        blind_tasting: Optional[bool] = None
    ) -> Event:
        """
        修改活動設定

        注意：
            降低 max_points 時，若已有投票者的總點數超過新上限則拒絕（Invalid），
            確保「選票點數不超過活動上限」永遠成立

        異常：
            NotFound / Forbidden / Invalid
        """
        event = with_event_lock(event_id, db).first()
        if not event:
            raise NotFound("Event")
        require_event(ctx.scope, event)

        if name is not None:
            event.name = _clean_text(name, "Event name")
        if date is not None:
            event.date = date
        if blind_tasting is not None:
            event.blind_tasting = blind_tasting

        if max_points is not None and max_points != event.max_points:
            max_points = _check_max_points(max_points)
            highest = db.query(func.sum(Vote.points)).join(
                Voter, Vote.voter_id == Voter.id
            ).filter(
                Voter.event_id == event.id
            ).group_by(Vote.voter_id).order_by(func.sum(Vote.points).desc()).first()
            if highest and highest[0] > max_points:
                raise Invalid(
                    f"A voter has already spent {highest[0]} points; max points cannot go below that"
                )
            event.max_points = max_points

        db.flush()
        logger.info(f"Updated event {event.id}")
        return event

    @staticmethod
    @transactional
    def delete_event(db: Session, ctx: AdminContext, event_id: UUID) -> None:
        """
        刪除活動

        Beer、BrewerToken、Voter、Vote、Feedback、EventAdmin 與該活動的短代碼
        由 ON DELETE CASCADE 一併刪除

        異常：
            NotFound: 活動不存在
            Forbidden: 活動不在 scope 內（活動保留不動）
        """
        event = EventManager.get_event(db, event_id)
        require_event(ctx.scope, event)

        # 舊資料可能沒有記錄 event_id 的代碼，依 target_id 補刪
        beer_ids = [beer.id for beer in event.beers]
        voter_ids = [voter.id for voter in event.voters]
        db.query(ShortCode).filter(
            ShortCode.target_id.in_([event.id] + beer_ids + voter_ids)
        ).delete(synchronize_session=False)

        db.delete(event)
        logger.info(f"Admin {ctx.admin.id} deleted event {event_id}")

    # ============ 啤酒 ============

    @staticmethod
    def _insert_beer(
        db: Session,
        event: Event,
        name: str,
        brewer: Optional[str],
        style: Optional[str]
    ) -> Beer:
        beer = Beer(
            event_id=event.id,
            name=_clean_text(name, "Beer name"),
            brewer=_clean_text(brewer, "Brewer", required=False) or "",
            style=_clean_text(style, "Style", required=False)
        )
        db.add(beer)
        db.flush()  # 取得 beer.id

        # 每支啤酒恰好一個 BrewerToken，和啤酒同一個 transaction
        db.add(BrewerToken(beer_id=beer.id))
        db.flush()

        logger.info(f"Added beer {beer.id} ({beer.name}) to event {event.id}")

        EventManager._provision_codes(db, event.id, [(ShortCodeType.BREWER, beer.id)])
        return beer

    @staticmethod
    @transactional
    def add_beer(
        db: Session,
        ctx: AdminContext,
        event_id: UUID,
        name: str,
        brewer: Optional[str] = None,
        style: Optional[str] = None
    ) -> Beer:
        """後台新增啤酒（需要 scope）"""
        event = EventManager.get_event(db, event_id)
        require_event(ctx.scope, event)
        return EventManager._insert_beer(db, event, name, brewer, style)

    @staticmethod
    @transactional
    def add_beer_via_manage(
        db: Session,
        reference: str,
        name: str,
        brewer: Optional[str] = None,
        style: Optional[str] = None
    ) -> Beer:
        """
        透過管理連結新增啤酒（不需要登入）

        異常：
            NotFound: 管理代碼無效
            Invalid: 啤酒名稱空白
        """
        event = EventManager.get_event_for_manage(db, reference)
        return EventManager._insert_beer(db, event, name, brewer, style)

    @staticmethod
    @transactional
    def delete_beer(db: Session, ctx: AdminContext, event_id: UUID, beer_id: UUID) -> None:
        """
        刪除啤酒（連同 BrewerToken、選票、回饋與釀酒師代碼）

        異常：
            NotFound: 活動或啤酒不存在 / 啤酒不屬於此活動
            Forbidden: 活動不在 scope 內
        """
        event = EventManager.get_event(db, event_id)
        require_event(ctx.scope, event)
        beer = EventManager.get_beer(db, event.id, beer_id)

        db.query(ShortCode).filter(
            ShortCode.target_type == ShortCodeType.BREWER,
            ShortCode.target_id == beer.id
        ).delete(synchronize_session=False)
        db.delete(beer)
        logger.info(f"Deleted beer {beer_id} from event {event_id}")

    # ============ 投票者代碼 ============

    @staticmethod
    @transactional
    def provision_voters(db: Session, ctx: AdminContext, event_id: UUID, count: int) -> List[str]:
        """
        批次產生投票者短代碼（印成 QR code 發給來賓）

        投票者 UUID 此時只存在於 short_codes，第一次造訪投票連結時才建立 Voter

        注意：
            這裡的短代碼會直接交給使用者，是主要產物：任何一筆失敗就整批 rollback

        異常：
            Invalid: count 不在 1..max_voter_batch
            NotFound / Forbidden
            CodeSpaceExhausted
        """
        if isinstance(count, bool) or not isinstance(count, int) or not 1 <= count <= settings.max_voter_batch:
            raise Invalid(f"Count must be between 1 and {settings.max_voter_batch}")

        event = EventManager.get_event(db, event_id)
        require_event(ctx.scope, event)

        reserved = ShortCodeResolver.reserve_batch(db, ShortCodeType.VOTER, count, event_id=event.id)
        logger.info(f"Provisioned {count} voter code(s) for event {event.id}")
        return [code for _, code in reserved]

    @staticmethod
    def create_test_voter(db: Session, ctx: AdminContext, event_id: UUID) -> str:
        """產生單一投票者代碼，讓管理員在活動開始前試投"""
        return EventManager.provision_voters(db, ctx, event_id, 1)[0]
