"""
AuthorizationScope：計算已登入管理員可以操作的範圍

三種 scope：
- SuperScope：所有組織、活動、管理員
- OrgScope(org_id)：只能操作 organization_id 相同的活動與管理員
- EventScope(event_ids)：只能操作 event_admins 裡指派給自己的活動

每個會修改 Event / Beer / Admin 的操作都先呼叫 compute_scope() 取得 scope，
再用 require_*() 檢查目標是否在範圍內。scope 外的資源回 Forbidden（不是 NotFound）。

整個部署只會使用一種模型（settings.scope_model），不混用
"""
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Union
from uuid import UUID
import logging

from sqlalchemy import false
from sqlalchemy.orm import Session, Query

from models import Admin, Event, EventAdmin
from core.exceptions import Forbidden, Invalid

logger = logging.getLogger(__name__)

SCOPE_MODEL_ORGANIZATION = "organization"
SCOPE_MODEL_EVENT = "event"
SCOPE_MODELS = (SCOPE_MODEL_ORGANIZATION, SCOPE_MODEL_EVENT)


@dataclass(frozen=True)
class Principal:
    """已驗證的登入身分（來自 JWT 的 sub 與 email）"""
    user_id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class SuperScope:
    kind = "super"

    def includes_organization(self, organization_id: UUID) -> bool:
        return True

    def includes_event(self, event: Event) -> bool:
        return True

    def includes_admin(self, admin: Admin) -> bool:
        return True

    def filter_events(self, query: Query) -> Query:
        return query


@dataclass(frozen=True)
class OrgScope:
    organization_id: UUID
    kind = "organization"

    def includes_organization(self, organization_id: UUID) -> bool:
        return organization_id == self.organization_id

    def includes_event(self, event: Event) -> bool:
        return event.organization_id == self.organization_id

    def includes_admin(self, admin: Admin) -> bool:
        return admin.organization_id == self.organization_id

    def filter_events(self, query: Query) -> Query:
        return query.filter(Event.organization_id == self.organization_id)


@dataclass(frozen=True)
class EventScope:
    event_ids: FrozenSet[UUID] = field(default_factory=frozenset)
    kind = "event"

    def includes_organization(self, organization_id: UUID) -> bool:
        return False

    def includes_event(self, event: Event) -> bool:
        return event.id in self.event_ids

    def includes_admin(self, admin: Admin) -> bool:
        # 管理員帳號本身只能由 super 管理；指派關係走 require_event
        return False

    def filter_events(self, query: Query) -> Query:
        if not self.event_ids:
            return query.filter(false())
        return query.filter(Event.id.in_(self.event_ids))


Scope = Union[SuperScope, OrgScope, EventScope]


@dataclass(frozen=True)
class AdminContext:
    """一次請求內的操作者：管理員資料 + 計算好的 scope"""
    admin: Admin
    scope: Scope
    scope_model: str = SCOPE_MODEL_ORGANIZATION

    @property
    def is_super(self) -> bool:
        return isinstance(self.scope, SuperScope)


def require_event(scope: Scope, event: Event) -> Event:
    if not scope.includes_event(event):
        raise Forbidden(f"You do not have access to event {event.id}")
    return event


def require_admin(scope: Scope, admin: Admin) -> Admin:
    if not scope.includes_admin(admin):
        raise Forbidden(f"You do not have access to admin {admin.id}")
    return admin


def require_organization(scope: Scope, organization_id: UUID) -> UUID:
    if not scope.includes_organization(organization_id):
        raise Forbidden(f"You do not have access to organization {organization_id}")
    return organization_id


def require_super(scope: Scope) -> SuperScope:
    if not isinstance(scope, SuperScope):
        raise Forbidden("Super admin privileges required")
    return scope


def _find_admin(db: Session, principal: Principal) -> Optional[Admin]:
    """
    找出登入者對應的管理員（invite-or-link）

    1. 先用 user_id 找已綁定的管理員
    2. 找不到就用 email 找尚未綁定的邀請，並把 user_id 綁上去
    """
    admin = db.query(Admin).filter(Admin.user_id == principal.user_id).first()
    if admin or not principal.email:
        return admin

    invite = db.query(Admin).filter(
        Admin.email == principal.email.strip().lower(),
        Admin.user_id.is_(None)
    ).first()
    if invite:
        invite.user_id = principal.user_id
        db.commit()
        logger.info(f"Linked admin invite {invite.id} ({invite.email}) to user {principal.user_id}")
    return invite


def compute_scope(db: Session, principal: Principal, model: str) -> AdminContext:
    """
    把登入身分解析成唯一一種 scope

    參數：
        db: SQLAlchemy Session
        principal: JWT 解出來的登入身分
        model: "organization" 或 "event"（部署設定）

    返回：
        AdminContext(admin, scope)

    異常：
        Forbidden: 登入者不是管理員
        Invalid: model 設定錯誤
    """
    if model not in SCOPE_MODELS:
        raise Invalid(f"Unknown scope model: {model}")

    admin = _find_admin(db, principal)
    if not admin:
        raise Forbidden("Not an administrator")

    if admin.is_super:
        return AdminContext(admin=admin, scope=SuperScope(), scope_model=model)

    if model == SCOPE_MODEL_ORGANIZATION:
        return AdminContext(admin=admin, scope=OrgScope(admin.organization_id), scope_model=model)

    rows = db.query(EventAdmin.event_id).filter(EventAdmin.admin_id == admin.id).all()
    return AdminContext(
        admin=admin,
        scope=EventScope(frozenset(row.event_id for row in rows)),
        scope_model=model
    )
