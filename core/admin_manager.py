"""
Admin Manager：管理員帳號與活動指派

職責：
1. 邀請管理員（invite-or-link：先用 email 建立，登入時綁定 user_id）
2. 修改管理員（組織轉移與 super 權限只有 super 能改）
3. 移除管理員（不能讓 scope 失去最後一位管理員）
4. 活動管理員指派（per-event scope 模型使用）
"""
from typing import List, Optional
from uuid import UUID
import logging
import re

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import Admin, Event, EventAdmin
from core.exceptions import Conflict, Forbidden, Invalid, LastAdminViolation, NotFound
from core.organization_manager import OrganizationManager
from core.scope import (
    AdminContext, EventScope, OrgScope, SuperScope,
    require_admin, require_event, require_super
)
from database import transactional

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: Optional[str]) -> str:
    """
    正規化並驗證 email

    異常：
        Invalid: 空白或格式錯誤
    """
    email = (email or "").strip().lower()
    if not email:
        raise Invalid("Email is required")
    if len(email) > 320 or not _EMAIL_PATTERN.match(email):
        raise Invalid(f"Invalid email address: {email}")
    return email


class AdminManager:
    """管理員管理器"""

    @staticmethod
    def get_admin(db: Session, admin_id: UUID) -> Admin:
        admin = db.query(Admin).filter(Admin.id == admin_id).first()
        if not admin:
            raise NotFound("Admin")
        return admin

    @staticmethod
    def list_admins(db: Session, ctx: AdminContext) -> List[Admin]:
        """
        列出操作者可見的管理員

        - super：全部
        - 組織管理員：同組織
        - 活動管理員：和自己共同管理任一活動的管理員
        """
        query = db.query(Admin)
        if isinstance(ctx.scope, OrgScope):
            query = query.filter(Admin.organization_id == ctx.scope.organization_id)
        elif isinstance(ctx.scope, EventScope):
            if not ctx.scope.event_ids:
                return []
            query = query.join(EventAdmin, EventAdmin.admin_id == Admin.id).filter(
                EventAdmin.event_id.in_(ctx.scope.event_ids)
            ).distinct()
        return query.order_by(Admin.created_at).all()

    @staticmethod
    def _ensure_email_free(db: Session, email: str, exclude_id: Optional[UUID] = None) -> None:
        query = db.query(Admin).filter(Admin.email == email)
        if exclude_id is not None:
            query = query.filter(Admin.id != exclude_id)
        if query.first():
            raise Conflict(f"{email} is already an admin")

    @staticmethod
    def _insert_admin(db: Session, admin: Admin) -> Admin:
        try:
            with db.begin_nested():
                db.add(admin)
        except IntegrityError:
            raise Conflict(f"{admin.email} is already an admin")
        return admin

    @staticmethod
    @transactional
    def invite_admin(
        db: Session,
        ctx: AdminContext,
        email: str,
        organization_id: Optional[UUID] = None,
        is_super: bool = False
    ) -> Admin:
        """
        邀請新管理員

        流程：
        1. 驗證 email，檢查是否已存在
        2. 決定所屬組織：super 可以指定（預設為自己的組織），組織管理員只能邀請到自己的組織
        3. 建立 user_id 為空的管理員，等待對方第一次登入時綁定

        異常：
            Invalid: email 格式錯誤
            Forbidden: 活動管理員不能建立帳號；非 super 想建立 super 或跨組織邀請
            NotFound: 指定的組織不存在
            Conflict: email 已是管理員
        """
        email = normalize_email(email)

        if isinstance(ctx.scope, SuperScope):
            if organization_id is None:
                organization_id = ctx.admin.organization_id
            OrganizationManager.get_organization(db, organization_id)
        elif isinstance(ctx.scope, OrgScope):
            if is_super:
                raise Forbidden("Only super admins can create super admins")
            if organization_id is not None and organization_id != ctx.scope.organization_id:
                raise Forbidden("You can only invite admins into your own organization")
            organization_id = ctx.scope.organization_id
        else:
            raise Forbidden("Event admins cannot create admin accounts")

        AdminManager._ensure_email_free(db, email)

        admin = AdminManager._insert_admin(db, Admin(
            email=email,
            organization_id=organization_id,
            is_super=is_super
        ))

        logger.info(f"Admin {ctx.admin.id} invited {email} into organization {organization_id}")
        return admin

    @staticmethod
    @transactional
    def update_admin(
        db: Session,
        ctx: AdminContext,
        admin_id: UUID,
        email: Optional[str] = None,
        organization_id: Optional[UUID] = None,
        is_super: Optional[bool] = None
    ) -> Admin:
        """
        修改管理員

        規則：
        - 組織轉移與 is_super 只有 super 能改
        - 已經建立過活動的管理員，email（身分）不可再修改

        異常：
            NotFound / Forbidden / Invalid / Conflict
        """
        target = AdminManager.get_admin(db, admin_id)
        require_admin(ctx.scope, target)
        if target.is_super and not ctx.is_super:
            raise Forbidden("Only super admins can modify super admins")

        if organization_id is not None and organization_id != target.organization_id:
            require_super(ctx.scope)
            OrganizationManager.get_organization(db, organization_id)
            logger.info(
                f"Admin {target.id} moved from organization {target.organization_id} to {organization_id}"
            )
            target.organization_id = organization_id

        if is_super is not None and is_super != target.is_super:
            require_super(ctx.scope)
            if target.id == ctx.admin.id and not is_super:
                raise LastAdminViolation("You cannot revoke your own super admin privileges")
            target.is_super = is_super

        if email is not None:
            email = normalize_email(email)
            if email != target.email:
                created = db.query(Event).filter(Event.created_by_admin_id == target.id).count()
                if created:
                    raise Conflict("Admin identity is locked once they have created an event")
                AdminManager._ensure_email_free(db, email, exclude_id=target.id)
                target.email = email
                # 換 email 等於換人，需要重新綁定登入身分
                target.user_id = None

        db.flush()
        return target

    @staticmethod
    def _sole_admin_events(db: Session, admin_id: UUID) -> List[UUID]:
        """回傳只剩這位管理員被指派的活動"""
        assigned = [
            row.event_id
            for row in db.query(EventAdmin.event_id).filter(EventAdmin.admin_id == admin_id).all()
        ]
        sole = []
        for event_id in assigned:
            count = db.query(EventAdmin).filter(EventAdmin.event_id == event_id).count()
            if count <= 1:
                sole.append(event_id)
        return sole

    @staticmethod
    @transactional
    def remove_admin(db: Session, ctx: AdminContext, admin_id: UUID) -> None:
        """
        移除管理員

        前置條件：
        1. 目標在 scope 內（非 super 不能移除 super）
        2. 自我移除時，自己不能是組織裡唯一的管理員
        3. 目標不能是任何活動唯一被指派的管理員

        異常：
            NotFound / Forbidden
            LastAdminViolation: 會讓組織或活動沒有管理員
        """
        target = AdminManager.get_admin(db, admin_id)
        require_admin(ctx.scope, target)
        if target.is_super and not ctx.is_super:
            raise Forbidden("Only super admins can remove super admins")

        if target.id == ctx.admin.id:
            org_admins = db.query(Admin).filter(
                Admin.organization_id == target.organization_id
            ).count()
            if org_admins <= 1:
                raise LastAdminViolation(
                    "You are the only admin of your organization and cannot remove yourself"
                )

        sole_events = AdminManager._sole_admin_events(db, target.id)
        if sole_events:
            raise LastAdminViolation(
                f"Admin {target.id} is the only admin assigned to {len(sole_events)} event(s)"
            )

        db.delete(target)
        logger.info(f"Admin {ctx.admin.id} removed admin {target.id} ({target.email})")

    # ============ 活動管理員指派 ============

    @staticmethod
    def list_event_admins(db: Session, ctx: AdminContext, event: Event) -> List[Admin]:
        require_event(ctx.scope, event)
        return db.query(Admin).join(EventAdmin, EventAdmin.admin_id == Admin.id).filter(
            EventAdmin.event_id == event.id
        ).order_by(EventAdmin.created_at).all()

    @staticmethod
    @transactional
    def assign_event_admin(db: Session, ctx: AdminContext, event: Event, email: str) -> Admin:
        """
        把管理員指派到活動（invite-or-link）

        email 還不是管理員時，直接在活動所屬組織建立一筆邀請

        異常：
            Forbidden: 活動不在 scope 內，或對方屬於其他組織
            Conflict: 已經被指派
        """
        require_event(ctx.scope, event)
        email = normalize_email(email)

        admin = db.query(Admin).filter(Admin.email == email).first()
        if admin is None:
            admin = AdminManager._insert_admin(db, Admin(
                email=email,
                organization_id=event.organization_id
            ))
            logger.info(f"Invited {email} as admin for event {event.id}")
        elif admin.organization_id != event.organization_id and not admin.is_super:
            raise Forbidden(f"{email} belongs to another organization")

        existing = db.query(EventAdmin).filter(
            EventAdmin.event_id == event.id,
            EventAdmin.admin_id == admin.id
        ).first()
        if existing:
            raise Conflict(f"{email} is already assigned to this event")

        db.add(EventAdmin(event_id=event.id, admin_id=admin.id))
        db.flush()
        logger.info(f"Admin {admin.id} assigned to event {event.id} by {ctx.admin.id}")
        return admin

    @staticmethod
    @transactional
    def unassign_event_admin(db: Session, ctx: AdminContext, event: Event, admin_id: UUID) -> None:
        """
        取消活動指派

        異常：
            Forbidden: 活動不在 scope 內
            NotFound: 沒有這筆指派
            LastAdminViolation: 這是活動最後一位管理員
        """
        require_event(ctx.scope, event)

        assignment = db.query(EventAdmin).filter(
            EventAdmin.event_id == event.id,
            EventAdmin.admin_id == admin_id
        ).first()
        if not assignment:
            raise NotFound("Event admin assignment")

        remaining = db.query(EventAdmin).filter(EventAdmin.event_id == event.id).count()
        if remaining <= 1:
            raise LastAdminViolation(f"Event {event.id} must keep at least one admin")

        db.delete(assignment)
        logger.info(f"Admin {admin_id} unassigned from event {event.id} by {ctx.admin.id}")
