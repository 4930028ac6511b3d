"""
Organization Manager：管理組織（租戶邊界）

職責：
1. 建立組織（只有 super 可以）
2. 列出可見的組織
3. 刪除組織（必須沒有任何活動與管理員）
"""
from typing import List
from uuid import UUID
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import Admin, Event, Organization
from core.exceptions import Conflict, Invalid, NotFound
from core.scope import OrgScope, Scope, SuperScope, require_super
from database import transactional

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 200


class OrganizationManager:
    """組織生命週期管理器"""

    @staticmethod
    @transactional
    def create_organization(db: Session, scope: Scope, name: str) -> Organization:
        """
        建立組織

        異常：
            Forbidden: 不是 super
            Invalid: 名稱空白或過長
            Conflict: 名稱已存在
        """
        require_super(scope)

        name = (name or "").strip()
        if not name:
            raise Invalid("Organization name is required")
        if len(name) > MAX_NAME_LENGTH:
            raise Invalid(f"Organization name must be at most {MAX_NAME_LENGTH} characters")

        if db.query(Organization).filter(Organization.name == name).first():
            raise Conflict(f"Organization '{name}' already exists")

        organization = Organization(name=name)
        try:
            with db.begin_nested():
                db.add(organization)
        except IntegrityError:
            raise Conflict(f"Organization '{name}' already exists")

        logger.info(f"Created organization {organization.id} ({name})")
        return organization

    @staticmethod
    def list_organizations(db: Session, scope: Scope) -> List[Organization]:
        """super 看全部；組織管理員看自己的組織；活動管理員看被指派活動所屬的組織"""
        query = db.query(Organization)
        if isinstance(scope, OrgScope):
            query = query.filter(Organization.id == scope.organization_id)
        elif not isinstance(scope, SuperScope):
            org_ids = [
                row.organization_id
                for row in scope.filter_events(db.query(Event.organization_id)).distinct().all()
            ]
            query = query.filter(Organization.id.in_(org_ids))
        return query.order_by(Organization.name).all()

    @staticmethod
    def get_organization(db: Session, organization_id: UUID) -> Organization:
        organization = db.query(Organization).filter(Organization.id == organization_id).first()
        if not organization:
            raise NotFound("Organization")
        return organization

    @staticmethod
    @transactional
    def delete_organization(db: Session, scope: Scope, organization_id: UUID) -> None:
        """
        刪除組織

        前置條件：
        1. 操作者是 super
        2. 組織底下沒有活動
        3. 組織底下沒有管理員

        異常：
            Forbidden: 不是 super
            NotFound: 組織不存在
            Conflict: 仍有活動或管理員
        """
        require_super(scope)
        organization = OrganizationManager.get_organization(db, organization_id)

        event_count = db.query(Event).filter(Event.organization_id == organization_id).count()
        admin_count = db.query(Admin).filter(Admin.organization_id == organization_id).count()
        if event_count or admin_count:
            raise Conflict(
                f"Organization still has {event_count} event(s) and {admin_count} admin(s)"
            )

        db.delete(organization)
        logger.info(f"Deleted organization {organization_id}")
