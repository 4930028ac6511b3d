"""
Admin API Endpoints

職責：
1. 列出 / 邀請管理員
2. 修改 / 移除管理員
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database import get_db
from models import Admin
from schemas import AdminInvite, AdminResponse, AdminUpdate
from core.admin_manager import AdminManager
from core.scope import AdminContext
from api.deps import get_admin_context

router = APIRouter(prefix="/api/admins", tags=["admins"])


def admin_response(admin: Admin) -> AdminResponse:
    return AdminResponse(
        id=admin.id,
        email=admin.email,
        is_super=admin.is_super,
        organization_id=admin.organization_id,
        linked=admin.user_id is not None
    )


@router.get("", response_model=List[AdminResponse])
def list_admins(
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    return [admin_response(admin) for admin in AdminManager.list_admins(db, ctx)]


@router.post("", response_model=AdminResponse, status_code=status.HTTP_201_CREATED)
def invite_admin(
    data: AdminInvite,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    """
    邀請管理員

    被邀請者不需要先有帳號；第一次用同一個 email 登入時自動綁定
    """
    admin = AdminManager.invite_admin(
        db, ctx, data.email,
        organization_id=data.organization_id,
        is_super=data.is_super
    )
    return admin_response(admin)


@router.patch("/{admin_id}", response_model=AdminResponse)
def update_admin(
    admin_id: UUID,
    data: AdminUpdate,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    admin = AdminManager.update_admin(
        db, ctx, admin_id,
        email=data.email,
        organization_id=data.organization_id,
        is_super=data.is_super
    )
    return admin_response(admin)


@router.delete("/{admin_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_admin(
    admin_id: UUID,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    """移除管理員；會讓組織或活動失去最後一位管理員時回 409"""
    AdminManager.remove_admin(db, ctx, admin_id)
