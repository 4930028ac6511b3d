"""
Organization API Endpoints

職責：
1. 列出可見的組織
2. 建立 / 刪除組織（只有 super）
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database import get_db
from schemas import OrganizationCreate, OrganizationResponse
from core.organization_manager import OrganizationManager
from core.scope import AdminContext
from api.deps import get_admin_context

router = APIRouter(prefix="/api/organizations", tags=["organizations"])


@router.get("", response_model=List[OrganizationResponse])
def list_organizations(
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    return OrganizationManager.list_organizations(db, ctx.scope)


@router.post("", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
def create_organization(
    data: OrganizationCreate,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    """建立組織（super only，名稱重複回 409）"""
    return OrganizationManager.create_organization(db, ctx.scope, data.name)


@router.delete("/{organization_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_organization(
    organization_id: UUID,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    """
    刪除組織

    前置條件：
    - 操作者是 super
    - 組織底下沒有活動，也沒有管理員（否則 409）
    """
    OrganizationManager.delete_organization(db, ctx.scope, organization_id)
