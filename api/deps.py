"""
共用的 FastAPI dependencies：JWT 驗證與管理員 scope

Bearer token 由外部身分服務簽發（sub = user id, email），這裡只負責驗證與解析
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from core.scope import AdminContext, Principal, compute_scope
from database import get_db, settings

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def create_access_token(user_id: str, email: Optional[str] = None, expires_minutes: int = 60) -> str:
    """簽發 access token（本機開發與測試使用）"""
    to_encode = {
        "sub": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expires_minutes),
    }
    if email:
        to_encode["email"] = email
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[Dict]:
    """驗證並解碼 JWT；簽章錯誤或過期回傳 None"""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"verify_aud": False}
        )
    except JWTError as e:
        logger.warning(f"Rejected bearer token: {e}")
        return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Principal:
    """從 Authorization header 取得登入身分"""
    if credentials is None:
        raise _unauthorized("Not authenticated")

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise _unauthorized("Token is missing the subject claim")

    return Principal(user_id=str(user_id), email=payload.get("email"))


def get_admin_context(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db)
) -> AdminContext:
    """
    每個後台請求算一次 scope，之後明確傳給 manager

    異常：
        Forbidden: 登入者不是管理員（由 main.py 轉成 403）
    """
    return compute_scope(db, principal, settings.scope_model)
