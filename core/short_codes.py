"""
ShortCodeResolver：短代碼的產生、保留與解析

職責：
1. 產生不重複的 8 碼短代碼（最多嘗試 5 次）
2. 保留短代碼：產生 + 寫入視為同一個單位，寫入成功才交給呼叫者
3. 依 (code, target_type) 解析回實體 UUID

唯一性的最終保證是 short_codes.code 的主鍵約束；
寫入前的存在檢查只是為了少踩一次 IntegrityError
"""
from typing import Dict, Iterable, List, Optional, Tuple, Union
from uuid import UUID, uuid4
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import ShortCode, ShortCodeType
from core.exceptions import CodeSpaceExhausted
from services.naming_service import generate_short_code, normalize_short_code, is_well_formed

logger = logging.getLogger(__name__)


class ShortCodeResolver:
    """短代碼管理器"""

    MAX_ATTEMPTS = 5

    @staticmethod
    def code_taken(db: Session, code: str) -> bool:
        """檢查代碼是否已被任何 target_type 使用"""
        return db.query(ShortCode.code).filter(ShortCode.code == code).first() is not None

    @classmethod
    def generate(cls, db: Session) -> str:
        """
        產生一個目前未被使用的短代碼（不寫入）

        只給需要先拿到代碼、之後自行寫入的情境使用；
        要把代碼交給使用者的流程請改用 reserve()

        異常：
            CodeSpaceExhausted: 連續 MAX_ATTEMPTS 次都碰撞
        """
        for attempt in range(1, cls.MAX_ATTEMPTS + 1):
            code = generate_short_code()
            if not cls.code_taken(db, code):
                return code
            logger.warning(f"Short code collision on attempt {attempt}/{cls.MAX_ATTEMPTS}: {code}")

        logger.error(f"Short code space exhausted after {cls.MAX_ATTEMPTS} attempts")
        raise CodeSpaceExhausted(cls.MAX_ATTEMPTS)

    @classmethod
    def reserve(
        cls,
        db: Session,
        target_type: ShortCodeType,
        target_id: UUID,
        event_id: Optional[UUID] = None
    ) -> ShortCode:
        """
        產生並寫入一個短代碼

        流程：
        1. 產生候選代碼
        2. 先查一次是否已存在（樂觀檢查）
        3. 在 SAVEPOINT 內 INSERT；若撞到唯一約束（並發寫入），rollback 到
           SAVEPOINT 並算作一次碰撞
        4. 成功就回傳已 flush 的 ShortCode

        參數：
            db: SQLAlchemy Session（由外層 transaction 負責 commit）
            target_type: 代碼種類
            target_id: 代碼指向的實體 UUID
            event_id: 所屬活動（刪除活動時一併清除）

        異常：
            CodeSpaceExhausted: 連續 MAX_ATTEMPTS 次都碰撞
        """
        for attempt in range(1, cls.MAX_ATTEMPTS + 1):
            code = generate_short_code()
            if cls.code_taken(db, code):
                logger.warning(f"Short code collision on attempt {attempt}/{cls.MAX_ATTEMPTS}: {code}")
                continue

            row = ShortCode(
                code=code,
                target_type=target_type,
                target_id=target_id,
                event_id=event_id
            )
            try:
                with db.begin_nested():
                    db.add(row)
            except IntegrityError:
                logger.warning(
                    f"Short code {code} taken concurrently on attempt {attempt}/{cls.MAX_ATTEMPTS}"
                )
                continue

            logger.info(f"Reserved {target_type.value} short code {code} -> {target_id}")
            return row

        logger.error(f"Short code space exhausted after {cls.MAX_ATTEMPTS} attempts")
        raise CodeSpaceExhausted(cls.MAX_ATTEMPTS)

    @classmethod
    def reserve_batch(
        cls,
        db: Session,
        target_type: ShortCodeType,
        count: int,
        event_id: Optional[UUID] = None
    ) -> List[Tuple[UUID, str]]:
        """
        批次為新的 UUID 保留短代碼（用於發放投票者 QR code）

        每個 UUID 此時還不存在於任何資料表，投票者第一次造訪時才建立

        返回：
            [(target_id, code), ...]
        """
        reserved = []
        for _ in range(count):
            target_id = uuid4()
            row = cls.reserve(db, target_type, target_id, event_id=event_id)
            reserved.append((target_id, row.code))
        return reserved

    @staticmethod
    def lookup(
        db: Session,
        code: str,
        expected_type: Union[ShortCodeType, str]
    ) -> Optional[ShortCode]:
        """
        依 (code, target_type) 取得整筆 ShortCode

        參數：
            db: SQLAlchemy Session
            code: 使用者提供的代碼（大小寫不拘）
            expected_type: 呼叫端預期的種類；種類不符視同不存在

        返回：
            ShortCode，找不到時回傳 None（不丟例外）
        """
        normalized = normalize_short_code(code or "")
        if not is_well_formed(normalized):
            return None

        return db.query(ShortCode).filter(
            ShortCode.code == normalized,
            ShortCode.target_type == ShortCodeType(expected_type)
        ).first()

    @classmethod
    def resolve(
        cls,
        db: Session,
        code: str,
        expected_type: Union[ShortCodeType, str]
    ) -> Optional[UUID]:
        """解析短代碼，回傳目標 UUID；找不到時回傳 None"""
        row = cls.lookup(db, code, expected_type)
        return row.target_id if row else None

    @staticmethod
    def code_for(
        db: Session,
        target_type: ShortCodeType,
        target_id: UUID
    ) -> Optional[str]:
        """反查某個實體目前的短代碼（後台顯示連結用）"""
        row = db.query(ShortCode.code).filter(
            ShortCode.target_type == target_type,
            ShortCode.target_id == target_id
        ).order_by(ShortCode.created_at).first()
        return row.code if row else None

    @staticmethod
    def codes_for(
        db: Session,
        target_type: ShortCodeType,
        target_ids: Iterable[UUID]
    ) -> Dict[UUID, str]:
        """批次反查：{target_id: code}"""
        ids = list(target_ids)
        if not ids:
            return {}
        rows = db.query(ShortCode.target_id, ShortCode.code).filter(
            ShortCode.target_type == target_type,
            ShortCode.target_id.in_(ids)
        ).all()
        return {row.target_id: row.code for row in rows}
