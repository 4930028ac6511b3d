"""
命名服務：生成短代碼

純計算邏輯，不涉及資料庫
"""
import re
import secrets
import string

SHORT_CODE_ALPHABET = string.ascii_lowercase + string.digits
SHORT_CODE_LENGTH = 8

_SHORT_CODE_PATTERN = re.compile(rf"^[a-z0-9]{{{SHORT_CODE_LENGTH}}}$")


def generate_short_code() -> str:
    """
    生成隨機的 8 碼小寫英數短代碼

    範例：k3x9a0qz, 7bmw2c4d

    注意：
    - 使用 secrets（密碼學等級亂數），代碼會印在 QR code 上，不能被猜出
    - 不檢查唯一性（由呼叫者負責）
    - 36^8 ≈ 2.8 兆種可能，碰撞機率極低
    """
    return ''.join(secrets.choice(SHORT_CODE_ALPHABET) for _ in range(SHORT_CODE_LENGTH))


def normalize_short_code(code: str) -> str:
    """去掉前後空白並轉小寫（印刷品上的代碼常被手動輸入成大寫）"""
    return code.strip().lower()


def is_well_formed(code: str) -> bool:
    """檢查已正規化的代碼是否符合 8 碼 [a-z0-9]"""
    return bool(_SHORT_CODE_PATTERN.match(code))
