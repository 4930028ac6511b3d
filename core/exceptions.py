"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理
每個異常帶有對應的 HTTP status_code，由 main.py 的 exception handler 轉成回應
"""


class BeerVoteException(Exception):
    """所有業務異常的基類"""
    status_code = 500


# ============ 查詢相關異常 ============

class NotFound(BeerVoteException):
    """短代碼或 ID 無法解析（未登入的呼叫者一律收到這個，避免洩漏資源是否存在）"""
    status_code = 404

    def __init__(self, what):
        self.what = what
        super().__init__(f"{what} not found")


# ============ 授權相關異常 ============

class Forbidden(BeerVoteException):
    """已登入，但目標資源不在 scope 內"""
    status_code = 403


class LastAdminViolation(BeerVoteException):
    """操作會讓某個 scope 沒有任何管理員"""
    status_code = 409


# ============ 輸入與一致性異常 ============

class Invalid(BeerVoteException):
    """輸入格式錯誤：缺少名稱、分數超出範圍、文字過長等"""
    status_code = 400


class Conflict(BeerVoteException):
    """違反唯一性或參照完整性（重複的 email、組織名稱，或組織仍有資料）"""
    status_code = 409


# ============ 短代碼相關異常 ============

class CodeSpaceExhausted(BeerVoteException):
    """連續多次碰撞，無法產生新的短代碼"""
    status_code = 503

    def __init__(self, attempts):
        self.attempts = attempts
        super().__init__(f"Could not allocate a unique short code after {attempts} attempts")


# ============ 揭曉流程異常 ============

class CeremonyComplete(BeerVoteException):
    """reveal_stage 已經是最大值，不能再前進"""
    status_code = 409

    def __init__(self, event_id):
        self.event_id = event_id
        super().__init__(f"Reveal ceremony for event {event_id} is already complete")
