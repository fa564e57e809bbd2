# marketplace/core/exceptions.py
# 錯誤分類：全部繼承 HTTPException，Service 層可以直接 raise，
# 由 main.py 的 exception handler 統一輸出 {"detail": ..., "error": ...}
from typing import Optional, Dict
from fastapi import HTTPException, status


class AppError(HTTPException):
    error_code = "INTERNAL_ERROR"
    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str, headers: Optional[Dict[str, str]] = None):
        super().__init__(status_code=self.default_status, detail=detail, headers=headers)


class ValidationError(AppError):
    """欄位缺漏或格式錯誤 (空標題、評分超出範圍、空訊息)"""
    error_code = "VALIDATION_ERROR"
    default_status = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(AppError):
    """憑證缺漏 / 無效 / 過期，或帳號已被停權"""
    error_code = "UNAUTHORIZED"
    default_status = status.HTTP_401_UNAUTHORIZED

    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(AppError):
    error_code = "FORBIDDEN"
    default_status = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    error_code = "NOT_FOUND"
    default_status = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    """狀態衝突，例如案件已被其他專業人士接下"""
    error_code = "CONFLICT"
    default_status = status.HTTP_409_CONFLICT


class TransientIOError(AppError):
    """資料庫或網路暫時無法使用"""
    error_code = "TRANSIENT_IO"
    default_status = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, detail: str = "Storage temporarily unavailable"):
        super().__init__(detail)
