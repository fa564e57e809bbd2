# marketplace/core/security.py
# 負責 JWT 權杖的產生與驗證 (權杖由外部身分提供者簽發，共用同一把秘鑰)
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from jose import JWTError, jwt
from fastapi import Depends, Query, WebSocket, WebSocketException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import settings
from marketplace.core.database import get_db
from marketplace.core.exceptions import UnauthorizedError
from marketplace.schemas.user_schema import TokenData
from marketplace.repositories.user_repo import UserRepository
from marketplace.models.user import User

logger = logging.getLogger(__name__)

# 定義 Token 從哪裡來 (Authorization Header)
# auto_error=False：由我們自己丟出 UnauthorizedError
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    根據傳入的 data (user_id, role) 產生 JWT access token
    """
    to_encode = data.copy() # 避免修改原始資料
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM
    )


def create_token_for_user(user: User) -> str:
    return create_access_token({
        "sub": user.email,
        "user_id": str(user.user_id),
        "role": user.role.value,
    })


def verify_access_token(token: Optional[str]) -> TokenData | None:
    """
    驗證 JWT，回傳 TokenData (Pydantic Model) 或 None
    """
    if not token:
        return None
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError:
        return None

    user_id = payload.get("user_id")
    role = payload.get("role")
    if user_id is None or role is None:
        return None

    return TokenData(user_id=user_id, role=role)


async def resolve_principal(token: Optional[str], db: AsyncSession) -> User | None:
    """Token -> 有效且未停權的 User；任何失敗都回傳 None"""
    token_data = verify_access_token(token)
    if token_data is None:
        return None

    user = await UserRepository(db).get_user_by_id(token_data.user_id)
    if user is None or not user.is_active:
        return None
    return user


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    FastAPI 依賴項：驗證 Token 並回傳 User Model (用於 REST API)
    """
    user = await resolve_principal(token, db)
    if user is None:
        raise UnauthorizedError()
    return user


async def get_current_user_from_websocket_token(
    websocket: WebSocket,
    token: Optional[str] = Query(None), # ?token=...
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    WebSocket 專用的 Token 驗證依賴。
    Token 可放在 query string 或 Authorization header；
    驗證失敗時在 handshake 階段就關閉 (1008)，不會 accept。
    """
    if token is None:
        auth_header = websocket.headers.get("authorization", "")
        scheme, _, credentials = auth_header.partition(" ")
        if scheme.lower() == "bearer" and credentials:
            token = credentials

    user = await resolve_principal(token, db)
    # 連線期間不持有交易：User 與 session 分離後結束 handshake 的查詢交易
    if user is not None:
        db.expunge(user)
    await db.rollback()
    if user is None:
        logger.info("Rejected WebSocket handshake: invalid credentials")
        raise WebSocketException(
            code=status.WS_1008_POLICY_VIOLATION,
            reason="Could not validate credentials"
        )
    return user
