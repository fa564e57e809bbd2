# marketplace/routers/chat_router.py
# 聊天室與約訪的讀取 API (同時是 WebSocket 推播的輪詢備援)

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from marketplace.core.database import get_db
from marketplace.core.security import get_current_user
from marketplace.models.user import User
from marketplace.services.message_service import MessageService
from marketplace.schemas.message_schema import SessionSummary, MessageOut, AppointmentOut

router = APIRouter(
    tags=["Chats"]
)

def get_message_service(db: AsyncSession = Depends(get_db)) -> MessageService:
    return MessageService(db)

@router.get(
    "/chats",
    response_model=List[SessionSummary],
    summary="獲取我的聊天室列表"
)
async def api_list_sessions(
    service: MessageService = Depends(get_message_service),
    current_user: User = Depends(get_current_user)
):
    """
    包含最後一則訊息與未讀數量，新的聊天室在前。
    """
    return await service.list_sessions_for_user(current_user)

@router.get(
    "/chats/{session_id}/messages",
    response_model=List[MessageOut],
    summary="獲取聊天室歷史訊息"
)
async def api_list_messages(
    session_id: int,
    after_id: Optional[int] = Query(None, description="只回傳 message_id 大於此值的訊息"),
    service: MessageService = Depends(get_message_service),
    current_user: User = Depends(get_current_user)
):
    return await service.list_messages(session_id, current_user, after_id=after_id)

@router.get(
    "/appointments",
    response_model=List[AppointmentOut],
    summary="獲取我的約訪行程"
)
async def api_list_appointments(
    service: MessageService = Depends(get_message_service),
    current_user: User = Depends(get_current_user)
):
    return await service.list_appointments(current_user)
