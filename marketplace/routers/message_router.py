# marketplace/routers/message_router.py

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession
import json
import logging

from marketplace.core.database import get_db
from marketplace.core.security import get_current_user, get_current_user_from_websocket_token
from marketplace.core.websocket_manager import manager
from marketplace.models.user import User
from marketplace.services.message_service import MessageService
from marketplace.schemas.message_schema import MessageCreateRequest, MessageStatusUpdate, SendMessageOut

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Messages"]
)

def get_message_service(db: AsyncSession = Depends(get_db)) -> MessageService:
    return MessageService(db)

@router.post(
    "/messages",
    response_model=SendMessageOut,
    status_code=status.HTTP_201_CREATED,
    summary="傳送訊息 (text / image / schedule)"
)
async def api_send_message(
    message_data: MessageCreateRequest,
    service: MessageService = Depends(get_message_service),
    current_user: User = Depends(get_current_user)
):
    """
    儲存後會推播 `new_message` 到聊天室 channel。
    """
    message = await service.send_message(message_data.root, current_user)
    return SendMessageOut(success=True, message=message)

@router.put(
    "/messages/{message_id}/status",
    response_model=SendMessageOut,
    summary="確認 / 拒絕約訪"
)
async def api_update_schedule_status(
    message_id: int,
    body: MessageStatusUpdate,
    service: MessageService = Depends(get_message_service),
    current_user: User = Depends(get_current_user)
):
    message = await service.update_schedule_status(message_id, body.status, current_user)
    return SendMessageOut(success=True, message=message)


# --- WebSocket 端點 ---
@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    # 驗證失敗時 handshake 階段就以 1008 關閉
    current_user: User = Depends(get_current_user_from_websocket_token),
    db: AsyncSession = Depends(get_db)
):
    """
    連線後自動訂閱個人 channel (user:<id>)。
    客戶端指令：{"action": "join_session" | "leave_session", "session_id": n}、{"action": "ping"}
    """
    subscriber = await manager.connect(websocket, current_user.user_id)
    service = MessageService(db, hub=manager)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                command = json.loads(raw)
            except ValueError:
                subscriber.enqueue({"event": "error", "data": {"detail": "Invalid JSON"}})
                continue
            try:
                await service.handle_client_command(subscriber, current_user, command)
            finally:
                # 每個指令結束就歸還 DB 連線，閒置的 socket 不佔用連線池
                await db.rollback()

    except WebSocketDisconnect:
        logger.info(f"WebSocket closed by user {current_user.user_id}.")
    finally:
        manager.disconnect(subscriber)
