# marketplace/schemas/notification_schema.py

from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional

from marketplace.models.notification import NotificationTypeEnum

class NotificationOut(BaseModel):
    """
    用於 API 回傳 / WebSocket 推播的通知格式
    """
    model_config = ConfigDict(from_attributes=True)

    notification_id: int
    user_id: str
    type: NotificationTypeEnum
    title: str
    message: Optional[str] = None
    link_url: Optional[str] = None
    session_id: Optional[int] = None
    is_read: bool
    created_at: Optional[datetime] = None
