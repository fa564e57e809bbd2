# marketplace/services/notification_service.py

from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import logging

from marketplace.core.exceptions import NotFoundError, ForbiddenError
from marketplace.core.websocket_manager import ConnectionManager, manager, user_channel
from marketplace.models.user import User
from marketplace.models.notification import Notification, NotificationTypeEnum
from marketplace.repositories.notification_repo import NotificationRepository
from marketplace.schemas.notification_schema import NotificationOut

logger = logging.getLogger(__name__)

class NotificationService:
    def __init__(self, db: AsyncSession, hub: ConnectionManager = manager):
        self.db = db
        self.hub = hub
        self.repo = NotificationRepository(db)

    async def create_notification(
        self,
        user_id: str,
        type: NotificationTypeEnum,
        title: str,
        link_url: Optional[str] = None,
        message: Optional[str] = None,
        session_id: Optional[int] = None,
    ) -> Notification:
        """
        (內部使用) 供其他 Service 呼叫的介面。
        只寫入目前的交易，由呼叫端 commit 之後再呼叫 dispatch() 推播。
        """
        new_notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            link_url=link_url,
            session_id=session_id,
            is_read=False
        )
        logger.info(f"建立通知 for User ID: {user_id}, Title: {title}")
        return await self.repo.create_notification(new_notification)

    def dispatch(self, notification: Notification) -> int:
        """commit 之後，推播到接收者的個人 channel"""
        payload = NotificationOut.model_validate(notification).model_dump(mode="json")
        return self.hub.publish(user_channel(notification.user_id), "notification", payload)

    async def get_my_notifications(self, user: User) -> List[Notification]:
        """
        (API 用) 獲取當前登入者的通知列表
        """
        return await self.repo.list_notifications_by_user(user.user_id)

    async def mark_notification_as_read(self, notification_id: int, user: User) -> Notification:
        notification = await self.repo.get_notification_by_id(notification_id)

        if not notification:
            raise NotFoundError("Notification not found")

        # 只能標記自己的通知
        if notification.user_id != user.user_id:
            raise ForbiddenError("Not allowed to modify this notification")

        if notification.is_read:
            return notification # 已讀，直接回傳

        return await self.repo.mark_as_read(notification)
