# marketplace/repositories/notification_repo.py

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional

from marketplace.models.notification import Notification

class NotificationRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_notification(self, notification: Notification) -> Notification:
        """
        新增一筆通知 (不 Commit，與觸發它的狀態變更同一個交易)
        """
        self.db.add(notification)
        await self.db.flush()
        # 取得 DB 產生的預設值 (例如 created_at)
        await self.db.refresh(notification)
        return notification

    async def get_notification_by_id(self, notification_id: int) -> Optional[Notification]:
        """
        依 ID 獲取通知 (主要用於權限檢查)
        """
        stmt = select(Notification).where(Notification.notification_id == notification_id)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def list_notifications_by_user(self, user_id: str, limit: int = 50) -> List[Notification]:
        """
        獲取某位使用者的通知 (新的在前)
        """
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.notification_id.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def mark_as_read(self, notification: Notification) -> Notification:
        """
        將單一通知設為已讀
        """
        notification.is_read = True
        await self.db.flush()
        await self.db.commit()
        await self.db.refresh(notification)
        return notification
