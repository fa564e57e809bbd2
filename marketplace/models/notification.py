# marketplace/models/notification.py

import enum
from sqlalchemy import Column, String, TEXT, BOOLEAN, CHAR, Integer, ForeignKey, TIMESTAMP, Enum, func
from marketplace.core.database import Base


class NotificationTypeEnum(str, enum.Enum):
    message = "MESSAGE"
    proposal = "PROPOSAL"
    review = "REVIEW"


class Notification(Base):
    __tablename__ = "notifications"

    notification_id = Column(Integer, primary_key=True, autoincrement=True)

    # (重要) 關聯到接收通知的 user
    user_id = Column(CHAR(36), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(
        Enum(NotificationTypeEnum, values_callable=lambda obj: [e.value for e in obj]),
        nullable=False
    )
    title = Column(String(255), nullable=False)
    message = Column(TEXT)

    # 點擊通知後要導向的前端 URL
    link_url = Column(String(500))
    # 聊天相關通知會帶上聊天室 ID
    session_id = Column(Integer, nullable=True)

    is_read = Column(BOOLEAN, default=False, nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())
