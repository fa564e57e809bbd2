# marketplace/models/negotiation.py

import enum
from sqlalchemy import Column, String, Text, Integer, Date, ForeignKey, TIMESTAMP, Enum, func, Boolean
from sqlalchemy.orm import relationship
from marketplace.core.database import Base

# 系統訊息的發送者
SYSTEM_SENDER_ID = "system"


class MessageKindEnum(str, enum.Enum):
    text = "text"
    image = "image"
    schedule = "schedule"


class ScheduleStatusEnum(str, enum.Enum):
    pending = "PENDING"
    confirmed = "CONFIRMED"
    rejected = "REJECTED"


class NegotiationSession(Base):
    __tablename__ = "negotiation_sessions"
    session_id = Column(Integer, primary_key=True, autoincrement=True)

    # unique=True：一個案件只會有一個聊天室 (get-or-create 的最後防線)
    proposal_id = Column(Integer, ForeignKey("proposals.proposal_id"), nullable=False, unique=True, index=True)

    created_at = Column(TIMESTAMP, server_default=func.now())

    proposal = relationship("Proposal", back_populates="negotiation_session", lazy="selectin")
    messages = relationship(
        "Message",
        back_populates="session",
        order_by="Message.message_id",
        cascade="all, delete-orphan"
    )


class Message(Base):
    __tablename__ = "messages"
    # 流水號 = 插入順序，聊天室內的訊息永遠依此排序
    message_id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(Integer, ForeignKey("negotiation_sessions.session_id", ondelete="CASCADE"), nullable=False, index=True)
    # 使用者 ID，或系統訊息的 SYSTEM_SENDER_ID
    sender_id = Column(String(36), nullable=False, index=True)
    is_system = Column(Boolean, default=False, nullable=False)
    text = Column(Text, nullable=False)
    kind = Column(
        Enum(MessageKindEnum, values_callable=lambda obj: [e.value for e in obj]),
        default=MessageKindEnum.text,
        nullable=False
    )

    # kind = image
    media_url = Column(String(500))
    # kind = schedule (唯一可在建立後變動的欄位是 schedule_status)
    schedule_date = Column(Date)
    schedule_time = Column(String(5))
    schedule_status = Column(
        Enum(ScheduleStatusEnum, values_callable=lambda obj: [e.value for e in obj]),
        nullable=True
    )

    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())

    session = relationship("NegotiationSession", back_populates="messages")

    @property
    def payload(self) -> dict:
        """依 kind 組出對應的 payload (供 MessageOut 的 tagged union 驗證)"""
        if self.kind == MessageKindEnum.image:
            return {"kind": "image", "media_url": self.media_url}
        if self.kind == MessageKindEnum.schedule:
            return {
                "kind": "schedule",
                "date": self.schedule_date,
                "time": self.schedule_time,
                "status": self.schedule_status,
            }
        return {"kind": "text"}
