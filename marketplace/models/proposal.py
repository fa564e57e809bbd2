# marketplace/models/proposal.py
import enum
from sqlalchemy import Column, String, Text, Float, Integer, ForeignKey, Enum, TIMESTAMP, CHAR, func
from sqlalchemy.orm import relationship
from marketplace.core.database import Base

# 案件狀態機：OPEN -> NEGOTIATING -> COMPLETED (終態)
class ProposalStatusEnum(str, enum.Enum):
    open = "OPEN"
    negotiating = "NEGOTIATING"
    completed = "COMPLETED"

class Proposal(Base):
    __tablename__ = "proposals"

    # 流水號，列表依此排序
    proposal_id = Column(Integer, primary_key=True, autoincrement=True)

    contractor_id = Column(CHAR(36), ForeignKey("users.user_id"), nullable=False, index=True)
    # 接案後才會設定，且只設定一次
    professional_id = Column(CHAR(36), ForeignKey("users.user_id"), nullable=True, index=True)
    # 直接邀請 (direct hire) 的對象
    target_professional_id = Column(CHAR(36), ForeignKey("users.user_id"), nullable=True, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    area_tag = Column(String(255))
    location = Column(String(255))
    budget_range = Column(String(255))
    latitude = Column(Float)
    longitude = Column(Float)

    status = Column(
        Enum(ProposalStatusEnum, values_callable=lambda obj: [e.value for e in obj]),
        default=ProposalStatusEnum.open,
        nullable=False,
        index=True
    )

    created_at = Column(TIMESTAMP, server_default=func.now())
    completed_at = Column(TIMESTAMP, nullable=True)

    # --- 建立關聯 (Relationships) ---
    contractor = relationship("User", foreign_keys=[contractor_id], lazy="selectin")
    professional = relationship("User", foreign_keys=[professional_id], lazy="selectin")

    # 1-to-1：每個案件最多一個協商聊天室
    negotiation_session = relationship(
        "NegotiationSession",
        back_populates="proposal",
        uselist=False
    )

    @property
    def coordinates(self):
        if self.latitude is None or self.longitude is None:
            return None
        return {"lat": self.latitude, "lng": self.longitude}
