# marketplace/models/review.py

from sqlalchemy import Column, Text, Integer, CHAR, ForeignKey, TIMESTAMP, func
from sqlalchemy.orm import relationship
from marketplace.core.database import Base

class Review(Base):
    __tablename__ = "reviews"

    review_id = Column(Integer, primary_key=True, autoincrement=True)
    # 同一個案件可有多筆評價 (未設 unique)
    proposal_id = Column(Integer, ForeignKey("proposals.proposal_id"), nullable=False, index=True)
    reviewer_id = Column(CHAR(36), ForeignKey("users.user_id"), nullable=False, index=True)
    target_id = Column(CHAR(36), ForeignKey("users.user_id"), nullable=False, index=True)

    rating = Column(Integer, nullable=False)
    comment = Column(Text)
    created_at = Column(TIMESTAMP, server_default=func.now())

    reviewer = relationship("User", foreign_keys=[reviewer_id], lazy="selectin")
