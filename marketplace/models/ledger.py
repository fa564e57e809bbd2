# marketplace/models/ledger.py
# 模擬錢包的帳務紀錄 (案件完成時入帳給專業人士)

import enum
from sqlalchemy import Column, String, Integer, DECIMAL, CHAR, ForeignKey, TIMESTAMP, Enum, func
from marketplace.core.database import Base


class TransactionTypeEnum(str, enum.Enum):
    income = "INCOME"
    withdrawal = "WITHDRAWAL"


class TransactionStatusEnum(str, enum.Enum):
    completed = "COMPLETED"
    pending = "PENDING"
    failed = "FAILED"


class Transaction(Base):
    __tablename__ = "transactions"

    transaction_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(CHAR(36), ForeignKey("users.user_id"), nullable=False, index=True)
    type = Column(
        Enum(TransactionTypeEnum, values_callable=lambda obj: [e.value for e in obj]),
        nullable=False
    )
    amount = Column(DECIMAL(10, 2), nullable=False)
    description = Column(String(255))
    status = Column(
        Enum(TransactionStatusEnum, values_callable=lambda obj: [e.value for e in obj]),
        default=TransactionStatusEnum.completed,
        nullable=False
    )
    related_proposal_id = Column(Integer, ForeignKey("proposals.proposal_id"), nullable=True, index=True)
    created_at = Column(TIMESTAMP, server_default=func.now())
