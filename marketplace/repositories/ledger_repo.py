# marketplace/repositories/ledger_repo.py

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List

from marketplace.models.ledger import Transaction

class LedgerRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        self.db.add(transaction)
        await self.db.flush()
        return transaction

    async def list_transactions_by_user(self, user_id: str) -> List[Transaction]:
        """使用者的帳務紀錄，新的在前"""
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.transaction_id.desc())
        )
        result = await self.db.execute(stmt)
        return result.scalars().all()
