# marketplace/repositories/review_repo.py

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List

from marketplace.models.review import Review

class ReviewRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_review(self, review: Review) -> Review:
        """
        新增評價 (不 Commit，與評分更新同一個交易)
        """
        self.db.add(review)
        await self.db.flush()
        await self.db.refresh(review)
        return review

    async def list_reviews_by_target(self, target_id: str) -> List[Review]:
        stmt = (
            select(Review)
            .where(Review.target_id == target_id)
            .order_by(Review.review_id.desc())
        )
        result = await self.db.execute(stmt)
        return result.scalars().all()
