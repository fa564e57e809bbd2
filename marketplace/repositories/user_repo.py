# marketplace/repositories/user_repo.py
# 負責與使用者相關的資料庫操作
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from marketplace.models.user import User

class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_id(self, user_id: str) -> User | None:
        """
        透過 user_id 查詢使用者
        """
        stmt = (
            select(User)
            .where(User.user_id == user_id)
            .execution_options(populate_existing=True) # 取得 UPDATE 之後的最新 xp / rating
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def get_users_by_ids(self, user_ids: List[str]) -> List[User]:
        if not user_ids:
            return []
        stmt = select(User).where(User.user_id.in_(user_ids))
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def add_xp(self, user_id: str, amount: int) -> None:
        """以單一 UPDATE 累加經驗值 (不做 read-modify-write)"""
        stmt = (
            update(User)
            .where(User.user_id == user_id)
            .values(xp=User.xp + amount)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)

    async def apply_rating(self, user_id: str, rating: int) -> None:
        """
        以單一 UPDATE 重新計算平均評分：
        new_avg = (old_avg * old_count + rating) / (old_count + 1)
        """
        stmt = (
            update(User)
            .where(User.user_id == user_id)
            .values(
                rating=(User.rating * User.reviews_count + rating) / (User.reviews_count + 1),
                reviews_count=User.reviews_count + 1,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)
