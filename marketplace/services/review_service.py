# marketplace/services/review_service.py

from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import logging

from marketplace.core.exceptions import ValidationError, ForbiddenError, NotFoundError, ConflictError
from marketplace.core.websocket_manager import ConnectionManager, manager
from marketplace.models.user import User
from marketplace.models.proposal import ProposalStatusEnum
from marketplace.models.review import Review
from marketplace.models.notification import NotificationTypeEnum
from marketplace.repositories.proposal_repo import ProposalRepository
from marketplace.repositories.review_repo import ReviewRepository
from marketplace.repositories.user_repo import UserRepository
from marketplace.schemas.review_schema import ReviewCreate
from marketplace.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


class ReviewService:
    def __init__(self, db: AsyncSession, hub: ConnectionManager = manager):
        self.db = db
        self.proposal_repo = ProposalRepository(db)
        self.review_repo = ReviewRepository(db)
        self.user_repo = UserRepository(db)
        self.notification_service = NotificationService(db, hub=hub)

    async def list_reviews_for_user(self, target_id: str) -> List[Review]:
        """某位使用者收到的評價，新的在前"""
        if await self.user_repo.get_user_by_id(target_id) is None:
            raise NotFoundError("User not found")
        return await self.review_repo.list_reviews_by_target(target_id)

    async def submit_review(self, reviewer: User, review_data: ReviewCreate) -> Review:
        """
        雇主對已完成案件的專業人士評價。
        評價寫入與平均分數重算在同一個交易中 commit。
        """
        if not MIN_RATING <= review_data.rating <= MAX_RATING:
            raise ValidationError(f"rating must be between {MIN_RATING} and {MAX_RATING}")

        proposal = await self.proposal_repo.get_proposal_by_id(review_data.proposal_id)
        if not proposal:
            raise NotFoundError("Proposal not found")
        if proposal.status != ProposalStatusEnum.completed:
            raise ConflictError("Only completed proposals can be reviewed")
        if proposal.contractor_id != reviewer.user_id:
            raise ForbiddenError("Only the contractor of this proposal can review it")
        if review_data.target_id != proposal.professional_id:
            raise ValidationError("target_id must be the professional assigned to this proposal")

        review = await self.review_repo.create_review(Review(
            proposal_id=proposal.proposal_id,
            reviewer_id=reviewer.user_id,
            target_id=review_data.target_id,
            rating=review_data.rating,
            comment=review_data.comment,
        ))
        await self.user_repo.apply_rating(review_data.target_id, review_data.rating)
        notification = await self.notification_service.create_notification(
            user_id=review_data.target_id,
            type=NotificationTypeEnum.review,
            title=f"New {review_data.rating}-star review",
            message=review_data.comment,
            link_url=f"/proposals/{proposal.proposal_id}",
        )
        await self.db.commit()
        self.notification_service.dispatch(notification)

        logger.info(f"Review {review.review_id} ({review.rating}) for {review.target_id} on proposal {proposal.proposal_id}.")
        return review
