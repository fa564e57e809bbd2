# marketplace/routers/review_router.py

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from marketplace.core.database import get_db
from marketplace.core.security import get_current_user
from marketplace.models.user import User
from marketplace.services.review_service import ReviewService
from marketplace.schemas.review_schema import ReviewCreate, ReviewOut, ReviewSubmitOut, ReviewWithReviewerOut

router = APIRouter(
    prefix="/reviews",
    tags=["Reviews"]
)

@router.post(
    "",
    response_model=ReviewSubmitOut,
    status_code=status.HTTP_201_CREATED,
    summary="(雇主) 評價已完成案件的專業人士"
)
async def api_submit_review(
    review_data: ReviewCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    rating 必須是 1-5 的整數，否則回傳 400。
    """
    service = ReviewService(db)
    review = await service.submit_review(current_user, review_data)
    return ReviewSubmitOut(success=True, review=ReviewOut.model_validate(review))

@router.get(
    "",
    response_model=List[ReviewWithReviewerOut],
    summary="某位使用者收到的評價 (個人頁)"
)
async def api_list_reviews(
    target_id: str = Query(..., description="被評價者的 user_id"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = ReviewService(db)
    return await service.list_reviews_for_user(target_id)
