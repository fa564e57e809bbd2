# marketplace/schemas/review_schema.py
from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional

from marketplace.schemas.user_schema import UserBrief

class ReviewCreate(BaseModel):
    proposal_id: int
    target_id: str
    # 範圍 (1-5) 由 Service 層檢查，回傳 ValidationError
    rating: int
    comment: Optional[str] = None

class ReviewOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    review_id: int
    proposal_id: int
    reviewer_id: str
    target_id: str
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

class ReviewSubmitOut(BaseModel):
    success: bool = True
    review: ReviewOut

# 個人頁的評價列表：附上評價者
class ReviewWithReviewerOut(ReviewOut):
    reviewer: UserBrief
