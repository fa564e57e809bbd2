# marketplace/routers/user_router.py

from fastapi import APIRouter, Depends

from marketplace.models.user import User
from marketplace.schemas.user_schema import UserOut, LevelProgressOut
from marketplace.core.security import get_current_user
from marketplace.utils.gamification import compute_level_progress

router = APIRouter(
    prefix="/users",
    tags=["Users"]
)

@router.get("/me", response_model=UserOut)
async def read_users_me(current_user: User = Depends(get_current_user)):
    """
    獲取當前登入者的資訊
    """
    return current_user

@router.get("/me/progress", response_model=LevelProgressOut, summary="我的等級與經驗值進度")
async def read_my_progress(current_user: User = Depends(get_current_user)):
    return compute_level_progress(current_user.xp)
