# marketplace/schemas/user_schema.py
from pydantic import BaseModel, ConfigDict
from typing import Optional
from marketplace.models.user import UserRoleEnum, UserStatusEnum

# Token 內的資料
class TokenData(BaseModel):
    user_id: str
    role: str

# 當前使用者 (不含敏感資料)
class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    name: str
    email: str
    role: UserRoleEnum
    status: UserStatusEnum
    avatar_url: Optional[str] = None
    specialty: Optional[str] = None
    xp: int
    rating: float
    reviews_count: int

# 精簡版，用於聊天室參與者、案件發案者等巢狀顯示
class UserBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    name: str
    avatar_url: Optional[str] = None
    role: UserRoleEnum

# 遊戲化等級
class LevelProgressOut(BaseModel):
    xp: int
    current_level: str
    next_level: str
    next_level_xp: int
    progress: int
