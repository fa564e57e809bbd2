# marketplace/schemas/proposal_schema.py
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional

from marketplace.models.proposal import ProposalStatusEnum
from marketplace.schemas.user_schema import UserBrief


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


# --- 建立 (Create) ---
class ProposalCreate(BaseModel):
    # 必填檢查 (非空白) 由 Service 層負責，統一回傳 ValidationError
    title: str
    description: str
    area_tag: Optional[str] = None
    location: Optional[str] = None
    budget_range: Optional[str] = None
    target_professional_id: Optional[str] = None
    coordinates: Optional[Coordinates] = None


# --- 讀取 (Read / Out) ---
class ProposalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    proposal_id: int
    contractor_id: str
    professional_id: Optional[str] = None
    target_professional_id: Optional[str] = None
    title: str
    description: str
    area_tag: Optional[str] = None
    location: Optional[str] = None
    budget_range: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    status: ProposalStatusEnum
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    # 巢狀顯示發案者
    contractor: Optional[UserBrief] = None


class AcceptOut(BaseModel):
    success: bool = True
    session_id: int


class CompleteOut(BaseModel):
    """完成後，前端應立即請雇主對 review_target_id 評價"""
    success: bool = True
    proposal_id: int
    review_target_id: str
