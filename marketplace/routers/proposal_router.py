# marketplace/routers/proposal_router.py

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from marketplace.services.proposal_service import ProposalService
from marketplace.schemas.proposal_schema import ProposalCreate, ProposalOut, AcceptOut, CompleteOut

from marketplace.models.user import User
from marketplace.core.security import get_current_user # 依賴注入：獲取當前使用者
from marketplace.core.database import get_db # 依賴注入：獲取 DB Session

router = APIRouter(
    prefix="/proposals",
    tags=["Proposals"] # API 文件分組
)

# 輔助函式：在路由中快速實例化 Service
def get_proposal_service(db: AsyncSession = Depends(get_db)) -> ProposalService:
    return ProposalService(db)

@router.get(
    "",
    response_model=List[ProposalOut],
    summary="案件列表 (feed)"
)
async def api_list_proposals(
    page: int = Query(1, description="從 1 開始"),
    limit: Optional[int] = Query(None, description="每頁筆數，上限 50"),
    area: Optional[str] = Query(None, description="area_tag 部分比對 (不分大小寫)"),
    lat: Optional[float] = Query(None),
    lng: Optional[float] = Query(None),
    radius: Optional[float] = Query(None, description="搜尋半徑 (公里)"),
    contractor_id: Optional[str] = Query(None, description="只看某位雇主的案件 (所有狀態)"),
    only_open: bool = Query(False),
    match_specialty: bool = Query(False, description="只看符合我專長的案件"),
    service: ProposalService = Depends(get_proposal_service),
    current_user: User = Depends(get_current_user)
):
    """
    沒有 contractor_id 時只回傳 OPEN 的案件，新的在前。
    回傳筆數等於 limit 時，前端可再請求下一頁。
    """
    return await service.list_proposals(
        current_user,
        page=page,
        limit=limit,
        area=area,
        lat=lat,
        lng=lng,
        radius=radius,
        contractor_id=contractor_id,
        only_open=only_open,
        match_specialty=match_specialty,
    )

@router.get(
    "/{proposal_id}",
    response_model=ProposalOut,
    summary="檢視案件詳情"
)
async def api_get_proposal(
    proposal_id: int,
    service: ProposalService = Depends(get_proposal_service),
    current_user: User = Depends(get_current_user)
):
    return await service.get_proposal(proposal_id)

@router.post(
    "",
    response_model=ProposalOut,
    status_code=status.HTTP_201_CREATED,
    summary="(雇主) 刊登新案件"
)
async def api_create_proposal(
    proposal_data: ProposalCreate,
    service: ProposalService = Depends(get_proposal_service),
    current_user: User = Depends(get_current_user)
):
    return await service.create_proposal(current_user, proposal_data)

@router.post(
    "/{proposal_id}/accept",
    response_model=AcceptOut,
    summary="(專業人士) 接案"
)
async def api_accept_proposal(
    proposal_id: int,
    service: ProposalService = Depends(get_proposal_service),
    current_user: User = Depends(get_current_user)
):
    """
    OPEN -> NEGOTIATING，並回傳協商聊天室的 session_id。
    案件已被其他人接下時回傳 409。
    """
    return await service.accept(proposal_id, current_user)

@router.post(
    "/{proposal_id}/complete",
    response_model=CompleteOut,
    summary="(雇主) 結案"
)
async def api_complete_proposal(
    proposal_id: int,
    service: ProposalService = Depends(get_proposal_service),
    current_user: User = Depends(get_current_user)
):
    """
    NEGOTIATING -> COMPLETED。
    前端收到 review_target_id 後應立即請雇主評價。
    """
    return await service.complete(proposal_id, current_user)
