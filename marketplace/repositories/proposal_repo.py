# marketplace/repositories/proposal_repo.py

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from typing import List, Optional

from marketplace.models.proposal import Proposal, ProposalStatusEnum

class ProposalRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_proposal_by_id(self, proposal_id: int) -> Optional[Proposal]:
        """
        透過 ID 獲取單一案件 (含發案者)
        """
        stmt = (
            select(Proposal)
            .where(Proposal.proposal_id == proposal_id)
            # 條件式 UPDATE 不會同步 Session 內的物件，這裡強制覆寫成資料庫的最新狀態
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def list_proposals(
        self,
        contractor_id: Optional[str] = None,
        only_open: bool = False,
        area: Optional[str] = None,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Proposal]:
        """
        案件列表：
        - 指定 contractor_id：該雇主的所有案件 (可只看 OPEN)
        - 未指定：只回傳 OPEN 的案件 (feed)
        新的在前；offset / limit 為 None 時回傳全部 (交給 Service 做地理 / 專長過濾)
        """
        stmt = select(Proposal)

        if contractor_id is not None:
            stmt = stmt.where(Proposal.contractor_id == contractor_id)
            if only_open:
                stmt = stmt.where(Proposal.status == ProposalStatusEnum.open)
        else:
            stmt = stmt.where(Proposal.status == ProposalStatusEnum.open)

        if area:
            stmt = stmt.where(Proposal.area_tag.ilike(f"%{area}%"))

        stmt = stmt.order_by(Proposal.proposal_id.desc())
        if offset is not None:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def create_proposal(self, proposal: Proposal) -> Proposal:
        """
        新增案件 (由 Service 決定何時 commit)
        """
        self.db.add(proposal)
        await self.db.flush()
        return proposal

    async def accept_if_open(self, proposal_id: int, professional_id: str) -> int:
        """
        OPEN -> NEGOTIATING 的條件式更新 (compare-and-swap)。
        回傳受影響筆數：0 表示案件不存在或已不是 OPEN。
        """
        stmt = (
            update(Proposal)
            .where(
                Proposal.proposal_id == proposal_id,
                Proposal.status == ProposalStatusEnum.open
            )
            .values(
                status=ProposalStatusEnum.negotiating,
                professional_id=professional_id
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount

    async def complete_if_negotiating(self, proposal_id: int) -> int:
        """
        NEGOTIATING -> COMPLETED 的條件式更新，同時寫入完成時間
        """
        stmt = (
            update(Proposal)
            .where(
                Proposal.proposal_id == proposal_id,
                Proposal.status == ProposalStatusEnum.negotiating
            )
            .values(
                status=ProposalStatusEnum.completed,
                completed_at=func.now()
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount
