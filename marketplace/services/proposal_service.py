# marketplace/services/proposal_service.py
# 案件狀態機：OPEN -> NEGOTIATING -> COMPLETED
# 每一次狀態轉換都是「條件式 UPDATE + 一次 commit」

from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import logging

from marketplace.core.config import settings
from marketplace.core.exceptions import ValidationError, ForbiddenError, NotFoundError, ConflictError
from marketplace.core.websocket_manager import ConnectionManager, manager
from marketplace.models.user import User, UserRoleEnum
from marketplace.models.proposal import Proposal, ProposalStatusEnum
from marketplace.models.ledger import Transaction, TransactionTypeEnum, TransactionStatusEnum
from marketplace.models.notification import NotificationTypeEnum
from marketplace.repositories.proposal_repo import ProposalRepository
from marketplace.repositories.user_repo import UserRepository
from marketplace.repositories.ledger_repo import LedgerRepository
from marketplace.schemas.proposal_schema import ProposalCreate, AcceptOut, CompleteOut
from marketplace.services.message_service import MessageService
from marketplace.services.notification_service import NotificationService
from marketplace.utils.budget import parse_budget_amount
from marketplace.utils.geo import within_radius
from marketplace.utils.matching import matches_specialty

logger = logging.getLogger(__name__)


class ProposalService:
    def __init__(self, db: AsyncSession, hub: ConnectionManager = manager):
        self.db = db
        self.proposal_repo = ProposalRepository(db)
        self.user_repo = UserRepository(db)
        self.ledger_repo = LedgerRepository(db)
        self.message_service = MessageService(db, hub=hub)
        self.notification_service = NotificationService(db, hub=hub)

    async def create_proposal(self, contractor: User, proposal_data: ProposalCreate) -> Proposal:
        if contractor.role != UserRoleEnum.contractor:
            raise ForbiddenError("Only contractors can create proposals")

        title = (proposal_data.title or "").strip()
        description = (proposal_data.description or "").strip()
        if not title or not description:
            raise ValidationError("title and description are required")

        target = None
        if proposal_data.target_professional_id:
            target = await self.user_repo.get_user_by_id(proposal_data.target_professional_id)
            if target is None or target.role != UserRoleEnum.professional:
                raise ValidationError("target_professional_id must reference a professional")

        new_proposal = Proposal(
            contractor_id=contractor.user_id,
            title=title,
            description=description,
            area_tag=proposal_data.area_tag,
            location=proposal_data.location,
            budget_range=proposal_data.budget_range,
            target_professional_id=proposal_data.target_professional_id,
            latitude=proposal_data.coordinates.lat if proposal_data.coordinates else None,
            longitude=proposal_data.coordinates.lng if proposal_data.coordinates else None,
            status=ProposalStatusEnum.open,
        )
        new_proposal = await self.proposal_repo.create_proposal(new_proposal)

        # 直接邀請：通知被指定的專業人士
        notification = None
        if target is not None:
            notification = await self.notification_service.create_notification(
                user_id=target.user_id,
                type=NotificationTypeEnum.proposal,
                title=f"You were invited to \"{title}\"",
                message=f"{contractor.name} wants to hire you directly.",
                link_url=f"/proposals/{new_proposal.proposal_id}",
            )

        await self.db.commit()
        if notification is not None:
            self.notification_service.dispatch(notification)

        logger.info(f"Proposal {new_proposal.proposal_id} created by {contractor.user_id}.")
        # 重新讀取，帶出 created_at 與發案者
        return await self.proposal_repo.get_proposal_by_id(new_proposal.proposal_id)

    async def get_proposal(self, proposal_id: int) -> Proposal:
        proposal = await self.proposal_repo.get_proposal_by_id(proposal_id)
        if not proposal:
            raise NotFoundError("Proposal not found")
        return proposal

    async def list_proposals(
        self,
        user: User,
        page: int = 1,
        limit: Optional[int] = None,
        area: Optional[str] = None,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        radius: Optional[float] = None,
        contractor_id: Optional[str] = None,
        only_open: bool = False,
        match_specialty: bool = False,
    ) -> List[Proposal]:
        """
        案件列表 / feed。
        只有 area 篩選時在 SQL 分頁；需要距離或專長比對時，先取全部再於記憶體中過濾、分頁。
        """
        if page < 1:
            raise ValidationError("page must be >= 1")
        if limit is None:
            limit = settings.FEED_PAGE_SIZE
        if limit < 1:
            raise ValidationError("limit must be >= 1")
        limit = min(limit, settings.FEED_MAX_PAGE_SIZE)
        if (lat is None) != (lng is None):
            raise ValidationError("lat and lng must be provided together")
        if radius is not None and radius < 0:
            raise ValidationError("radius must be >= 0")

        offset = (page - 1) * limit
        use_geo = lat is not None
        specialties = user.specialties if match_specialty else []

        if not use_geo and not match_specialty:
            return await self.proposal_repo.list_proposals(
                contractor_id=contractor_id,
                only_open=only_open,
                area=area,
                offset=offset,
                limit=limit,
            )

        candidates = await self.proposal_repo.list_proposals(
            contractor_id=contractor_id, only_open=only_open, area=area
        )
        if use_geo:
            radius_km = radius if radius is not None else settings.DEFAULT_SEARCH_RADIUS_KM
            candidates = [
                p for p in candidates
                if within_radius(lat, lng, p.latitude, p.longitude, radius_km)
            ]
        if match_specialty:
            candidates = [p for p in candidates if matches_specialty(p.area_tag, specialties)]

        return candidates[offset:offset + limit]

    async def accept(self, proposal_id: int, professional: User) -> AcceptOut:
        """
        專業人士接案：OPEN -> NEGOTIATING (條件式更新)，同一個交易內建立協商聊天室。
        任何一步失敗整筆回滾，案件維持 OPEN。
        """
        if professional.role != UserRoleEnum.professional:
            raise ForbiddenError("Only professionals can accept proposals")
        # 失敗時會 rollback，先取出需要的欄位
        professional_id = professional.user_id
        professional_name = professional.name

        updated = await self.proposal_repo.accept_if_open(proposal_id, professional_id)
        if updated == 0:
            proposal = await self.proposal_repo.get_proposal_by_id(proposal_id)
            if proposal is None:
                raise NotFoundError("Proposal not found")
            raise ConflictError("Proposal is no longer open")

        # 狀態轉換、聊天室、系統訊息與通知同一個交易，一次 commit
        try:
            session = await self.message_service.ensure_session(proposal_id)
            session_id = session.session_id

            proposal = await self.proposal_repo.get_proposal_by_id(proposal_id)
            notification = await self.notification_service.create_notification(
                user_id=proposal.contractor_id,
                type=NotificationTypeEnum.proposal,
                title=f"Your proposal \"{proposal.title}\" was accepted",
                message=f"{professional_name} accepted your proposal.",
                link_url=f"/chat/{session_id}",
                session_id=session_id,
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Accept of proposal {proposal_id} rolled back: {e}")
            raise

        logger.info(f"Proposal {proposal_id}: OPEN -> NEGOTIATING, professional {professional_id}, session {session_id}.")
        self.notification_service.dispatch(notification)
        return AcceptOut(success=True, session_id=session_id)

    async def complete(self, proposal_id: int, user: User) -> CompleteOut:
        """
        雇主結案：NEGOTIATING -> COMPLETED。
        同一個交易內：專業人士加經驗值、寫入入帳紀錄、寫入通知。
        """
        proposal = await self.get_proposal(proposal_id)
        if proposal.contractor_id != user.user_id:
            raise ForbiddenError("Only the contractor who owns this proposal can complete it")

        professional_id = proposal.professional_id
        title = proposal.title
        amount = parse_budget_amount(proposal.budget_range, settings.FALLBACK_PAYOUT_AMOUNT)

        updated = await self.proposal_repo.complete_if_negotiating(proposal_id)
        if updated == 0:
            raise ConflictError("Only proposals in negotiation can be completed")

        await self.user_repo.add_xp(professional_id, settings.COMPLETION_XP_BONUS)
        await self.ledger_repo.create_transaction(Transaction(
            user_id=professional_id,
            type=TransactionTypeEnum.income,
            amount=amount,
            description="Service completed",
            status=TransactionStatusEnum.completed,
            related_proposal_id=proposal_id,
        ))
        notification = await self.notification_service.create_notification(
            user_id=professional_id,
            type=NotificationTypeEnum.proposal,
            title=f"\"{title}\" was marked as completed",
            message=f"You earned {settings.COMPLETION_XP_BONUS} XP and {amount} was credited.",
            link_url=f"/proposals/{proposal_id}",
        )
        await self.db.commit()
        self.notification_service.dispatch(notification)

        logger.info(f"Proposal {proposal_id}: NEGOTIATING -> COMPLETED, credited {amount} to {professional_id}.")
        return CompleteOut(success=True, proposal_id=proposal_id, review_target_id=professional_id)
