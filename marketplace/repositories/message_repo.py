# marketplace/repositories/message_repo.py

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, or_, update, func
from sqlalchemy.orm import selectinload
from typing import Dict, List, Optional

from marketplace.models.negotiation import (
    NegotiationSession, Message, MessageKindEnum, ScheduleStatusEnum, SYSTEM_SENDER_ID
)
from marketplace.models.proposal import Proposal

class MessageRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    # --- NegotiationSession 相關操作 ---

    async def get_session_by_id(self, session_id: int) -> Optional[NegotiationSession]:
        stmt = select(NegotiationSession).where(NegotiationSession.session_id == session_id)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def get_session_by_proposal_id(self, proposal_id: int) -> Optional[NegotiationSession]:
        stmt = (
            select(NegotiationSession)
            .where(NegotiationSession.proposal_id == proposal_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def create_session_with_system_message(self, proposal_id: int, text: str) -> NegotiationSession:
        """
        建立聊天室以及第一則系統訊息 (不 Commit)。
        proposal_id 重複時 flush 會丟出 IntegrityError。
        """
        new_session = NegotiationSession(proposal_id=proposal_id)
        self.db.add(new_session)
        await self.db.flush()

        system_message = Message(
            session_id=new_session.session_id,
            sender_id=SYSTEM_SENDER_ID,
            is_system=True,
            text=text,
            kind=MessageKindEnum.text,
        )
        self.db.add(system_message)
        await self.db.flush()
        return new_session

    async def get_sessions_by_user_id(self, user_id: str) -> List[NegotiationSession]:
        """
        獲取使用者參與的所有聊天室 (雇主或被指派的專業人士)，新的在前
        """
        stmt = (
            select(NegotiationSession)
            .join(Proposal, Proposal.proposal_id == NegotiationSession.proposal_id)
            .where(
                or_(
                    Proposal.contractor_id == user_id,
                    Proposal.professional_id == user_id
                )
            )
            .order_by(NegotiationSession.session_id.desc())
        )
        result = await self.db.execute(stmt)
        return result.scalars().all()

    # --- Message 相關操作 ---

    async def get_message_by_id(self, message_id: int) -> Optional[Message]:
        stmt = (
            select(Message)
            .where(Message.message_id == message_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def get_messages_by_session_id(self, session_id: int, after_id: Optional[int] = None) -> List[Message]:
        """
        依插入順序 (message_id) 取得訊息；after_id 只取更新的訊息 (輪詢用)
        """
        stmt = select(Message).where(Message.session_id == session_id)
        if after_id is not None:
            stmt = stmt.where(Message.message_id > after_id)
        stmt = stmt.order_by(Message.message_id.asc()).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def save_message(self, message: Message) -> Message:
        self.db.add(message)
        await self.db.flush()
        # 取得 DB 產生的 message_id / created_at
        await self.db.refresh(message)
        return message

    async def mark_messages_as_read(self, session_id: int, user_id: str) -> int:
        """將對方 (以及系統) 的未讀訊息設為已讀"""
        update_stmt = (
            update(Message)
            .where(
                and_(
                    Message.session_id == session_id,
                    Message.sender_id != user_id,
                    Message.is_read == False
                )
            )
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(update_stmt)
        return result.rowcount

    async def set_schedule_status_if_pending(self, message_id: int, new_status: ScheduleStatusEnum) -> int:
        """
        PENDING -> CONFIRMED / REJECTED 的條件式更新。
        回傳 0 表示訊息已經不是 PENDING。
        """
        stmt = (
            update(Message)
            .where(
                Message.message_id == message_id,
                Message.kind == MessageKindEnum.schedule,
                Message.schedule_status == ScheduleStatusEnum.pending
            )
            .values(schedule_status=new_status)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount

    async def get_last_messages(self, session_ids: List[int]) -> Dict[int, Message]:
        """每個聊天室最新一則非系統訊息"""
        if not session_ids:
            return {}
        latest_ids = (
            select(func.max(Message.message_id))
            .where(
                Message.session_id.in_(session_ids),
                Message.is_system == False
            )
            .group_by(Message.session_id)
        )
        stmt = select(Message).where(Message.message_id.in_(latest_ids))
        result = await self.db.execute(stmt)
        return {m.session_id: m for m in result.scalars().all()}

    async def count_unread(self, session_ids: List[int], user_id: str) -> Dict[int, int]:
        """每個聊天室中，對方傳來但使用者尚未讀取的訊息數"""
        if not session_ids:
            return {}
        stmt = (
            select(Message.session_id, func.count(Message.message_id))
            .where(
                Message.session_id.in_(session_ids),
                Message.sender_id != user_id,
                Message.is_system == False,
                Message.is_read == False
            )
            .group_by(Message.session_id)
        )
        result = await self.db.execute(stmt)
        return {session_id: count for session_id, count in result.all()}

    async def get_schedule_messages_for_user(self, user_id: str) -> List[Message]:
        """
        使用者所有聊天室中的約訪訊息 (PENDING / CONFIRMED)，依日期、時間排序
        """
        stmt = (
            select(Message)
            .join(NegotiationSession, NegotiationSession.session_id == Message.session_id)
            .join(Proposal, Proposal.proposal_id == NegotiationSession.proposal_id)
            .where(
                Message.kind == MessageKindEnum.schedule,
                Message.schedule_status.in_([ScheduleStatusEnum.pending, ScheduleStatusEnum.confirmed]),
                or_(
                    Proposal.contractor_id == user_id,
                    Proposal.professional_id == user_id
                )
            )
            .options(selectinload(Message.session)) # 連帶載入 session -> proposal -> 雙方使用者
            .order_by(Message.schedule_date.asc(), Message.schedule_time.asc(), Message.message_id.asc())
        )
        result = await self.db.execute(stmt)
        return result.scalars().all()
