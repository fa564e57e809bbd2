# marketplace/services/message_service.py
# 協商聊天室：建立聊天室、傳送 / 讀取訊息、約訪確認，以及 WebSocket 指令處理

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from typing import Any, Dict, List, Optional, Tuple
import logging

from marketplace.core.exceptions import ValidationError, ForbiddenError, NotFoundError, ConflictError
from marketplace.core.websocket_manager import ConnectionManager, Subscriber, manager, session_channel
from marketplace.models.user import User
from marketplace.models.proposal import Proposal, ProposalStatusEnum
from marketplace.models.negotiation import (
    NegotiationSession, Message, MessageKindEnum, ScheduleStatusEnum
)
from marketplace.models.notification import Notification, NotificationTypeEnum
from marketplace.repositories.message_repo import MessageRepository
from marketplace.repositories.proposal_repo import ProposalRepository
from marketplace.repositories.user_repo import UserRepository
from marketplace.schemas.message_schema import (
    TextMessageCreate, ImageMessageCreate, ScheduleMessageCreate,
    MessageOut, SessionSummary, AppointmentOut
)
from marketplace.schemas.user_schema import UserBrief
from marketplace.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

NEGOTIATION_STARTED_TEXT = "negotiation started"
IMAGE_PLACEHOLDER_TEXT = "image sent"
EMPTY_SESSION_PREVIEW = "start"
SCHEDULE_PROPOSAL_TEXT = "visit proposal: {date} at {time}"
SCHEDULE_FOLLOW_UP_TEXT = {
    ScheduleStatusEnum.confirmed: "visit confirmed: {date} at {time}",
    ScheduleStatusEnum.rejected: "visit rejected: {date} at {time}",
}


def _participants(proposal: Proposal) -> Tuple[str, Optional[str]]:
    return proposal.contractor_id, proposal.professional_id


def _other_participant(proposal: Proposal, user_id: str) -> Optional[str]:
    contractor_id, professional_id = _participants(proposal)
    return professional_id if user_id == contractor_id else contractor_id


class MessageService:
    def __init__(self, db: AsyncSession, hub: ConnectionManager = manager):
        self.db = db
        self.hub = hub
        self.message_repo = MessageRepository(db)
        self.proposal_repo = ProposalRepository(db)
        self.user_repo = UserRepository(db)
        self.notification_service = NotificationService(db, hub=hub)

    # --- 聊天室 ---

    async def get_or_create_session(self, proposal_id: int) -> NegotiationSession:
        """
        一個案件只會有一個聊天室。
        同時有兩個請求建立時，由 proposal_id 的 unique constraint 決定贏家，
        輸的一方 rollback 後改讀贏家建立的聊天室。
        """
        existing = await self.message_repo.get_session_by_proposal_id(proposal_id)
        if existing:
            return existing

        try:
            new_session = await self.message_repo.create_session_with_system_message(
                proposal_id, NEGOTIATION_STARTED_TEXT
            )
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info(f"Session for proposal {proposal_id} was created concurrently, reusing it.")
            existing = await self.message_repo.get_session_by_proposal_id(proposal_id)
            if existing is None:
                raise
            return existing

        logger.info(f"Negotiation session {new_session.session_id} created for proposal {proposal_id}.")
        return new_session

    async def ensure_session(self, proposal_id: int) -> NegotiationSession:
        """
        在呼叫端的交易內取得或建立聊天室 (不 Commit)。
        建立動作包在 SAVEPOINT 裡：unique constraint 衝突只回滾 savepoint，外層交易保留。
        """
        existing = await self.message_repo.get_session_by_proposal_id(proposal_id)
        if existing:
            return existing

        try:
            async with self.db.begin_nested():
                new_session = await self.message_repo.create_session_with_system_message(
                    proposal_id, NEGOTIATION_STARTED_TEXT
                )
        except IntegrityError:
            logger.info(f"Session for proposal {proposal_id} was created concurrently, reusing it.")
            existing = await self.message_repo.get_session_by_proposal_id(proposal_id)
            if existing is None:
                raise
            return existing

        logger.info(f"Negotiation session {new_session.session_id} staged for proposal {proposal_id}.")
        return new_session

    async def _load_session_for_participant(
        self, session_id: int, user_id: str
    ) -> Tuple[NegotiationSession, Proposal]:
        session = await self.message_repo.get_session_by_id(session_id)
        if not session:
            raise NotFoundError("Session not found")

        proposal = await self.proposal_repo.get_proposal_by_id(session.proposal_id)
        if proposal is None or user_id not in _participants(proposal):
            raise ForbiddenError("Not a participant of this session")
        return session, proposal

    @staticmethod
    def _ensure_open(proposal: Proposal) -> None:
        # 案件完成後聊天室唯讀
        if proposal.status == ProposalStatusEnum.completed:
            raise ConflictError("session is closed")

    async def list_sessions_for_user(self, user: User) -> List[SessionSummary]:
        """
        獲取使用者的所有聊天室摘要 (REST API / 輪詢用)
        """
        user_id = user.user_id
        sessions = await self.message_repo.get_sessions_by_user_id(user_id)
        session_ids = [s.session_id for s in sessions]

        last_messages = await self.message_repo.get_last_messages(session_ids)
        unread_counts = await self.message_repo.count_unread(session_ids, user_id)

        participant_ids = set()
        for s in sessions:
            participant_ids.update(pid for pid in _participants(s.proposal) if pid)
        users = {u.user_id: u for u in await self.user_repo.get_users_by_ids(list(participant_ids))}

        summaries = []
        for s in sessions:
            proposal = s.proposal
            last = last_messages.get(s.session_id)
            summaries.append(SessionSummary(
                session_id=s.session_id,
                proposal_id=proposal.proposal_id,
                proposal_title=proposal.title,
                proposal_status=proposal.status,
                is_closed=proposal.status == ProposalStatusEnum.completed,
                participants=[
                    UserBrief.model_validate(users[pid])
                    for pid in _participants(proposal) if pid in users
                ],
                last_message=last.text if last else EMPTY_SESSION_PREVIEW,
                last_message_at=last.created_at if last else s.created_at,
                unread_count=unread_counts.get(s.session_id, 0),
                created_at=s.created_at,
            ))
        return summaries

    async def list_messages(
        self, session_id: int, user: User, after_id: Optional[int] = None
    ) -> List[MessageOut]:
        """
        獲取歷史訊息 (舊的在前)，並將對方的訊息標記為已讀。
        after_id：只回傳比它新的訊息。
        """
        user_id = user.user_id
        await self._load_session_for_participant(session_id, user_id)

        await self.message_repo.mark_messages_as_read(session_id, user_id)
        await self.db.commit()

        messages = await self.message_repo.get_messages_by_session_id(session_id, after_id)
        return [MessageOut.model_validate(msg) for msg in messages]

    # --- 傳送訊息 ---

    def _build_message(self, data, sender_id: str) -> Message:
        """依 kind 驗證內容並組出 Message"""
        if isinstance(data, TextMessageCreate):
            if not data.text or not data.text.strip():
                raise ValidationError("Message text must not be empty")
            return Message(
                session_id=data.session_id,
                sender_id=sender_id,
                kind=MessageKindEnum.text,
                text=data.text,
            )

        if isinstance(data, ImageMessageCreate):
            if not data.media_url or not data.media_url.strip():
                raise ValidationError("media_url is required for image messages")
            text = data.text if data.text and data.text.strip() else IMAGE_PLACEHOLDER_TEXT
            return Message(
                session_id=data.session_id,
                sender_id=sender_id,
                kind=MessageKindEnum.image,
                text=text,
                media_url=data.media_url.strip(),
            )

        if isinstance(data, ScheduleMessageCreate):
            date_str = data.schedule_data.date.isoformat()
            time_str = data.schedule_data.time.strftime("%H:%M")
            return Message(
                session_id=data.session_id,
                sender_id=sender_id,
                kind=MessageKindEnum.schedule,
                text=SCHEDULE_PROPOSAL_TEXT.format(date=date_str, time=time_str),
                schedule_date=data.schedule_data.date,
                schedule_time=time_str,
                schedule_status=ScheduleStatusEnum.pending,
            )

        raise ValidationError("Unsupported message kind")

    async def _notify_new_message(
        self, proposal: Proposal, session_id: int, sender: User, text: str
    ) -> Optional[Notification]:
        recipient_id = _other_participant(proposal, sender.user_id)
        if recipient_id is None:
            return None
        return await self.notification_service.create_notification(
            user_id=recipient_id,
            type=NotificationTypeEnum.message,
            title=f"New message in \"{proposal.title}\"",
            message=f"{sender.name}: {text[:50]}",
            link_url=f"/chat/{session_id}",
            session_id=session_id,
        )

    def _fan_out(self, session_id: int, notification: Optional[Notification], events: List[Tuple[str, MessageOut]]) -> None:
        """
        commit 之後推播：訊息事件送到聊天室 channel；
        通知只在接收者沒有訂閱此聊天室時，推到他的個人 channel
        """
        channel = session_channel(session_id)
        for event, message_out in events:
            self.hub.publish(channel, event, message_out.model_dump(mode="json"))
        if notification is not None and not self.hub.is_subscribed(channel, notification.user_id):
            self.notification_service.dispatch(notification)

    async def send_message(self, data, sender: User) -> MessageOut:
        """
        儲存訊息、寫入通知、commit，然後推播。
        整段持有聊天室的鎖，推播順序與 message_id 順序一致。
        """
        session, proposal = await self._load_session_for_participant(data.session_id, sender.user_id)
        self._ensure_open(proposal)
        message = self._build_message(data, sender.user_id)

        async with self.hub.session_lock(session.session_id):
            message = await self.message_repo.save_message(message)
            notification = await self._notify_new_message(proposal, session.session_id, sender, message.text)
            await self.db.commit()

            message_out = MessageOut.model_validate(message)
            self._fan_out(session.session_id, notification, [("new_message", message_out)])

        logger.info(f"Message {message_out.message_id} ({message_out.kind.value}) stored in session {session.session_id}.")
        return message_out

    # --- 約訪 (schedule) 狀態 ---

    async def update_schedule_status(self, message_id: int, status: str, user: User) -> MessageOut:
        """
        PENDING -> CONFIRMED / REJECTED。
        只有「非提出者」的另一方可以決定；重複送出相同決定為冪等操作。
        """
        user_id = user.user_id
        message = await self.message_repo.get_message_by_id(message_id)
        if not message:
            raise NotFoundError("Message not found")
        if message.kind != MessageKindEnum.schedule:
            raise ValidationError("Only schedule messages have a status")

        session_id = message.session_id
        proposer_id = message.sender_id
        date_str = message.schedule_date.isoformat()
        time_str = message.schedule_time

        _, proposal = await self._load_session_for_participant(session_id, user_id)
        if proposer_id == user_id:
            raise ForbiddenError("The proposer cannot decide their own schedule")

        try:
            new_status = ScheduleStatusEnum(str(status).strip().upper())
        except ValueError:
            raise ValidationError("status must be CONFIRMED or REJECTED")
        if new_status == ScheduleStatusEnum.pending:
            raise ValidationError("status must be CONFIRMED or REJECTED")

        self._ensure_open(proposal)

        async with self.hub.session_lock(session_id):
            updated = await self.message_repo.set_schedule_status_if_pending(message_id, new_status)
            if updated == 0:
                await self.db.rollback()
                current = await self.message_repo.get_message_by_id(message_id)
                if current.schedule_status == new_status:
                    logger.info(f"Schedule {message_id} already {new_status.value}, nothing to do.")
                    return MessageOut.model_validate(current)
                raise ConflictError(f"Schedule already {current.schedule_status.value}")

            follow_up = await self.message_repo.save_message(Message(
                session_id=session_id,
                sender_id=user_id,
                kind=MessageKindEnum.text,
                text=SCHEDULE_FOLLOW_UP_TEXT[new_status].format(date=date_str, time=time_str),
            ))
            notification = await self._notify_new_message(proposal, session_id, user, follow_up.text)
            await self.db.commit()

            schedule_out = MessageOut.model_validate(await self.message_repo.get_message_by_id(message_id))
            follow_up_out = MessageOut.model_validate(follow_up)
            self._fan_out(session_id, notification, [
                ("message_updated", schedule_out),
                ("new_message", follow_up_out),
            ])

        logger.info(f"Schedule {message_id} in session {session_id}: PENDING -> {new_status.value} by {user_id}.")
        return schedule_out

    async def confirm_schedule(self, message_id: int, user: User) -> MessageOut:
        return await self.update_schedule_status(message_id, ScheduleStatusEnum.confirmed.value, user)

    async def reject_schedule(self, message_id: int, user: User) -> MessageOut:
        return await self.update_schedule_status(message_id, ScheduleStatusEnum.rejected.value, user)

    async def list_appointments(self, user: User) -> List[AppointmentOut]:
        """使用者所有聊天室中待確認 / 已確認的約訪"""
        user_id = user.user_id
        messages = await self.message_repo.get_schedule_messages_for_user(user_id)

        appointments = []
        for m in messages:
            proposal = m.session.proposal
            other = proposal.professional if user_id == proposal.contractor_id else proposal.contractor
            appointments.append(AppointmentOut(
                message_id=m.message_id,
                session_id=m.session_id,
                proposal_id=proposal.proposal_id,
                proposal_title=proposal.title,
                date=m.schedule_date,
                time=m.schedule_time,
                status=m.schedule_status,
                proposed_by=m.sender_id,
                with_user=UserBrief.model_validate(other) if other else None,
            ))
        return appointments

    # --- WebSocket 指令 ---

    async def handle_client_command(self, subscriber: Subscriber, user: User, command: Dict[str, Any]) -> None:
        """
        處理客戶端送來的 JSON 指令：join_session / leave_session / ping。
        回應與推播走同一個佇列，順序不會交錯。
        """
        action = command.get("action") if isinstance(command, dict) else None

        if action == "ping":
            subscriber.enqueue({"event": "pong", "data": {}})
            return

        if action in ("join_session", "leave_session"):
            try:
                session_id = int(command.get("session_id"))
            except (TypeError, ValueError):
                subscriber.enqueue({"event": "error", "data": {"detail": "session_id is required"}})
                return

            if action == "leave_session":
                self.hub.unsubscribe(session_channel(session_id), subscriber)
                subscriber.enqueue({"event": "left", "data": {"session_id": session_id}})
                logger.info(f"User {user.user_id} left session {session_id}.")
                return

            try:
                await self._load_session_for_participant(session_id, user.user_id)
            except (NotFoundError, ForbiddenError) as e:
                subscriber.enqueue({"event": "error", "data": {"detail": e.detail, "session_id": session_id}})
                return

            self.hub.subscribe(session_channel(session_id), subscriber)
            subscriber.enqueue({"event": "joined", "data": {"session_id": session_id}})
            logger.info(f"User {user.user_id} joined session {session_id}.")
            return

        subscriber.enqueue({"event": "error", "data": {"detail": f"Unknown action: {action}"}})
