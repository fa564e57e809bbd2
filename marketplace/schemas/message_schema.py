# marketplace/schemas/message_schema.py

import datetime as dt
from pydantic import BaseModel, Field, ConfigDict, Discriminator, RootModel, Tag, field_serializer
from typing import Annotated, List, Literal, Optional, Union

from marketplace.models.negotiation import ScheduleStatusEnum, MessageKindEnum
from marketplace.models.proposal import ProposalStatusEnum
from marketplace.schemas.user_schema import UserBrief


# --- 訊息內容 (tagged union，依 kind 區分) ---

class TextPayload(BaseModel):
    kind: Literal["text"] = "text"

class ImagePayload(BaseModel):
    kind: Literal["image"] = "image"
    media_url: str

class SchedulePayload(BaseModel):
    kind: Literal["schedule"] = "schedule"
    date: dt.date
    time: str
    status: ScheduleStatusEnum

MessagePayload = Annotated[
    Union[TextPayload, ImagePayload, SchedulePayload],
    Field(discriminator="kind")
]


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    message_id: int
    session_id: int
    sender_id: str
    is_system: bool
    text: str
    kind: MessageKindEnum
    # Model 的 payload property 依 kind 組出對應結構
    payload: MessagePayload
    is_read: bool
    created_at: Optional[dt.datetime] = None


# --- 傳送訊息 (POST /messages) ---

class ScheduleData(BaseModel):
    date: dt.date = Field(..., description="YYYY-MM-DD")
    time: dt.time = Field(..., description="HH:MM")

    @field_serializer("time")
    def _serialize_time(self, value: dt.time) -> str:
        return value.strftime("%H:%M")

class TextMessageCreate(BaseModel):
    kind: Literal["text"] = "text"
    session_id: int
    text: str

class ImageMessageCreate(BaseModel):
    kind: Literal["image"]
    session_id: int
    # 由外部上傳服務先取得的 URL
    media_url: str
    text: Optional[str] = None

class ScheduleMessageCreate(BaseModel):
    kind: Literal["schedule"]
    session_id: int
    schedule_data: ScheduleData
    text: Optional[str] = None # 內容由伺服器產生，這裡的值會被忽略

def _message_kind(value) -> str:
    # 未帶 kind 時視為純文字訊息
    if isinstance(value, dict):
        return value.get("kind") or "text"
    return getattr(value, "kind", "text")

MessageCreate = Annotated[
    Union[
        Annotated[TextMessageCreate, Tag("text")],
        Annotated[ImageMessageCreate, Tag("image")],
        Annotated[ScheduleMessageCreate, Tag("schedule")],
    ],
    Discriminator(_message_kind)
]

class MessageCreateRequest(RootModel[MessageCreate]):
    """POST /messages 的 Body，依 kind 分派到對應的 Model"""


class MessageStatusUpdate(BaseModel):
    """PUT /messages/{id}/status 的 Body：CONFIRMED 或 REJECTED"""
    status: str


class SendMessageOut(BaseModel):
    success: bool = True
    message: MessageOut


# --- 聊天室 ---

class SessionSummary(BaseModel):
    session_id: int
    proposal_id: int
    proposal_title: str
    proposal_status: ProposalStatusEnum
    is_closed: bool
    participants: List[UserBrief]
    last_message: str
    last_message_at: Optional[dt.datetime] = None
    unread_count: int = 0
    created_at: Optional[dt.datetime] = None


class AppointmentOut(BaseModel):
    message_id: int
    session_id: int
    proposal_id: int
    proposal_title: str
    date: dt.date
    time: str
    status: ScheduleStatusEnum
    proposed_by: str
    with_user: Optional[UserBrief] = None
