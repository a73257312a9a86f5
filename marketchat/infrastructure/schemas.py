# marketchat/infrastructure/schemas.py
from datetime import datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from marketchat.domain.entities import ChatStatus, ChatType, MessageKind, UserRole
from marketchat.infrastructure.time import as_utc

UTCDateTime = Annotated[datetime, AfterValidator(as_utc)]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class CurrentUser(CamelModel):
    id: str
    username: str
    role: UserRole = UserRole.BUYER
    is_active: bool = True


class UserBasic(CamelModel):
    id: str
    username: str
    role: UserRole = UserRole.BUYER
    avatar_url: str | None = None


class ProductSummary(CamelModel):
    id: str
    name: str
    price: float | None = None
    image_url: str | None = None


class ReadReceipt(CamelModel):
    user_id: str
    read_at: UTCDateTime


class MessageCreate(CamelModel):
    content: str = Field("", max_length=4000)
    message_type: MessageKind = MessageKind.TEXT
    product_ref: str | None = None
    image_url: str | None = None

    @model_validator(mode="after")
    def check_payload(self) -> "MessageCreate":
        if self.message_type is MessageKind.TEXT and not self.content.strip():
            raise ValueError("Text messages require content")
        if self.message_type is MessageKind.IMAGE and not self.image_url:
            raise ValueError("Image messages require imageUrl")
        if self.message_type is MessageKind.PRODUCT and not self.product_ref:
            raise ValueError("Product messages require productRef")
        # payload fields that do not belong to the kind are dropped
        if self.message_type is not MessageKind.PRODUCT:
            self.product_ref = None
        if self.message_type is not MessageKind.IMAGE:
            self.image_url = None
        return self


class Message(CamelModel):
    id: str
    chat_id: str
    seq: int
    sender_id: str
    sender: UserBasic | None = None
    content: str
    message_type: MessageKind
    product_ref: str | None = None
    product: ProductSummary | None = None
    image_url: str | None = None
    read_by: list[ReadReceipt] = Field(default_factory=list)
    created_at: UTCDateTime


class ChatCreate(CamelModel):
    participant_id: str
    product_id: str | None = None


class Chat(CamelModel):
    id: str
    participants: list[UserBasic]
    product_context_id: str | None = None
    product_context: ProductSummary | None = None
    chat_type: ChatType
    status: ChatStatus
    is_active: bool
    message_count: int = 0
    last_message_at: UTCDateTime
    ended_by: str | None = None
    ended_at: UTCDateTime | None = None
    reported_by: str | None = None
    report_reason: str | None = None
    reported_at: UTCDateTime | None = None
    created_at: UTCDateTime


class ChatSummary(Chat):
    unread_count: int = 0
    last_message_content: str = ""
    last_message_time: UTCDateTime | None = None


class MessagePage(CamelModel):
    chat: Chat
    messages: list[Message]
    page: int
    limit: int
    has_more: bool


class ReadReceiptBatch(CamelModel):
    chat_id: str
    read_by: str
    message_ids: list[str]
    read_at: UTCDateTime | None = None


class ReportRequest(CamelModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class DeliveryTokenResponse(CamelModel):
    delivery_token: str
    token_type: str = "delivery"
    expires_at: UTCDateTime


class PresenceStatus(CamelModel):
    user_id: str
    online: bool
    last_seen_at: UTCDateTime | None = None


class RelayEntry(CamelModel):
    chat_id: str
    message: dict[str, Any]
    queued_at: UTCDateTime


class OfflineMessages(CamelModel):
    entries: list[RelayEntry]


class ChatStats(CamelModel):
    total: int
    active: int
    ended: int
    deleted: int
    reported: int
    online_users: int
