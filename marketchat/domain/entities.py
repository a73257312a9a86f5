# marketchat/domain/entities.py
from dataclasses import dataclass
from enum import Enum


class UserRole(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


class ChatType(str, Enum):
    DIRECT = "direct"
    PRODUCT_INQUIRY = "product_inquiry"


class ChatStatus(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"
    DELETED = "deleted"


class MessageKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    PRODUCT = "product"


@dataclass(frozen=True)
class ChatKey:
    """Identity of a conversation: the unordered participant pair plus product context."""

    participant_low: str
    participant_high: str
    context_key: str = ""

    @classmethod
    def for_participants(
        cls, user_a: str, user_b: str, product_id: str | None = None
    ) -> "ChatKey":
        low, high = sorted((str(user_a), str(user_b)))
        return cls(low, high, product_id or "")

    @property
    def product_id(self) -> str | None:
        return self.context_key or None

    @property
    def chat_type(self) -> ChatType:
        return ChatType.PRODUCT_INQUIRY if self.context_key else ChatType.DIRECT

    @property
    def lock_name(self) -> str:
        return f"pair:{self.participant_low}:{self.participant_high}:{self.context_key}"
