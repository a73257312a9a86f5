# marketchat/infrastructure/models.py
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from marketchat.domain.entities import ChatStatus, ChatType, MessageKind, UserRole
from marketchat.infrastructure.database import Base
from marketchat.infrastructure.time import utc_now


def new_id() -> str:
    return str(uuid.uuid4())


# users and products belong to the identity and catalog services; the chat
# engine only reads them


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String, unique=True, index=True)
    role: Mapped[str] = mapped_column(String(16), default=UserRole.BUYER.value)
    avatar_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String)
    price: Mapped[Optional[float]] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    seller_id: Mapped[Optional[str]] = mapped_column(
        String(64), ForeignKey("users.id"), nullable=True
    )


class Chat(Base):
    __tablename__ = "chats"

    __table_args__ = (
        UniqueConstraint(
            "participant_low",
            "participant_high",
            "context_key",
            name="uq_chats_pair_context",
        ),
        Index("ix_chats_low_active_last", "participant_low", "is_active", "last_message_at"),
        Index("ix_chats_high_active_last", "participant_high", "is_active", "last_message_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    participant_low: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"))
    participant_high: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"))
    # product id or "" so the unique constraint also covers direct chats
    context_key: Mapped[str] = mapped_column(String(64), default="")
    product_context_id: Mapped[Optional[str]] = mapped_column(
        String(64), ForeignKey("products.id"), nullable=True
    )
    chat_type: Mapped[str] = mapped_column(String(32), default=ChatType.DIRECT.value)
    status: Mapped[str] = mapped_column(
        String(16), default=ChatStatus.ACTIVE.value, index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    message_count: Mapped[int] = mapped_column(Integer, default=0)
    last_message_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    ended_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ended_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reported_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    report_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reported_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=utc_now, nullable=True
    )

    low_user: Mapped[User] = relationship("User", foreign_keys=[participant_low], lazy="select")
    high_user: Mapped[User] = relationship("User", foreign_keys=[participant_high], lazy="select")
    product_context: Mapped[Optional[Product]] = relationship("Product", lazy="select")
    messages: Mapped[List["Message"]] = relationship(
        "Message", back_populates="chat", lazy="select", order_by="Message.seq"
    )

    @property
    def participant_ids(self) -> tuple[str, str]:
        return (self.participant_low, self.participant_high)

    @property
    def participants(self) -> list[User]:
        return [self.low_user, self.high_user]

    def other_participant(self, user_id: str) -> str:
        return self.participant_high if user_id == self.participant_low else self.participant_low


class Message(Base):
    __tablename__ = "messages"

    __table_args__ = (
        UniqueConstraint("chat_id", "seq", name="uq_messages_chat_seq"),
        Index("ix_messages_chat_created", "chat_id", "created_at"),
        Index("ix_messages_chat_sender", "chat_id", "sender_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    chat_id: Mapped[str] = mapped_column(String(36), ForeignKey("chats.id"), index=True)
    seq: Mapped[int] = mapped_column(Integer)
    sender_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"))
    message_type: Mapped[str] = mapped_column(
        String(16), default=MessageKind.TEXT.value
    )
    content: Mapped[str] = mapped_column(Text, default="")
    product_ref: Mapped[Optional[str]] = mapped_column(
        String(64), ForeignKey("products.id"), nullable=True
    )
    image_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    chat: Mapped[Chat] = relationship("Chat", back_populates="messages", lazy="select")
    sender: Mapped[User] = relationship("User", lazy="select")
    product: Mapped[Optional[Product]] = relationship("Product", lazy="select")
    reads: Mapped[List["MessageRead"]] = relationship(
        "MessageRead", back_populates="message", lazy="select"
    )

    @property
    def read_by(self) -> list["MessageRead"]:
        return self.reads


class MessageRead(Base):
    __tablename__ = "message_reads"

    __table_args__ = (Index("ix_message_reads_user", "user_id"),)

    message_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("messages.id"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id"), primary_key=True
    )
    read_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    message: Mapped[Message] = relationship("Message", back_populates="reads", lazy="select")
