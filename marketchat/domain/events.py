# marketchat/domain/events.py
from datetime import datetime
from typing import Any

from pydantic import BaseModel


class Event(BaseModel):
    pass


class MessageCreated(Event):
    chat_id: str
    sender_id: str
    recipient_ids: list[str]
    # wire representation of the stored message
    message: dict[str, Any]


class MessagesRead(Event):
    chat_id: str
    reader_id: str
    message_ids: list[str]
    read_at: datetime


class ChatEnded(Event):
    chat_id: str
    ended_by: str
    ended_at: datetime
    participant_ids: list[str]


class ChatReported(Event):
    chat_id: str
    reported_by: str
    reason: str
    reported_at: datetime
