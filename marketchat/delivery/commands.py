# marketchat/delivery/commands.py
"""Typed inbound frames of the delivery channel.

A frame is ``{"event": name, "data": payload}``; ``parse_command`` turns it
into one of the models below or raises ``CommandError``.
"""
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from marketchat.infrastructure.schemas import MessageCreate


class CommandError(ValueError):
    pass


class Command(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JoinChat(Command):
    chat_id: str


class LeaveChat(Command):
    chat_id: str


class SendMessage(MessageCreate):
    chat_id: str

    def to_message(self) -> MessageCreate:
        return MessageCreate.model_validate(self.model_dump(exclude={"chat_id"}))


class TypingStart(Command):
    chat_id: str


class TypingStop(Command):
    chat_id: str


class MarkMessagesRead(Command):
    chat_id: str


class Ping(Command):
    pass


COMMANDS: dict[str, type[BaseModel]] = {
    "join_chat": JoinChat,
    "leave_chat": LeaveChat,
    "send_message": SendMessage,
    "typing_start": TypingStart,
    "typing_stop": TypingStop,
    "mark_messages_read": MarkMessagesRead,
    "ping": Ping,
}

# commands carrying only a chat id also accept it as a bare string
BARE_CHAT_ID = (JoinChat, LeaveChat, TypingStart, TypingStop, MarkMessagesRead)


def parse_command(raw: str | bytes | dict[str, Any]) -> BaseModel:
    if isinstance(raw, (str, bytes)):
        try:
            frame = json.loads(raw)
        except ValueError as e:
            raise CommandError("Malformed frame") from e
    else:
        frame = raw
    if not isinstance(frame, dict):
        raise CommandError("Malformed frame")

    event = frame.get("event")
    model = COMMANDS.get(event) if isinstance(event, str) else None
    if model is None:
        raise CommandError(f"Unknown event: {event}")

    data = frame.get("data")
    if data is None:
        data = {}
    elif isinstance(data, str) and model in BARE_CHAT_ID:
        data = {"chatId": data}

    try:
        return model.model_validate(data)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "Invalid payload")
        raise CommandError(f"{field}: {message}" if field else message) from e
