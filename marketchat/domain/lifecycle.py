# marketchat/domain/lifecycle.py
"""Chat lifecycle state machine.

    active --end--> ended --delete--> deleted
                      |
                      +--report--> ended (reportedBy set, at most once)

Ending is unilateral. Deleting requires the chat to be ended first, and only
the participant who did not end the chat may report it.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from marketchat.domain.entities import ChatStatus
from marketchat.domain.exceptions import Forbidden, InvalidState, InvalidTransition


class LifecycleAction(str, Enum):
    END = "end"
    REPORT = "report"
    DELETE = "delete"


class LifecycleView(Protocol):
    status: str
    ended_by: str | None
    reported_by: str | None

    @property
    def participant_ids(self) -> tuple[str, str]: ...


@dataclass(frozen=True)
class Transition:
    action: LifecycleAction
    status: ChatStatus
    changes: dict[str, Any] = field(default_factory=dict)


def ensure_participant(chat: LifecycleView, user_id: str) -> None:
    if user_id not in chat.participant_ids:
        raise Forbidden()


def ensure_can_append(chat: LifecycleView, sender_id: str) -> None:
    ensure_participant(chat, sender_id)
    status = ChatStatus(chat.status)
    if status is ChatStatus.ENDED:
        raise InvalidState("Chat has ended")
    if status is ChatStatus.DELETED:
        raise InvalidState("Chat has been deleted")


def plan_transition(
    chat: LifecycleView,
    actor_id: str,
    action: LifecycleAction,
    now: datetime,
    reason: str | None = None,
) -> Transition:
    ensure_participant(chat, actor_id)
    status = ChatStatus(chat.status)

    if status is ChatStatus.DELETED:
        raise InvalidTransition("Chat has been deleted")

    if action is LifecycleAction.END:
        if status is ChatStatus.ENDED:
            raise InvalidTransition("Chat is already ended")
        return Transition(
            action,
            ChatStatus.ENDED,
            {"status": ChatStatus.ENDED.value, "ended_by": actor_id, "ended_at": now},
        )

    if action is LifecycleAction.REPORT:
        if status is not ChatStatus.ENDED:
            raise InvalidTransition("Only ended chats can be reported")
        if chat.ended_by == actor_id:
            raise InvalidTransition("The participant who ended the chat cannot report it")
        if chat.reported_by is not None:
            raise InvalidTransition("Chat has already been reported")
        return Transition(
            action,
            ChatStatus.ENDED,
            {"reported_by": actor_id, "report_reason": reason or "", "reported_at": now},
        )

    if action is LifecycleAction.DELETE:
        if status is not ChatStatus.ENDED:
            raise InvalidTransition("Chat must be ended before deletion")
        return Transition(
            action,
            ChatStatus.DELETED,
            {"status": ChatStatus.DELETED.value, "is_active": False},
        )

    raise ValueError(f"Unknown lifecycle action: {action}")
