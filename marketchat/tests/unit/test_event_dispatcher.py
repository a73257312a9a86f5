# marketchat/tests/unit/test_event_dispatcher.py
from datetime import UTC, datetime

import pytest

from marketchat.domain.events import ChatEnded, MessageCreated
from marketchat.infrastructure.event_dispatcher import EventDispatcher


def make_message_created():
    return MessageCreated(
        chat_id="c1",
        sender_id="u1",
        recipient_ids=["u2"],
        message={"id": "m1", "content": "Test"},
    )


@pytest.mark.asyncio
async def test_event_dispatcher():
    dispatcher = EventDispatcher()

    events_received = []

    async def test_handler(event):
        events_received.append(event)

    dispatcher.register("MessageCreated", test_handler)

    await dispatcher.dispatch(make_message_created())

    assert len(events_received) == 1
    assert isinstance(events_received[0], MessageCreated)


@pytest.mark.asyncio
async def test_dispatch_only_reaches_matching_handlers():
    dispatcher = EventDispatcher()
    seen = []

    async def on_ended(event):
        seen.append(event)

    dispatcher.register("ChatEnded", on_ended)
    await dispatcher.dispatch(make_message_created())

    assert seen == []
    await dispatcher.dispatch(
        ChatEnded(chat_id="c1", ended_by="u1", ended_at=datetime.now(UTC), participant_ids=["u1", "u2"])
    )
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_others(test_logger, caplog):
    dispatcher = EventDispatcher(test_logger)
    calls = []

    async def broken(event):
        raise RuntimeError("redis down")

    async def healthy(event):
        calls.append(event)

    dispatcher.register("MessageCreated", broken)
    dispatcher.register("MessageCreated", healthy)

    await dispatcher.dispatch(make_message_created())

    assert len(calls) == 1
    assert "Handler broken failed for MessageCreated" in caplog.text
