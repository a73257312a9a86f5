# marketchat/tests/unit/test_interactors.py
import asyncio

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from marketchat.domain.exceptions import (
    Forbidden,
    InvalidRequest,
    InvalidState,
    InvalidTransition,
    NotFound,
)
from marketchat.infrastructure import schemas
from marketchat.infrastructure.database import Database
from marketchat.infrastructure.event_dispatcher import EventDispatcher
from marketchat.infrastructure.locks import KeyedLock
from marketchat.infrastructure.test_data import init_demo_data
from marketchat.interactors.factory import InteractorFactory


@pytest.fixture
def dispatched(event_dispatcher):
    events = []

    async def record(event):
        events.append(event)

    for name in ("MessageCreated", "MessagesRead", "ChatEnded", "ChatReported"):
        event_dispatcher.register(name, record)
    return events


async def open_chat(factory, requester="u1", participant="u2", product_id=None):
    async with factory.open() as scope:
        return await scope.chats.find_or_create_chat(
            requester, schemas.ChatCreate(participant_id=participant, product_id=product_id)
        )


async def send(factory, chat_id, sender, **payload):
    payload.setdefault("content", "hello")
    async with factory.open() as scope:
        return await scope.messages.send_message(chat_id, sender, schemas.MessageCreate(**payload))


class TestChatInteractor:
    @pytest.mark.asyncio
    async def test_same_chat_from_either_side(self, interactor_factory):
        first = await open_chat(interactor_factory, "u1", "u2")
        second = await open_chat(interactor_factory, "u2", "u1")

        assert first.id == second.id
        assert {p.id for p in first.participants} == {"u1", "u2"}

    @pytest.mark.asyncio
    async def test_concurrent_creation_yields_one_chat(self, interactor_factory):
        chats = await asyncio.gather(
            *(open_chat(interactor_factory, "u1", "u2") for _ in range(5))
        )

        assert len({chat.id for chat in chats}) == 1

    @pytest.mark.asyncio
    async def test_rejects_bad_requests(self, interactor_factory):
        with pytest.raises(InvalidRequest, match="yourself"):
            await open_chat(interactor_factory, "u1", "u1")
        with pytest.raises(NotFound, match="User not found"):
            await open_chat(interactor_factory, "u1", "ghost")
        with pytest.raises(NotFound, match="Product not found"):
            await open_chat(interactor_factory, "u1", "u2", product_id="nope")

    @pytest.mark.asyncio
    async def test_chat_summaries(self, interactor_factory):
        direct = await open_chat(interactor_factory, "u1", "u2")
        inquiry = await open_chat(interactor_factory, "u1", "u2", product_id="p1")
        await send(interactor_factory, direct.id, "u2", content="first")
        await send(interactor_factory, direct.id, "u2", content="second")
        await send(
            interactor_factory, inquiry.id, "u1", message_type="product", product_ref="p1", content=""
        )

        async with interactor_factory.open() as scope:
            summaries = await scope.chats.get_chats("u1")

        by_id = {summary.id: summary for summary in summaries}
        assert [summary.id for summary in summaries] == [inquiry.id, direct.id]
        assert by_id[direct.id].unread_count == 2
        assert by_id[direct.id].last_message_content == "second"
        assert by_id[inquiry.id].unread_count == 0
        assert by_id[inquiry.id].last_message_content == "[product]"
        assert by_id[inquiry.id].last_message_time is not None

    @pytest.mark.asyncio
    async def test_empty_chat_summary_uses_chat_activity_time(self, interactor_factory):
        chat = await open_chat(interactor_factory)

        async with interactor_factory.open() as scope:
            [summary] = await scope.chats.get_chats("u1")

        assert summary.last_message_content == ""
        assert summary.last_message_time == chat.last_message_at

    @pytest.mark.asyncio
    async def test_lifecycle_dispatches_events(self, interactor_factory, dispatched):
        chat = await open_chat(interactor_factory)

        async with interactor_factory.open() as scope:
            ended = await scope.chats.end_chat(chat.id, "u1")
            with pytest.raises(InvalidTransition, match="cannot report"):
                await scope.chats.report_chat(chat.id, "u1", "spam")
            reported = await scope.chats.report_chat(chat.id, "u2", "spam")
            deleted = await scope.chats.delete_chat(chat.id, "u1")

        assert ended.status == "ended" and ended.ended_by == "u1"
        assert reported.reported_by == "u2"
        assert deleted.status == "deleted" and deleted.is_active is False
        assert [type(event).__name__ for event in dispatched] == ["ChatEnded", "ChatReported"]
        assert dispatched[0].participant_ids == ["u1", "u2"]

    @pytest.mark.asyncio
    async def test_outsider_cannot_see_chat(self, interactor_factory):
        chat = await open_chat(interactor_factory)

        async with interactor_factory.open() as scope:
            with pytest.raises(Forbidden):
                await scope.chats.get_chat(chat.id, "u3")
            with pytest.raises(Forbidden):
                await scope.chats.end_chat(chat.id, "u3")

    @pytest.mark.asyncio
    async def test_stats(self, interactor_factory):
        chat = await open_chat(interactor_factory)
        await open_chat(interactor_factory, "u1", "u3")
        async with interactor_factory.open() as scope:
            await scope.chats.end_chat(chat.id, "u2")
            stats = await scope.chats.get_stats(online_users=3)

        assert stats.total == 2
        assert (stats.active, stats.ended, stats.deleted, stats.reported) == (1, 1, 0, 0)
        assert stats.online_users == 3


class TestMessageInteractor:
    @pytest.mark.asyncio
    async def test_send_message_dispatches_wire_message(self, interactor_factory, dispatched):
        chat = await open_chat(interactor_factory)

        message = await send(interactor_factory, chat.id, "u1", content="Is it available?")

        assert message.seq == 1
        event = dispatched[0]
        assert event.recipient_ids == ["u2"]
        assert event.message["id"] == message.id
        assert event.message["senderId"] == "u1"
        assert event.message["messageType"] == "text"

    @pytest.mark.asyncio
    async def test_send_message_rejections(self, interactor_factory):
        chat = await open_chat(interactor_factory)

        with pytest.raises(NotFound):
            await send(interactor_factory, "missing", "u1")
        with pytest.raises(Forbidden):
            await send(interactor_factory, chat.id, "u3")
        with pytest.raises(NotFound, match="Product not found"):
            await send(interactor_factory, chat.id, "u1", message_type="product", product_ref="nope")

        async with interactor_factory.open() as scope:
            await scope.chats.end_chat(chat.id, "u1")
        with pytest.raises(InvalidState, match="Chat has ended"):
            await send(interactor_factory, chat.id, "u2")

    @pytest.mark.asyncio
    async def test_get_messages_marks_page_read(self, interactor_factory, dispatched):
        chat = await open_chat(interactor_factory)
        for i in range(3):
            await send(interactor_factory, chat.id, "u1", content=f"m{i}")
        await send(interactor_factory, chat.id, "u2", content="reply")
        dispatched.clear()

        async with interactor_factory.open() as scope:
            page = await scope.messages.get_messages(chat.id, "u2", page=1, limit=2)

        assert [m.content for m in page.messages] == ["m2", "reply"]
        assert page.has_more is True
        assert [r.user_id for r in page.messages[0].read_by] == ["u2"]
        assert page.messages[1].read_by == []
        assert len(dispatched) == 1
        assert dispatched[0].message_ids == [page.messages[0].id]

        async with interactor_factory.open() as scope:
            await scope.messages.get_messages(chat.id, "u2", page=1, limit=2)
        assert len(dispatched) == 1

    @pytest.mark.asyncio
    async def test_mark_read(self, interactor_factory, dispatched):
        chat = await open_chat(interactor_factory)
        await send(interactor_factory, chat.id, "u1", content="one")
        await send(interactor_factory, chat.id, "u1", content="two")
        dispatched.clear()

        async with interactor_factory.open() as scope:
            batch = await scope.messages.mark_read(chat.id, "u2")
            again = await scope.messages.mark_read(chat.id, "u2")

        assert len(batch.message_ids) == 2
        assert batch.read_by == "u2"
        assert again.message_ids == [] and again.read_at is None
        assert len(dispatched) == 1

    @pytest.mark.asyncio
    async def test_rejected_send_leaves_chat_untouched(self, interactor_factory, dispatched):
        chat = await open_chat(interactor_factory)
        await send(interactor_factory, chat.id, "u1", content="before")
        async with interactor_factory.open() as scope:
            ended = await scope.chats.end_chat(chat.id, "u1")
        dispatched.clear()

        with pytest.raises(InvalidState):
            await send(interactor_factory, chat.id, "u2", content="after")

        async with interactor_factory.open() as scope:
            after = await scope.chats.get_chat(chat.id, "u2")
            page = await scope.messages.get_messages(chat.id, "u1")
        assert after.message_count == ended.message_count == 1
        assert after.last_message_at == ended.last_message_at
        assert [m.content for m in page.messages] == ["before"]
        assert dispatched == []


@pytest.fixture
async def file_interactor_factory(tmp_path, test_logger):
    """Interactors over a file database, so every session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/chat.db")
    database = Database(engine)
    await database.connect()
    await init_demo_data(database.SessionLocal)
    event_dispatcher = EventDispatcher(test_logger)
    yield InteractorFactory(database, event_dispatcher, KeyedLock())
    await database.disconnect()


@pytest.mark.asyncio
async def test_concurrent_read_marking_stores_each_receipt_once(file_interactor_factory):
    factory = file_interactor_factory
    batches = []

    async def record(event):
        batches.append(event.message_ids)

    factory.event_dispatcher.register("MessagesRead", record)

    chat = await open_chat(factory)
    sent = [await send(factory, chat.id, "u1", content=f"m{i}") for i in range(20)]

    async def mark():
        async with factory.open() as scope:
            return await scope.messages.mark_read(chat.id, "u2")

    async def fetch():
        async with factory.open() as scope:
            return await scope.messages.get_messages(chat.id, "u2")

    results = await asyncio.gather(
        *(mark() for _ in range(4)), *(fetch() for _ in range(4)), return_exceptions=True
    )

    assert [r for r in results if isinstance(r, BaseException)] == []
    read_ids = [message_id for batch in batches for message_id in batch]
    assert sorted(read_ids) == sorted(message.id for message in sent)
    async with factory.open() as scope:
        page = await scope.messages.get_messages(chat.id, "u2")
    assert all([r.user_id for r in m.read_by] == ["u2"] for m in page.messages)
