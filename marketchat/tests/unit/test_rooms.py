# marketchat/tests/unit/test_rooms.py
import pytest

from marketchat.delivery.rooms import chat_room, user_room
from marketchat.tests.fakes import FakeConnection


def test_room_names():
    assert user_room("u1") == "user:u1"
    assert chat_room("c1") == "chat:c1"


def test_join_and_leave(rooms):
    conn = FakeConnection("u1")
    rooms.join("chat:c1", conn)
    assert rooms.is_member("chat:c1", conn)
    assert rooms.rooms_of(conn) == {"chat:c1"}

    rooms.leave("chat:c1", conn)
    assert not rooms.is_member("chat:c1", conn)
    assert rooms.members("chat:c1") == []


def test_leave_unknown_room_is_noop(rooms):
    conn = FakeConnection("u1")
    rooms.leave("chat:missing", conn)
    assert rooms.rooms_of(conn) == set()


def test_remove_connection_leaves_every_room(rooms):
    conn = FakeConnection("u1")
    other = FakeConnection("u2")
    rooms.join("user:u1", conn)
    rooms.join("chat:c1", conn)
    rooms.join("chat:c1", other)

    rooms.remove_connection(conn)

    assert rooms.rooms_of(conn) == set()
    assert rooms.members("chat:c1") == [other]
    assert rooms.members("user:u1") == []


@pytest.mark.asyncio
async def test_emit_deduplicates_across_rooms(rooms):
    u2 = FakeConnection("u2")
    rooms.join("chat:c1", u2)
    rooms.join("user:u2", u2)

    delivered = await rooms.emit(["chat:c1", "user:u2"], "new_message", {"chatId": "c1"})

    assert delivered == 1
    assert u2.sent == [("new_message", {"chatId": "c1"})]


@pytest.mark.asyncio
async def test_emit_excludes_user(rooms):
    u1, u2 = FakeConnection("u1"), FakeConnection("u2")
    rooms.join("chat:c1", u1)
    rooms.join("chat:c1", u2)

    await rooms.emit("chat:c1", "user_typing", {"userId": "u1"}, exclude_user="u1")

    assert u1.sent == []
    assert u2.names() == ["user_typing"]


@pytest.mark.asyncio
async def test_emit_logs_and_skips_broken_connections(rooms, caplog):
    broken = FakeConnection("u1", fail=True)
    healthy = FakeConnection("u2")
    rooms.join("chat:c1", broken)
    rooms.join("chat:c1", healthy)

    delivered = await rooms.emit("chat:c1", "chat_ended", {"chatId": "c1"})

    assert delivered == 1
    assert healthy.names() == ["chat_ended"]
    assert "Failed to deliver chat_ended" in caplog.text
