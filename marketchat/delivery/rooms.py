# marketchat/delivery/rooms.py
import logging
from collections import defaultdict
from collections.abc import Iterable
from typing import Any

from marketchat.delivery.connection import Connection


def user_room(user_id: str) -> str:
    return f"user:{user_id}"


def chat_room(chat_id: str) -> str:
    return f"chat:{chat_id}"


class RoomRegistry:
    """Room membership for live connections.

    Every connection sits in its personal room ``user:{id}`` and in the
    ``chat:{id}`` rooms it joined. Emitting to several rooms reaches each
    connection once.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self._members: dict[str, dict[str, Connection]] = defaultdict(dict)
        self._rooms_of: dict[str, set[str]] = defaultdict(set)

    def join(self, room: str, connection: Connection) -> None:
        self._members[room][connection.connection_id] = connection
        self._rooms_of[connection.connection_id].add(room)
        self.logger.debug(f"Connection {connection.connection_id} joined {room}")

    def leave(self, room: str, connection: Connection) -> None:
        members = self._members.get(room)
        if members is not None:
            members.pop(connection.connection_id, None)
            if not members:
                del self._members[room]
        rooms = self._rooms_of.get(connection.connection_id)
        if rooms is not None:
            rooms.discard(room)
        self.logger.debug(f"Connection {connection.connection_id} left {room}")

    def remove_connection(self, connection: Connection) -> None:
        for room in list(self._rooms_of.pop(connection.connection_id, set())):
            members = self._members.get(room)
            if members is None:
                continue
            members.pop(connection.connection_id, None)
            if not members:
                del self._members[room]

    def is_member(self, room: str, connection: Connection) -> bool:
        return connection.connection_id in self._members.get(room, {})

    def members(self, room: str) -> list[Connection]:
        return list(self._members.get(room, {}).values())

    def rooms_of(self, connection: Connection) -> set[str]:
        return set(self._rooms_of.get(connection.connection_id, set()))

    async def emit(
        self,
        rooms: str | Iterable[str],
        event: str,
        data: Any,
        exclude_user: str | None = None,
    ) -> int:
        """Send ``event`` to every connection in ``rooms``; returns the number reached."""
        if isinstance(rooms, str):
            rooms = [rooms]
        targets: dict[str, Connection] = {}
        for room in rooms:
            for connection_id, connection in self._members.get(room, {}).items():
                if exclude_user is not None and connection.user_id == exclude_user:
                    continue
                targets.setdefault(connection_id, connection)

        delivered = 0
        for connection in targets.values():
            try:
                await connection.send(event, data)
                delivered += 1
            except Exception as e:
                self.logger.warning(
                    f"Failed to deliver {event} to connection {connection.connection_id}: {e!s}"
                )
        self.logger.debug(f"Emitted {event} to {delivered} connection(s)")
        return delivered
