# marketchat/delivery/presence.py
import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from marketchat.delivery.connection import Connection
from marketchat.infrastructure.time import utc_now


@dataclass
class PresenceEntry:
    connection: Connection
    connected_at: datetime
    last_seen_at: datetime


class PresenceRegistry:
    """Which users currently hold a live connection.

    At most one entry per user: a newer connection replaces the older one,
    which is handed back to the caller so it can be closed.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self._lock = asyncio.Lock()
        self._entries: dict[str, PresenceEntry] = {}
        self._last_seen: dict[str, datetime] = {}

    async def register(self, user_id: str, connection: Connection) -> Connection | None:
        now = utc_now()
        async with self._lock:
            current = self._entries.get(user_id)
            if current is not None and current.connection.connection_id == connection.connection_id:
                current.last_seen_at = now
                return None
            self._entries[user_id] = PresenceEntry(connection, now, now)
            self._last_seen.pop(user_id, None)

        if current is not None:
            self.logger.info(
                f"User {user_id} reconnected, replacing connection {current.connection.connection_id}"
            )
            return current.connection
        self.logger.info(f"User {user_id} is online")
        return None

    async def unregister(self, user_id: str, connection: Connection | None = None) -> bool:
        async with self._lock:
            current = self._entries.get(user_id)
            if current is None:
                return False
            if connection is not None and current.connection.connection_id != connection.connection_id:
                # a newer connection already took over
                return False
            del self._entries[user_id]
            self._last_seen[user_id] = utc_now()
        self.logger.info(f"User {user_id} is offline")
        return True

    def is_online(self, user_id: str) -> bool:
        return user_id in self._entries

    def last_seen(self, user_id: str) -> datetime | None:
        entry = self._entries.get(user_id)
        if entry is not None:
            return entry.last_seen_at
        return self._last_seen.get(user_id)

    def online_user_ids(self) -> list[str]:
        return list(self._entries)

    def connection_for(self, user_id: str) -> Connection | None:
        entry = self._entries.get(user_id)
        return entry.connection if entry else None

    async def touch(self, user_id: str) -> None:
        async with self._lock:
            entry = self._entries.get(user_id)
            if entry is not None:
                entry.last_seen_at = utc_now()

    async def broadcast_presence_change(
        self,
        user_id: str,
        online: bool,
        last_seen_at: datetime | None = None,
        audience: Iterable[str] | None = None,
    ) -> int:
        if online:
            event, data = "user_online", {"userId": user_id}
        else:
            seen = last_seen_at or self._last_seen.get(user_id) or utc_now()
            event, data = "user_offline", {"userId": user_id, "lastSeenAt": seen.isoformat()}

        allowed = set(audience) if audience is not None else None
        async with self._lock:
            targets = [
                entry.connection
                for uid, entry in self._entries.items()
                if uid != user_id and (allowed is None or uid in allowed)
            ]

        delivered = 0
        for connection in targets:
            try:
                await connection.send(event, data)
                delivered += 1
            except Exception as e:
                self.logger.warning(
                    f"Failed to send {event} for {user_id} to {connection.user_id}: {e!s}"
                )
        return delivered
