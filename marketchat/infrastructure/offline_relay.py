# marketchat/infrastructure/offline_relay.py
import json
import logging
from typing import Any

from redis.exceptions import RedisError

from marketchat.domain.exceptions import Unavailable
from marketchat.infrastructure import schemas
from marketchat.infrastructure.redis_client import RedisClient
from marketchat.infrastructure.time import utc_now


def relay_key(user_id: str) -> str:
    return f"relay:user:{user_id}"


class OfflineRelay:
    """Per-user bounded queue of messages that arrived while the user was away.

    Delivery is best-effort and at most once; the conversation store stays the
    source of truth and clients re-sync history from it.
    """

    def __init__(
        self,
        redis_client: RedisClient,
        limit: int,
        ttl_seconds: int | None,
        logger: logging.Logger,
    ):
        self.redis_client = redis_client
        self.limit = limit
        self.ttl_seconds = ttl_seconds
        self.logger = logger

    async def enqueue(self, user_id: str, chat_id: str, message: dict[str, Any]) -> None:
        entry = json.dumps(
            {"chatId": chat_id, "message": message, "queuedAt": utc_now().isoformat()},
            default=str,
        )
        try:
            await self.redis_client.push_bounded(
                relay_key(user_id), entry, self.limit, self.ttl_seconds
            )
        except RedisError as e:
            self.logger.error(f"Failed to queue offline message for {user_id}: {e!s}")
            raise Unavailable() from e
        self.logger.debug(f"Queued offline message for {user_id} in chat {chat_id}")

    async def drain(self, user_id: str) -> list[schemas.RelayEntry]:
        try:
            raw_entries = await self.redis_client.drain_list(relay_key(user_id))
        except RedisError as e:
            self.logger.error(f"Failed to drain offline queue for {user_id}: {e!s}")
            raise Unavailable() from e

        entries = []
        for raw in raw_entries:
            try:
                entries.append(schemas.RelayEntry.model_validate_json(raw))
            except ValueError:
                self.logger.warning(f"Dropping malformed offline entry for {user_id}")
        if entries:
            self.logger.info(f"Drained {len(entries)} offline message(s) for {user_id}")
        return entries

    async def pending(self, user_id: str) -> int:
        try:
            return await self.redis_client.list_length(relay_key(user_id))
        except RedisError as e:
            raise Unavailable() from e
