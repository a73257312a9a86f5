# marketchat/infrastructure/redis_client.py
import logging

import redis.asyncio as redis


class RedisClient:
    def __init__(self, host: str, port: int, logger: logging.Logger):
        self.host = host
        self.port = port
        self.client: redis.Redis | None = None
        self.logger = logger

    async def connect(self):
        if self.client is None:
            self.client = redis.Redis(
                host=self.host,
                port=self.port,
                db=0,
                decode_responses=True,
            )
        try:
            await self.client.ping()
            self.logger.info(
                f"Successfully connected to Redis at {self.host}:{self.port}"
            )
        except redis.ConnectionError as e:
            self.logger.error(f"Failed to connect to Redis: {e!s}")
            self.logger.error(f"Redis host: {self.host}, Redis port: {self.port}")
            raise e

    async def disconnect(self):
        if self.client:
            await self.client.aclose()
            self.logger.info("Disconnected from Redis")

    def _require_client(self) -> redis.Redis:
        if self.client is None:
            raise RuntimeError("Redis client not connected")
        return self.client

    async def publish(self, channel: str, message: str) -> None:
        await self._require_client().publish(channel, message)
        self.logger.debug(f"Published message to channel {channel}")

    async def push_bounded(
        self, key: str, value: str, limit: int, ttl_seconds: int | None = None
    ) -> None:
        """Append to a list and keep only its newest ``limit`` items."""
        async with self._require_client().pipeline(transaction=True) as pipe:
            pipe.rpush(key, value)
            pipe.ltrim(key, -limit, -1)
            if ttl_seconds:
                pipe.expire(key, ttl_seconds)
            await pipe.execute()
        self.logger.debug(f"Pushed item to list {key}")

    async def drain_list(self, key: str) -> list[str]:
        """Read and remove a whole list atomically."""
        async with self._require_client().pipeline(transaction=True) as pipe:
            pipe.lrange(key, 0, -1)
            pipe.delete(key)
            items, _ = await pipe.execute()
        return [item.decode() if isinstance(item, bytes) else item for item in items]

    async def list_length(self, key: str) -> int:
        return await self._require_client().llen(key)
