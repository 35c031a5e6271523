"""Redis list-backed run queue shared between processes."""

from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as redis

from .base import BaseTransport


class RedisTransport(BaseTransport):
    """LPUSH to enqueue, BRPOP to consume, so each request reaches one worker."""

    # BRPOP already blocks for up to ``block_timeout`` seconds
    poll_interval = 0.01

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        block_timeout: int = 1,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.block_timeout = block_timeout
        self._redis: Optional[Any] = None

    @staticmethod
    def queue_name(topic: str) -> str:
        return f"meop:{topic}"

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _client(self) -> Any:
        if not self._redis:
            await self.connect()
        return self._redis

    async def push(self, topic: str, payload: str) -> None:
        client = await self._client()
        await client.lpush(self.queue_name(topic), payload)

    async def pop(self, topic: str) -> Optional[str]:
        client = await self._client()
        result = await client.brpop(self.queue_name(topic), timeout=self.block_timeout)
        if not result:
            return None
        _, payload = result
        return payload
