"""Queue interface between run callers and background workers."""

from __future__ import annotations

import abc
import asyncio
import logging
from typing import AsyncIterator, Optional, Tuple

from pydantic import ValidationError

from ..contracts import RunRequest

logger = logging.getLogger(__name__)


class BaseTransport(metaclass=abc.ABCMeta):
    """FIFO queue of serialized ``RunRequest`` payloads.

    Backends only move JSON strings; encoding, decoding and the worker's
    polling loop live here.
    """

    # Seconds to wait after an empty pop
    poll_interval: float = 0.1

    async def connect(self) -> None:
        """Open connection to broker (no-op by default)."""

    async def disconnect(self) -> None:
        """Close connection to broker (no-op by default)."""

    @abc.abstractmethod
    async def push(self, topic: str, payload: str) -> None:
        """Append ``payload`` to the queue for ``topic``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def pop(self, topic: str) -> Optional[str]:
        """Remove and return the oldest payload, or ``None`` when empty."""
        raise NotImplementedError

    async def publish(self, topic: str, request: RunRequest) -> None:
        await self.push(topic, request.to_json())
        logger.debug(f"Published run request {request.request_id} to {topic}")

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[str, RunRequest]]:
        """Yield ``(payload, request)`` pairs as run requests arrive.

        Args:
            topic: Queue to consume.
            lifespan: Stop after this many seconds. ``None`` runs indefinitely.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan else None

        while deadline is None or loop.time() < deadline:
            payload = await self.pop(topic)
            if payload is None:
                await asyncio.sleep(self.poll_interval)
                continue
            try:
                request = RunRequest.from_json(payload)
            except ValidationError as e:
                logger.error(f"Dropping malformed run request on {topic}: {e}")
                continue
            yield payload, request

    async def ack(self, raw_message: str) -> None:
        """Acknowledge a processed payload. Pops are destructive, so no-op."""
