"""In-process run queue for tests and single-process deployments."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import Deque, Dict, Optional

from .base import BaseTransport


class InMemoryTransport(BaseTransport):
    """Per-topic deques guarded by one lock. Lost when the process exits."""

    def __init__(self) -> None:
        self._queues: Dict[str, Deque[str]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    async def push(self, topic: str, payload: str) -> None:
        async with self._lock:
            self._queues[topic].append(payload)

    async def pop(self, topic: str) -> Optional[str]:
        async with self._lock:
            queue = self._queues[topic]
            return queue.popleft() if queue else None
