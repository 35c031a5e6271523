"""Run queue backends and the configured-backend factory."""

from __future__ import annotations

import os
from typing import Optional

from ..config import MeopConfig, load_config
from .base import BaseTransport
from .inmemory import InMemoryTransport


def get_transport(
    backend: Optional[str] = None, config: Optional[MeopConfig] = None
) -> BaseTransport:
    """Return the run queue named by ``backend``, ``MEOP_TRANSPORT`` or config.

    The in-memory queue only reaches workers running in the same process.
    """
    config = config or load_config()
    name = (backend or os.getenv("MEOP_TRANSPORT") or config.transport.backend).lower()

    if name == "inmemory":
        return InMemoryTransport()
    if name == "redis":
        from .redis import RedisTransport

        return RedisTransport(**config.transport.redis.model_dump())
    raise ValueError(f"Unsupported transport backend: {name}")


__all__ = ["BaseTransport", "InMemoryTransport", "get_transport"]
