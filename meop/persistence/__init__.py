"""Sequence catalogue and execution store backends."""

from __future__ import annotations

from typing import Optional

from ..config import MeopConfig, load_config
from .inmemory import InMemoryExecutionRepository
from .models import Execution, StepResult
from .postgres import PostgresExecutionRepository
from .repository import ExecutionRepository
from .sqlite import SQLiteExecutionRepository

_repository_instance: ExecutionRepository | None = None


def _open(database_url: Optional[str]) -> ExecutionRepository:
    if not database_url:
        return InMemoryExecutionRepository()
    scheme, _, location = database_url.partition("://")
    if scheme == "sqlite":
        # sqlite:///abs/path.db and sqlite://rel/path.db
        return SQLiteExecutionRepository(location or ":memory:")
    if scheme in ("postgres", "postgresql"):
        return PostgresExecutionRepository(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[MeopConfig] = None
) -> ExecutionRepository:
    """Return the process-wide execution repository.

    The first call opens the backend named by ``database_url`` or, failing
    that, by the loaded configuration (which already honours
    ``MEOP_DATABASE_URL`` and ``DATABASE_URL``). Without a database the store
    is in-memory. Passing either argument replaces the shared instance.
    """
    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    _repository_instance = _open(database_url or config.database_url)
    return _repository_instance


__all__ = [
    "Execution",
    "StepResult",
    "ExecutionRepository",
    "SQLiteExecutionRepository",
    "PostgresExecutionRepository",
    "InMemoryExecutionRepository",
    "get_repository",
]
