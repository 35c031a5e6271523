"""Repository abstraction for sequence and execution persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..contracts import Sequence
from .models import Execution, ExecutionStatus, StepResult


class ExecutionRepository(Protocol):
    """Protocol for execution store backends.

    A single runner owns an execution between ``create_execution`` and
    ``finalize_execution``; step results are appended, never rewritten.
    """

    async def save_sequence(self, sequence: Sequence) -> None:
        """Insert or replace a sequence definition."""

    async def get_sequence(self, sequence_id: str) -> Sequence | None:
        """Retrieve a sequence by id."""

    async def list_sequences(self, active_only: bool = False) -> list[Sequence]:
        """Return stored sequences."""

    async def mark_sequence_run(self, sequence_id: str, ran_at: datetime) -> None:
        """Record the last successful run time of a sequence."""

    async def create_execution(
        self,
        sequence_id: str,
        input_data: dict | None = None,
        execution_id: str | None = None,
    ) -> str:
        """Persist a new ``running`` execution and return its id."""

    async def append_step_result(self, execution_id: str, result: StepResult) -> None:
        """Append a finished step result."""

    async def finalize_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        error_message: str | None = None,
        final_result: str | None = None,
    ) -> None:
        """Move a running execution to its terminal status."""

    async def get_execution(self, execution_id: str) -> Execution | None:
        """Retrieve an execution with its step results."""

    async def list_executions(self, sequence_id: str | None = None) -> list[Execution]:
        """Return executions, most recent first."""
