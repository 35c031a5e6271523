"""In-memory implementation of the execution repository."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict

from ..contracts import Sequence
from ..errors import ExecutionNotFoundError, ExecutionStateError
from .models import TERMINAL_STATUSES, Execution, ExecutionStatus, StepResult
from .repository import ExecutionRepository


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryExecutionRepository(ExecutionRepository):
    """Store sequences and executions in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._sequences: Dict[str, Sequence] = {}
        self._executions: Dict[str, Execution] = {}

    # ------------------------------------------------------------------
    # Sequences
    async def save_sequence(self, sequence: Sequence) -> None:
        self._sequences[sequence.id] = sequence.model_copy(deep=True)

    async def get_sequence(self, sequence_id: str) -> Sequence | None:
        seq = self._sequences.get(sequence_id)
        return seq.model_copy(deep=True) if seq else None

    async def list_sequences(self, active_only: bool = False) -> list[Sequence]:
        return [
            seq.model_copy(deep=True)
            for seq in self._sequences.values()
            if seq.is_active or not active_only
        ]

    async def mark_sequence_run(self, sequence_id: str, ran_at: datetime) -> None:
        seq = self._sequences.get(sequence_id)
        if seq:
            seq.last_run_at = ran_at

    # ------------------------------------------------------------------
    # Executions
    def _require(self, execution_id: str) -> Execution:
        execution = self._executions.get(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(f"Execution {execution_id} not found")
        return execution

    async def create_execution(
        self,
        sequence_id: str,
        input_data: dict | None = None,
        execution_id: str | None = None,
    ) -> str:
        execution_id = execution_id or str(uuid.uuid4())
        self._executions[execution_id] = Execution(
            id=execution_id,
            sequence_id=sequence_id,
            status="running",
            input_data=input_data or {},
            started_at=_utcnow(),
        )
        return execution_id

    async def append_step_result(self, execution_id: str, result: StepResult) -> None:
        self._require(execution_id).step_results.append(result.model_copy(deep=True))

    async def finalize_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        error_message: str | None = None,
        final_result: str | None = None,
    ) -> None:
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Not a terminal status: {status}")
        execution = self._require(execution_id)
        if execution.status != "running":
            raise ExecutionStateError(
                f"Execution {execution_id} is already {execution.status}"
            )
        completed_at = _utcnow()
        execution.status = status
        execution.error_message = error_message
        execution.final_result = final_result
        execution.completed_at = completed_at
        execution.duration_ms = int(
            (completed_at - execution.started_at).total_seconds() * 1000
        )

    async def get_execution(self, execution_id: str) -> Execution | None:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def list_executions(self, sequence_id: str | None = None) -> list[Execution]:
        executions = [
            e.model_copy(deep=True)
            for e in self._executions.values()
            if sequence_id is None or e.sequence_id == sequence_id
        ]
        executions.sort(key=lambda e: e.started_at, reverse=True)
        return executions
