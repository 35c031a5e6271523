"""PostgreSQL implementation of the execution repository."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any

import asyncpg

from ..contracts import Sequence
from ..errors import ExecutionNotFoundError, ExecutionStateError
from .models import TERMINAL_STATUSES, Execution, ExecutionStatus, StepResult
from .repository import ExecutionRepository


def _json(value: Any) -> Any:
    # JSONB columns come back as text unless a codec is registered
    return json.loads(value) if isinstance(value, str) else value


class PostgresExecutionRepository(ExecutionRepository):
    """Persist sequences and executions using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS sequences (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                is_active BOOLEAN NOT NULL,
                definition JSONB NOT NULL,
                last_run_at TIMESTAMPTZ
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                sequence_id TEXT NOT NULL,
                status TEXT NOT NULL,
                input_data JSONB,
                started_at TIMESTAMPTZ NOT NULL,
                completed_at TIMESTAMPTZ,
                duration_ms INTEGER,
                error_message TEXT,
                final_result TEXT
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS step_results (
                id SERIAL PRIMARY KEY,
                execution_id TEXT NOT NULL REFERENCES executions(id),
                data JSONB NOT NULL
            )
            """
        )

    def _record_to_sequence(self, record: asyncpg.Record) -> Sequence:
        seq = Sequence.model_validate(_json(record["definition"]))
        seq.last_run_at = record["last_run_at"]
        return seq

    def _record_to_execution(
        self, record: asyncpg.Record, steps: list[asyncpg.Record]
    ) -> Execution:
        return Execution(
            id=record["id"],
            sequence_id=record["sequence_id"],
            status=record["status"],
            input_data=_json(record["input_data"]) or {},
            started_at=record["started_at"],
            completed_at=record["completed_at"],
            duration_ms=record["duration_ms"],
            error_message=record["error_message"],
            final_result=record["final_result"],
            step_results=[StepResult.model_validate(_json(s["data"])) for s in steps],
        )

    # ------------------------------------------------------------------
    async def save_sequence(self, sequence: Sequence) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO sequences (id, name, is_active, definition, last_run_at)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (id) DO UPDATE
                SET name = EXCLUDED.name, is_active = EXCLUDED.is_active,
                    definition = EXCLUDED.definition, last_run_at = EXCLUDED.last_run_at
                """,
                sequence.id,
                sequence.name,
                sequence.is_active,
                sequence.to_json(),
                sequence.last_run_at,
            )
        finally:
            await conn.close()

    async def get_sequence(self, sequence_id: str) -> Sequence | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT definition, last_run_at FROM sequences WHERE id = $1",
                sequence_id,
            )
        finally:
            await conn.close()
        return self._record_to_sequence(row) if row else None

    async def list_sequences(self, active_only: bool = False) -> list[Sequence]:
        query = "SELECT definition, last_run_at FROM sequences"
        if active_only:
            query += " WHERE is_active"
        conn = await self._connect()
        try:
            rows = await conn.fetch(query + " ORDER BY name")
        finally:
            await conn.close()
        return [self._record_to_sequence(r) for r in rows]

    async def mark_sequence_run(self, sequence_id: str, ran_at: datetime) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "UPDATE sequences SET last_run_at = $1 WHERE id = $2",
                ran_at,
                sequence_id,
            )
        finally:
            await conn.close()

    async def create_execution(
        self,
        sequence_id: str,
        input_data: dict | None = None,
        execution_id: str | None = None,
    ) -> str:
        execution_id = execution_id or str(uuid.uuid4())
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO executions (id, sequence_id, status, input_data, started_at) VALUES ($1, $2, $3, $4, $5)",
                execution_id,
                sequence_id,
                "running",
                json.dumps(input_data or {}),
                datetime.now(timezone.utc),
            )
        finally:
            await conn.close()
        return execution_id

    async def append_step_result(self, execution_id: str, result: StepResult) -> None:
        conn = await self._connect()
        try:
            exists = await conn.fetchval(
                "SELECT 1 FROM executions WHERE id = $1", execution_id
            )
            if not exists:
                raise ExecutionNotFoundError(f"Execution {execution_id} not found")
            await conn.execute(
                "INSERT INTO step_results (execution_id, data) VALUES ($1, $2)",
                execution_id,
                result.model_dump_json(),
            )
        finally:
            await conn.close()

    async def finalize_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        error_message: str | None = None,
        final_result: str | None = None,
    ) -> None:
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Not a terminal status: {status}")
        conn = await self._connect()
        try:
            command = await conn.execute(
                """
                UPDATE executions
                SET status = $1, error_message = $2, final_result = $3,
                    completed_at = now(),
                    duration_ms = (EXTRACT(EPOCH FROM (now() - started_at)) * 1000)::INTEGER
                WHERE id = $4 AND status = 'running'
                """,
                status,
                error_message,
                final_result,
                execution_id,
            )
            if command == "UPDATE 0":
                current = await conn.fetchval(
                    "SELECT status FROM executions WHERE id = $1", execution_id
                )
                if current is None:
                    raise ExecutionNotFoundError(f"Execution {execution_id} not found")
                raise ExecutionStateError(
                    f"Execution {execution_id} is already {current}"
                )
        finally:
            await conn.close()

    async def get_execution(self, execution_id: str) -> Execution | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT * FROM executions WHERE id = $1", execution_id
            )
            if not row:
                return None
            steps = await conn.fetch(
                "SELECT data FROM step_results WHERE execution_id = $1 ORDER BY id",
                execution_id,
            )
        finally:
            await conn.close()
        return self._record_to_execution(row, steps)

    async def list_executions(self, sequence_id: str | None = None) -> list[Execution]:
        conn = await self._connect()
        try:
            if sequence_id is None:
                rows = await conn.fetch(
                    "SELECT * FROM executions ORDER BY started_at DESC"
                )
            else:
                rows = await conn.fetch(
                    "SELECT * FROM executions WHERE sequence_id = $1 ORDER BY started_at DESC",
                    sequence_id,
                )
            executions: list[Execution] = []
            for row in rows:
                steps = await conn.fetch(
                    "SELECT data FROM step_results WHERE execution_id = $1 ORDER BY id",
                    row["id"],
                )
                executions.append(self._record_to_execution(row, steps))
        finally:
            await conn.close()
        return executions
