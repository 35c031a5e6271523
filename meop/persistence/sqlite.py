"""SQLite implementation of the execution repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..contracts import Sequence
from ..errors import ExecutionNotFoundError, ExecutionStateError
from .models import TERMINAL_STATUSES, Execution, ExecutionStatus, StepResult
from .repository import ExecutionRepository


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteExecutionRepository(ExecutionRepository):
    """Persist sequences and executions using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS sequences (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                is_active INTEGER NOT NULL,
                definition TEXT NOT NULL,
                last_run_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                sequence_id TEXT NOT NULL,
                status TEXT NOT NULL,
                input_data TEXT,
                started_at TEXT NOT NULL,
                completed_at TEXT,
                duration_ms INTEGER,
                error_message TEXT,
                final_result TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS step_results (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                execution_id TEXT NOT NULL,
                data TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    def _row_to_sequence(self, row: sqlite3.Row) -> Sequence:
        seq = Sequence.from_json(row["definition"])
        seq.last_run_at = _parse_ts(row["last_run_at"])
        return seq

    def _row_to_execution(
        self, row: sqlite3.Row, steps: list[sqlite3.Row]
    ) -> Execution:
        return Execution(
            id=row["id"],
            sequence_id=row["sequence_id"],
            status=row["status"],
            input_data=json.loads(row["input_data"]) if row["input_data"] else {},
            started_at=_parse_ts(row["started_at"]),
            completed_at=_parse_ts(row["completed_at"]),
            duration_ms=row["duration_ms"],
            error_message=row["error_message"],
            final_result=row["final_result"],
            step_results=[StepResult.model_validate_json(s["data"]) for s in steps],
        )

    def _finalize(
        self,
        execution_id: str,
        status: str,
        error_message: str | None,
        final_result: str | None,
    ) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                "SELECT status, started_at FROM executions WHERE id = ?",
                (execution_id,),
            )
            row = cur.fetchone()
            if row is None:
                raise ExecutionNotFoundError(f"Execution {execution_id} not found")
            if row["status"] != "running":
                raise ExecutionStateError(
                    f"Execution {execution_id} is already {row['status']}"
                )
            completed_at = datetime.now(timezone.utc)
            duration_ms = int(
                (completed_at - datetime.fromisoformat(row["started_at"])).total_seconds()
                * 1000
            )
            cur.execute(
                """
                UPDATE executions
                SET status = ?, error_message = ?, final_result = ?,
                    completed_at = ?, duration_ms = ?
                WHERE id = ? AND status = 'running'
                """,
                (
                    status,
                    error_message,
                    final_result,
                    completed_at.isoformat(),
                    duration_ms,
                    execution_id,
                ),
            )
            self._conn.commit()

    # ------------------------------------------------------------------
    # Repository API
    async def save_sequence(self, sequence: Sequence) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT OR REPLACE INTO sequences (id, name, is_active, definition, last_run_at) VALUES (?, ?, ?, ?, ?)",
            sequence.id,
            sequence.name,
            int(sequence.is_active),
            sequence.to_json(),
            sequence.last_run_at.isoformat() if sequence.last_run_at else None,
        )

    async def get_sequence(self, sequence_id: str) -> Sequence | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT definition, last_run_at FROM sequences WHERE id = ?",
            sequence_id,
        )
        return self._row_to_sequence(row) if row else None

    async def list_sequences(self, active_only: bool = False) -> list[Sequence]:
        query = "SELECT definition, last_run_at FROM sequences"
        if active_only:
            query += " WHERE is_active = 1"
        rows = await asyncio.to_thread(self._fetchall, query + " ORDER BY name")
        return [self._row_to_sequence(r) for r in rows]

    async def mark_sequence_run(self, sequence_id: str, ran_at: datetime) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE sequences SET last_run_at = ? WHERE id = ?",
            ran_at.isoformat(),
            sequence_id,
        )

    async def create_execution(
        self,
        sequence_id: str,
        input_data: dict | None = None,
        execution_id: str | None = None,
    ) -> str:
        execution_id = execution_id or str(uuid.uuid4())
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO executions (id, sequence_id, status, input_data, started_at) VALUES (?, ?, ?, ?, ?)",
            execution_id,
            sequence_id,
            "running",
            json.dumps(input_data or {}),
            datetime.now(timezone.utc).isoformat(),
        )
        return execution_id

    async def append_step_result(self, execution_id: str, result: StepResult) -> None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT id FROM executions WHERE id = ?", execution_id
        )
        if row is None:
            raise ExecutionNotFoundError(f"Execution {execution_id} not found")
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO step_results (execution_id, data) VALUES (?, ?)",
            execution_id,
            result.model_dump_json(),
        )

    async def finalize_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        error_message: str | None = None,
        final_result: str | None = None,
    ) -> None:
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Not a terminal status: {status}")
        await asyncio.to_thread(
            self._finalize, execution_id, status, error_message, final_result
        )

    async def get_execution(self, execution_id: str) -> Execution | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM executions WHERE id = ?", execution_id
        )
        if not row:
            return None
        steps = await asyncio.to_thread(
            self._fetchall,
            "SELECT data FROM step_results WHERE execution_id = ? ORDER BY id",
            execution_id,
        )
        return self._row_to_execution(row, steps)

    async def list_executions(self, sequence_id: str | None = None) -> list[Execution]:
        if sequence_id is None:
            rows = await asyncio.to_thread(
                self._fetchall, "SELECT * FROM executions ORDER BY started_at DESC"
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                "SELECT * FROM executions WHERE sequence_id = ? ORDER BY started_at DESC",
                sequence_id,
            )
        executions: list[Execution] = []
        for row in rows:
            steps = await asyncio.to_thread(
                self._fetchall,
                "SELECT data FROM step_results WHERE execution_id = ? ORDER BY id",
                row["id"],
            )
            executions.append(self._row_to_execution(row, steps))
        return executions
