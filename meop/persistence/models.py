"""Data models for persisted execution state."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

StepStatus = Literal["running", "completed", "failed"]
ExecutionStatus = Literal["running", "completed", "failed"]

TERMINAL_STATUSES = ("completed", "failed")


class StepResult(BaseModel):
    """Outcome of one executed step."""

    step_id: str
    step_kind: str
    step_label: str = ""
    status: StepStatus = "running"
    result: Optional[str] = None
    error: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    # Outbound trace, recorded by relay dispatchers
    request_url: Optional[str] = None
    request_payload: Optional[dict[str, Any]] = None
    response_body: Optional[Any] = None


class Execution(BaseModel):
    """One run of a sequence."""

    id: str
    sequence_id: str
    status: ExecutionStatus = "running"
    step_results: list[StepResult] = Field(default_factory=list)
    input_data: dict[str, Any] = Field(default_factory=dict)
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None
    final_result: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.status != "running"
