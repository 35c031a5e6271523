"""Sequence execution engine for meop."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .config import MeopConfig, load_config
from .contracts import RESEARCH, Sequence, StepBase, is_trigger_kind
from .dispatchers import DispatchContext, DispatcherRegistry, build_default_dispatchers
from .errors import ExecutionNotFoundError, SequenceNotFoundError
from .normalize import ORDERING_STRATEGIES, OrderingStrategy
from .persistence import Execution, ExecutionRepository, StepResult, get_repository
from .templating import resolve_step

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SequenceRunner:
    """Executes a sequence's steps one after another.

    Each run gets its own execution record and its own dispatch context, so
    concurrent runs of the same sequence share nothing but the read-only
    definition. The first failing step ends the run; side effects of earlier
    steps are not undone.
    """

    def __init__(
        self,
        repository: ExecutionRepository | None = None,
        dispatchers: Optional[DispatcherRegistry] = None,
        config: Optional[MeopConfig] = None,
        ordering: Optional[OrderingStrategy] = None,
        may_block: bool = False,
    ) -> None:
        self._config = config or load_config()
        self._repository = repository or get_repository()
        self._dispatchers = (
            dispatchers
            if dispatchers is not None
            else build_default_dispatchers(self._config)
        )
        self._ordering = ordering
        self._may_block = may_block

    @property
    def repository(self) -> ExecutionRepository:
        return self._repository

    def order_steps(self, sequence: Sequence) -> List[StepBase]:
        """Return the sequence's steps in execution order."""
        strategy = self._ordering or ORDERING_STRATEGIES[sequence.ordering]
        return strategy(sequence.steps)

    async def run(
        self,
        sequence_id: str,
        input_data: Optional[Dict[str, Any]] = None,
        *,
        may_block: Optional[bool] = None,
        execution_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Execution:
        """Load a stored sequence and execute it.

        Args:
            sequence_id: Id of the sequence to run.
            input_data: Caller context; ``query`` seeds research steps that
                have none of their own.
            may_block: Whether delay steps really wait. Defaults to the
                runner's setting.
            execution_id: Optional pre-generated id for the execution record.
            cancel_event: Checked before each step; once set the run stops.

        Returns:
            The finalized execution, completed or failed.

        Raises:
            SequenceNotFoundError: No sequence is stored under ``sequence_id``.
        """
        sequence = await self._repository.get_sequence(sequence_id)
        if sequence is None:
            raise SequenceNotFoundError(f"Sequence {sequence_id} not found")
        return await self.execute(
            sequence,
            input_data,
            may_block=may_block,
            execution_id=execution_id,
            cancel_event=cancel_event,
        )

    async def execute(
        self,
        sequence: Sequence,
        input_data: Optional[Dict[str, Any]] = None,
        *,
        may_block: Optional[bool] = None,
        execution_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Execution:
        """Execute an already loaded sequence. See ``run``."""
        input_data = dict(input_data or {})
        steps = self.order_steps(sequence)
        execution_id = await self._repository.create_execution(
            sequence.id, input_data, execution_id
        )
        logger.info(
            f"Starting sequence {sequence.name} ({execution_id}) with {len(steps)} step(s)"
        )

        if not steps:
            logger.error(f"Sequence {sequence.name} has no steps")
            await self._repository.finalize_execution(
                execution_id, "failed", error_message="Sequence has no steps"
            )
            return await self._load(execution_id)

        context = DispatchContext(
            execution_id=execution_id,
            input_data=input_data,
            may_block=self._may_block if may_block is None else may_block,
        )
        try:
            for idx, step in enumerate(steps, start=1):
                if cancel_event is not None and cancel_event.is_set():
                    logger.warning(f"Execution {execution_id} cancelled before step {idx}")
                    await self._repository.finalize_execution(
                        execution_id,
                        "failed",
                        error_message=f"Execution cancelled before step {step.id}",
                    )
                    return await self._load(execution_id)

                logger.info(f"Step {idx}/{len(steps)}: {step.kind} - {step.label}")
                result = await self._run_step(step, context)
                await self._repository.append_step_result(execution_id, result)

                if result.status == "failed":
                    logger.error(f"Step {idx} failed: {result.error}")
                    await self._repository.finalize_execution(
                        execution_id,
                        "failed",
                        error_message=(
                            f"Step {idx} ({step.label or step.kind}) failed: {result.error}"
                        ),
                    )
                    return await self._load(execution_id)

                if step.kind == RESEARCH:
                    context.last_result = result.result
                logger.info(f"Step {idx} completed in {result.duration_ms}ms")
        except Exception as e:
            logger.error(
                f"Execution {execution_id} aborted: {e}. Marking it failed."
            )
            await self._repository.finalize_execution(
                execution_id, "failed", error_message=f"{type(e).__name__}: {e}"
            )
            raise

        await self._repository.finalize_execution(
            execution_id, "completed", final_result=context.last_result
        )
        await self._repository.mark_sequence_run(sequence.id, _utcnow())
        logger.info(f"Sequence {sequence.name} completed ({execution_id})")
        return await self._load(execution_id)

    async def _run_step(self, step: StepBase, context: DispatchContext) -> StepResult:
        started = time.monotonic()
        result = StepResult(
            step_id=step.id,
            step_kind=step.kind,
            step_label=step.label,
            status="running",
            started_at=_utcnow(),
        )

        if is_trigger_kind(step.kind):
            result.status = "completed"
            result.result = f"Trigger: {step.label or step.kind}"
        elif step.kind not in self._dispatchers:
            logger.warning(f"Unknown step kind: {step.kind!r} (step {step.id})")
            result.status = "completed"
            result.result = f"Unknown step kind: {step.kind}"
        else:
            resolved = resolve_step(step, context.last_result)
            outcome = await self._dispatchers[step.kind].dispatch(resolved, context)
            result.request_url = outcome.request_url
            result.request_payload = outcome.request_payload
            result.response_body = outcome.response_body
            if outcome.ok:
                result.status = "completed"
                result.result = outcome.result
            else:
                result.status = "failed"
                result.error = outcome.error

        result.completed_at = _utcnow()
        result.duration_ms = int((time.monotonic() - started) * 1000)
        return result

    async def _load(self, execution_id: str) -> Execution:
        execution = await self._repository.get_execution(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(f"Execution {execution_id} not found")
        return execution
