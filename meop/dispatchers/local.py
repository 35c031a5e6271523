"""Dispatchers that act without an outbound call."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from ..constants import DEFAULT_DELAY_MINUTES
from ..contracts import CONDITION, DELAY, TRANSFORM, ConditionStep, DelayStep, TransformStep
from .base import BaseDispatcher, DispatchContext, DispatchResult

logger = logging.getLogger(__name__)


class DelayDispatcher(BaseDispatcher):
    """Waits between steps when the run context allows blocking.

    On-demand runs (``may_block=False``) must return promptly to their caller,
    so the wait is recorded but skipped. Background runs really suspend.
    """

    kind = DELAY

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
        self._sleep = sleep

    async def _execute(
        self, step: DelayStep, context: DispatchContext, trace: DispatchResult
    ) -> str:
        minutes = step.config.delay_minutes or DEFAULT_DELAY_MINUTES
        if not context.may_block:
            logger.info(f"Delay: {minutes:g} minute(s) skipped (non-blocking run)")
            return f"Delay: {minutes:g} minute(s) (skipped in manual execution)"

        logger.info(f"Delay: waiting {minutes:g} minute(s)")
        await self._sleep(minutes * 60)
        return f"Waited {minutes:g} minute(s)"


class ConditionDispatcher(BaseDispatcher):
    # Branching is not evaluated; every condition passes.
    kind = CONDITION

    async def _execute(
        self, step: ConditionStep, context: DispatchContext, trace: DispatchResult
    ) -> str:
        logger.info(f"Condition: {step.config.condition!r} - passed")
        return f"Condition evaluated: {step.config.condition}"


class TransformDispatcher(BaseDispatcher):
    kind = TRANSFORM

    async def _execute(
        self, step: TransformStep, context: DispatchContext, trace: DispatchResult
    ) -> str:
        logger.info(f"Transform: {step.config.transform!r}")
        return context.last_result or "No data to transform"
