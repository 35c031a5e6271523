"""Background execution of queued sequence runs."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .constants import RUNS_TOPIC
from .contracts import RunRequest
from .errors import SequenceNotFoundError
from .persistence import Execution
from .runner import SequenceRunner
from .transports import BaseTransport

logger = logging.getLogger(__name__)


async def enqueue_run(
    transport: BaseTransport,
    sequence_id: str,
    input_data: Optional[Dict[str, Any]] = None,
    topic: str = RUNS_TOPIC,
) -> str:
    """Queue a sequence run for a background worker.

    Args:
        transport: Channel used to publish the run request.
        sequence_id: Sequence to run.
        input_data: Optional caller context for the run.
        topic: Queue the workers listen on.

    Returns:
        The execution id the worker will record the run under.
    """
    request = RunRequest(sequence_id=sequence_id, input_data=input_data or {})
    await transport.publish(topic, request)
    logger.info(
        f"Queued run of sequence {sequence_id} as execution {request.execution_id}"
    )
    return request.execution_id


class RunWorker:
    """Executes queued run requests. Delay steps really wait here."""

    def __init__(
        self,
        transport: BaseTransport,
        runner: SequenceRunner,
        topic: str = RUNS_TOPIC,
    ) -> None:
        self._transport = transport
        self._runner = runner
        self._topic = topic
        self.processed = 0

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Start listening for run requests on the runs topic."""
        async for raw_message, request in self._transport.subscribe(
            self._topic, lifespan=lifespan
        ):
            await self.handle(request)
            await self._transport.ack(raw_message)

    async def handle(self, request: RunRequest) -> Optional[Execution]:
        """Run one request; unknown sequences are logged and skipped."""
        logger.info(
            f"Received run request {request.request_id} for sequence {request.sequence_id}"
        )
        try:
            execution = await self._runner.run(
                request.sequence_id,
                request.input_data,
                may_block=True,
                execution_id=request.execution_id,
            )
        except SequenceNotFoundError as e:
            logger.error(f"Skipping run request {request.request_id}: {e}")
            return None

        self.processed += 1
        logger.info(f"Execution {execution.id} finished with status {execution.status}")
        return execution
