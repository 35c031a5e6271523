"""Tests for queued runs and the background worker."""

import pytest

from meop.config import MeopConfig
from meop.constants import RUNS_TOPIC
from meop.contracts import RunRequest, Sequence
from meop.dispatchers import ConditionDispatcher, DelayDispatcher
from meop.persistence import InMemoryExecutionRepository
from meop.runner import SequenceRunner
from meop.transports.inmemory import InMemoryTransport
from meop.worker import RunWorker, enqueue_run


@pytest.mark.asyncio
async def test_enqueue_and_process_run():
    repo = InMemoryExecutionRepository()
    slept = []

    async def fake_sleep(seconds):
        slept.append(seconds)

    seq = Sequence(name="queued", steps=[{"kind": "delay", "config": {"delay_minutes": 2}}])
    await repo.save_sequence(seq)

    transport = InMemoryTransport()
    execution_id = await enqueue_run(transport, seq.id, {"query": "X"})
    assert await repo.get_execution(execution_id) is None

    runner = SequenceRunner(
        repository=repo,
        dispatchers={"delay": DelayDispatcher(sleep=fake_sleep)},
        config=MeopConfig(),
    )
    worker = RunWorker(transport, runner)
    await worker.start(lifespan=0.3)

    assert worker.processed == 1
    execution = await repo.get_execution(execution_id)
    assert execution.status == "completed"
    assert execution.input_data == {"query": "X"}
    # Background runs really wait
    assert slept == [120]


@pytest.mark.asyncio
async def test_worker_skips_unknown_sequence():
    repo = InMemoryExecutionRepository()
    runner = SequenceRunner(repository=repo, dispatchers={}, config=MeopConfig())
    worker = RunWorker(InMemoryTransport(), runner, topic=RUNS_TOPIC)

    result = await worker.handle(RunRequest(sequence_id="missing"))

    assert result is None
    assert worker.processed == 0
    assert await repo.list_executions() == []


@pytest.mark.asyncio
async def test_worker_counts_processed_runs():
    repo = InMemoryExecutionRepository()
    seq = Sequence(name="counted", steps=[{"kind": "condition"}])
    await repo.save_sequence(seq)
    runner = SequenceRunner(
        repository=repo, dispatchers={"condition": ConditionDispatcher()}, config=MeopConfig()
    )
    worker = RunWorker(InMemoryTransport(), runner)

    for _ in range(3):
        await worker.handle(RunRequest(sequence_id=seq.id))
    await worker.handle(RunRequest(sequence_id="missing"))

    assert worker.processed == 3
    assert len(await repo.list_executions(seq.id)) == 3
