"""Tests for the sequence runner using recording dispatchers."""

import asyncio

import pytest

from meop.config import MeopConfig
from meop.contracts import Sequence
from meop.dispatchers import BaseDispatcher, DelayDispatcher
from meop.errors import DispatchError, SequenceNotFoundError, StepConfigurationError
from meop.persistence import InMemoryExecutionRepository
from meop.runner import SequenceRunner


class RecordingDispatcher(BaseDispatcher):
    """Returns canned results and remembers the steps it was given."""

    def __init__(self, kind, results=None, error=None, on_call=None):
        self.kind = kind
        self.results = list(results or [f"{kind} done"])
        self.error = error
        self.on_call = on_call
        self.calls = []

    async def _execute(self, step, context, trace):
        self.calls.append(step)
        if self.on_call is not None:
            await self.on_call(step, context)
        if isinstance(self.error, Exception):
            raise self.error
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


def _runner(repo, *dispatchers, **kwargs):
    registry = {d.kind: d for d in dispatchers}
    return SequenceRunner(repository=repo, dispatchers=registry, config=MeopConfig(), **kwargs)


async def _store(repo, steps, **fields):
    seq = Sequence(name=fields.pop("name", "test"), steps=steps, **fields)
    await repo.save_sequence(seq)
    return seq


@pytest.mark.asyncio
async def test_research_result_flows_into_slack_message():
    repo = InMemoryExecutionRepository()
    research = RecordingDispatcher("research", results=["R1"])
    slack = RecordingDispatcher("send_slack")
    seq = await _store(
        repo,
        [
            {"kind": "research", "config": {"query": "X"}},
            {"kind": "send_slack", "config": {"message": "{{result}}"}},
        ],
    )

    execution = await _runner(repo, research, slack).run(seq.id)

    assert execution.status == "completed"
    assert len(execution.step_results) == 2
    assert research.calls[0].config.query == "X"
    assert slack.calls[0].config.message == "R1"
    assert slack.calls[0].config.channel is None
    assert execution.final_result == "R1"
    assert execution.completed_at is not None
    assert execution.duration_ms is not None


@pytest.mark.asyncio
async def test_configuration_error_fails_execution():
    repo = InMemoryExecutionRepository()
    text = RecordingDispatcher(
        "send_text", error=StepConfigurationError("Phone number is required for text step")
    )
    seq = await _store(repo, [{"kind": "send_text", "config": {"message": "hi"}}])

    execution = await _runner(repo, text).run(seq.id)

    assert execution.status == "failed"
    assert len(execution.step_results) == 1
    assert execution.step_results[0].status == "failed"
    assert execution.step_results[0].error == "Phone number is required for text step"
    assert "Phone number is required" in execution.error_message


@pytest.mark.asyncio
async def test_trigger_step_completes_without_dispatch():
    repo = InMemoryExecutionRepository()
    research = RecordingDispatcher("research", results=["Y result"])
    email = RecordingDispatcher("send_email")
    seq = await _store(
        repo,
        [
            {"kind": "trigger_manual", "label": "Manual"},
            {"kind": "research", "config": {"query": "Y"}},
            {
                "kind": "send_email",
                "config": {"to": "a@b.com", "subject": "S", "message": "{{result}}"},
            },
        ],
    )

    execution = await _runner(repo, research, email).run(seq.id)

    assert execution.status == "completed"
    trigger_result = execution.step_results[0]
    assert trigger_result.status == "completed"
    assert trigger_result.result == "Trigger: Manual"
    assert email.calls[0].config.message == "Y result"


@pytest.mark.asyncio
async def test_concurrent_runs_do_not_share_last_result():
    repo = InMemoryExecutionRepository()

    async def yield_control(step, context):
        await asyncio.sleep(0)

    research = RecordingDispatcher("research", results=["first", "second"], on_call=yield_control)
    slack = RecordingDispatcher("send_slack", on_call=yield_control)
    seq = await _store(
        repo,
        [
            {"kind": "research"},
            {"kind": "send_slack", "config": {"message": "{{result}}"}},
        ],
    )
    runner = _runner(repo, research, slack)

    first, second = await asyncio.gather(runner.run(seq.id), runner.run(seq.id))

    assert first.id != second.id
    assert {first.final_result, second.final_result} == {"first", "second"}
    for execution in (first, second):
        assert [r.step_kind for r in execution.step_results] == ["research", "send_slack"]
    assert sorted(c.config.message for c in slack.calls) == ["first", "second"]


@pytest.mark.asyncio
async def test_stops_at_first_failure():
    repo = InMemoryExecutionRepository()
    research = RecordingDispatcher("research", error=DispatchError("Research failed: 502 - bad gateway"))
    slack = RecordingDispatcher("send_slack")
    seq = await _store(
        repo,
        [
            {"kind": "research", "label": "Lookup"},
            {"kind": "send_slack", "config": {"message": "m"}},
        ],
    )

    execution = await _runner(repo, research, slack).run(seq.id)

    assert execution.status == "failed"
    assert execution.error_message == "Step 1 (Lookup) failed: Research failed: 502 - bad gateway"
    assert len(execution.step_results) == 1
    assert slack.calls == []


@pytest.mark.asyncio
async def test_last_research_result_wins():
    repo = InMemoryExecutionRepository()
    research = RecordingDispatcher("research", results=["A", "B"])
    slack = RecordingDispatcher("send_slack")
    seq = await _store(
        repo,
        [
            {"kind": "research"},
            {"kind": "send_slack", "config": {"message": "1: {{result}}"}},
            {"kind": "research"},
            {"kind": "send_slack", "config": {"message": "2: {{result}}"}},
        ],
    )

    execution = await _runner(repo, research, slack).run(seq.id)

    assert [c.config.message for c in slack.calls] == ["1: A", "2: B"]
    assert execution.final_result == "B"


@pytest.mark.asyncio
async def test_placeholder_kept_without_prior_research():
    repo = InMemoryExecutionRepository()
    slack = RecordingDispatcher("send_slack")
    seq = await _store(repo, [{"kind": "send_slack", "config": {"message": "News: {{result}}"}}])

    execution = await _runner(repo, slack).run(seq.id)

    assert execution.status == "completed"
    assert slack.calls[0].config.message == "News: {{result}}"
    assert execution.final_result is None


@pytest.mark.asyncio
async def test_zero_step_sequence_fails():
    repo = InMemoryExecutionRepository()
    seq = await _store(repo, [])

    execution = await _runner(repo).run(seq.id)

    assert execution.status == "failed"
    assert execution.error_message == "Sequence has no steps"
    assert execution.step_results == []


@pytest.mark.asyncio
async def test_unknown_sequence_raises_without_execution():
    repo = InMemoryExecutionRepository()

    with pytest.raises(SequenceNotFoundError):
        await _runner(repo).run("missing")

    assert await repo.list_executions() == []


@pytest.mark.asyncio
async def test_unknown_kind_is_recorded_and_skipped():
    repo = InMemoryExecutionRepository()
    slack = RecordingDispatcher("send_slack")
    seq = await _store(
        repo,
        [{"kind": "send_fax"}, {"kind": "send_slack", "config": {"message": "m"}}],
    )

    execution = await _runner(repo, slack).run(seq.id)

    assert execution.status == "completed"
    assert execution.step_results[0].status == "completed"
    assert execution.step_results[0].result == "Unknown step kind: send_fax"
    assert len(slack.calls) == 1


@pytest.mark.asyncio
async def test_delay_respects_may_block():
    repo = InMemoryExecutionRepository()
    slept = []

    async def fake_sleep(seconds):
        slept.append(seconds)

    seq = await _store(repo, [{"kind": "delay", "config": {"delay_minutes": 1}}])
    runner = _runner(repo, DelayDispatcher(sleep=fake_sleep))

    on_demand = await runner.run(seq.id)
    background = await runner.run(seq.id, may_block=True)

    assert on_demand.step_results[0].result == "Delay: 1 minute(s) (skipped in manual execution)"
    assert background.step_results[0].result == "Waited 1 minute(s)"
    assert slept == [60]


@pytest.mark.asyncio
async def test_cancellation_stops_before_next_step():
    repo = InMemoryExecutionRepository()
    cancel = asyncio.Event()

    async def cancel_after(step, context):
        cancel.set()

    research = RecordingDispatcher("research", on_call=cancel_after)
    slack = RecordingDispatcher("send_slack")
    seq = await _store(
        repo,
        [
            {"id": "s1", "kind": "research"},
            {"id": "s2", "kind": "send_slack", "config": {"message": "m"}},
        ],
    )

    execution = await _runner(repo, research, slack).run(seq.id, cancel_event=cancel)

    assert execution.status == "failed"
    assert execution.error_message == "Execution cancelled before step s2"
    assert len(execution.step_results) == 1
    assert slack.calls == []


@pytest.mark.asyncio
async def test_unexpected_error_marks_execution_failed_and_propagates():
    class ExplodingDispatcher(BaseDispatcher):
        kind = "research"

        async def dispatch(self, step, context):
            raise RuntimeError("boom")

        async def _execute(self, step, context, trace):
            raise NotImplementedError

    repo = InMemoryExecutionRepository()
    seq = await _store(repo, [{"kind": "research"}])

    with pytest.raises(RuntimeError):
        await _runner(repo, ExplodingDispatcher()).run(seq.id)

    (execution,) = await repo.list_executions(seq.id)
    assert execution.status == "failed"
    assert execution.error_message == "RuntimeError: boom"


@pytest.mark.asyncio
async def test_steps_run_in_order_field_order():
    repo = InMemoryExecutionRepository()
    slack = RecordingDispatcher("send_slack")
    seq = await _store(
        repo,
        [
            {"kind": "send_slack", "order": 2, "config": {"message": "second"}},
            {"kind": "send_slack", "order": 1, "config": {"message": "first"}},
        ],
    )

    await _runner(repo, slack).run(seq.id)

    assert [c.config.message for c in slack.calls] == ["first", "second"]


@pytest.mark.asyncio
async def test_successful_run_marks_sequence_last_run():
    repo = InMemoryExecutionRepository()
    seq = await _store(repo, [{"kind": "send_slack", "config": {"message": "m"}}])

    await _runner(repo, RecordingDispatcher("send_slack")).run(seq.id, execution_id="exec-1")

    stored = await repo.get_sequence(seq.id)
    assert stored.last_run_at is not None
    assert (await repo.get_execution("exec-1")).status == "completed"
