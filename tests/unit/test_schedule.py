"""Tests for schedule evaluation and the scheduler tick."""

from datetime import datetime, timedelta, timezone

import pytest

from meop.config import MeopConfig
from meop.contracts import ScheduleConfig, Sequence
from meop.dispatchers import BaseDispatcher
from meop.errors import DispatchError
from meop.persistence import InMemoryExecutionRepository
from meop.runner import SequenceRunner
from meop.schedule import SequenceScheduler, should_run_now

# Monday 19 October 2026, 13:30 UTC (09:30 in New York)
MONDAY = datetime(2026, 10, 19, 13, 30, 20, tzinfo=timezone.utc)


def _schedule(**fields) -> ScheduleConfig:
    fields.setdefault("timezone", "UTC")
    return ScheduleConfig(**fields)


def test_daily_matches_minute_only():
    schedule = _schedule(frequency="daily", time="13:30")
    assert should_run_now(schedule, MONDAY)
    assert not should_run_now(schedule, MONDAY + timedelta(minutes=1))


def test_time_is_compared_in_schedule_timezone():
    schedule = ScheduleConfig(frequency="daily", time="09:30", timezone="America/New_York")
    assert should_run_now(schedule, MONDAY)
    assert not should_run_now(_schedule(frequency="daily", time="09:30"), MONDAY)


def test_missing_or_bad_time_never_runs():
    assert not should_run_now(_schedule(frequency="daily"), MONDAY)
    assert not should_run_now(_schedule(frequency="daily", time="noon"), MONDAY)


def test_weekly_matches_day_names_case_insensitively():
    assert should_run_now(_schedule(frequency="weekly", time="13:30", days=["Monday"]), MONDAY)
    assert not should_run_now(
        _schedule(frequency="weekly", time="13:30", days=["tuesday", "friday"]), MONDAY
    )


def test_monthly_and_one_time():
    assert should_run_now(_schedule(frequency="monthly", time="13:30", day_of_month=19), MONDAY)
    assert not should_run_now(_schedule(frequency="monthly", time="13:30", day_of_month=1), MONDAY)
    assert should_run_now(
        _schedule(frequency="one_time", time="13:30", custom_date="2026-10-19"), MONDAY
    )
    assert not should_run_now(
        _schedule(frequency="one_time", time="13:30", custom_date="2026-10-20"), MONDAY
    )


def test_every_x_days_counts_from_last_run():
    schedule = _schedule(frequency="every_x_days", time="13:30", every_x_days=3)
    assert should_run_now(schedule, MONDAY, last_run_at=None)
    assert should_run_now(schedule, MONDAY, last_run_at=MONDAY - timedelta(days=3))
    assert not should_run_now(schedule, MONDAY, last_run_at=MONDAY - timedelta(days=2))


def test_unknown_frequency_never_runs():
    assert not should_run_now(_schedule(frequency="hourly", time="13:30"), MONDAY)


class Recording(BaseDispatcher):
    kind = "send_slack"

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.inputs = []

    async def _execute(self, step, context, trace):
        self.inputs.append(context)
        if step.config.message in self.fail_for:
            raise DispatchError("Slack send failed: 500 - down")
        return "sent"


@pytest.mark.asyncio
async def test_tick_runs_only_due_active_sequences():
    repo = InMemoryExecutionRepository()
    slack = Recording(fail_for={"broken"})
    runner = SequenceRunner(repository=repo, dispatchers={"send_slack": slack}, config=MeopConfig())

    due = Sequence(
        name="due",
        steps=[{"kind": "send_slack", "config": {"message": "hi"}}],
        schedule=_schedule(frequency="daily", time="13:30"),
    )
    broken = Sequence(
        name="broken",
        steps=[{"kind": "send_slack", "config": {"message": "broken"}}],
        schedule=_schedule(frequency="daily", time="13:30"),
    )
    later = Sequence(
        name="later",
        steps=[{"kind": "send_slack", "config": {"message": "later"}}],
        schedule=_schedule(frequency="daily", time="18:00"),
    )
    paused = Sequence(
        name="paused",
        is_active=False,
        steps=[{"kind": "send_slack", "config": {"message": "paused"}}],
        schedule=_schedule(frequency="daily", time="13:30"),
    )
    manual = Sequence(name="manual", steps=[{"kind": "send_slack", "config": {"message": "m"}}])
    for seq in (due, broken, later, paused, manual):
        await repo.save_sequence(seq)

    summary = await SequenceScheduler(repo, runner).tick(MONDAY)

    assert summary["checked"] == 3
    assert sorted(summary["triggered"]) == ["broken", "due"]
    assert summary["errors"] == [
        "broken: Step 1 (send_slack) failed: Slack send failed: 500 - down"
    ]
    assert all(c.may_block for c in slack.inputs)
    assert slack.inputs[0].input_data["triggered_by"] == "scheduler"

    (execution,) = await repo.list_executions(due.id)
    assert execution.status == "completed"
    assert (await repo.get_sequence(due.id)).last_run_at is not None
    assert (await repo.get_sequence(broken.id)).last_run_at is None
