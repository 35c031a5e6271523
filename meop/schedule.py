"""Schedule evaluation for sequences with a schedule trigger."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from .contracts import ScheduleConfig
from .errors import MeopError
from .persistence import ExecutionRepository
from .runner import SequenceRunner

logger = logging.getLogger(__name__)

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def should_run_now(
    schedule: ScheduleConfig,
    now: Optional[datetime] = None,
    last_run_at: Optional[datetime] = None,
) -> bool:
    """Return ``True`` when ``schedule`` is due in the minute containing ``now``.

    ``now`` and ``last_run_at`` are compared in the schedule's timezone; naive
    values are taken to be UTC.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(ZoneInfo(schedule.timezone))

    if not schedule.time:
        return False
    try:
        hour, minute = (int(part) for part in schedule.time.split(":")[:2])
    except ValueError:
        logger.warning(f"Unparseable schedule time: {schedule.time!r}")
        return False
    if (local.hour, local.minute) != (hour, minute):
        return False

    frequency = schedule.frequency.lower()
    if frequency == "daily":
        return True
    if frequency == "weekly":
        return WEEKDAYS[local.weekday()] in {d.lower() for d in schedule.days}
    if frequency == "monthly":
        return schedule.day_of_month == local.day
    if frequency == "one_time":
        return schedule.custom_date == local.date()
    if frequency == "every_x_days":
        if not schedule.every_x_days or last_run_at is None:
            return last_run_at is None
        if last_run_at.tzinfo is None:
            last_run_at = last_run_at.replace(tzinfo=timezone.utc)
        return (now - last_run_at).days >= schedule.every_x_days
    return False


class SequenceScheduler:
    """Runs every active scheduled sequence that is due."""

    def __init__(self, repository: ExecutionRepository, runner: SequenceRunner) -> None:
        self._repository = repository
        self._runner = runner

    async def tick(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Check all scheduled sequences once and run the due ones.

        Runs execute with ``may_block=True``: the scheduler is a background
        context.
        """
        now = now or datetime.now(timezone.utc)
        sequences = await self._repository.list_sequences(active_only=True)
        scheduled = [seq for seq in sequences if seq.schedule is not None]
        logger.info(f"Scheduler tick at {now.isoformat()}: {len(scheduled)} scheduled sequence(s)")

        triggered: List[str] = []
        errors: List[str] = []
        for seq in scheduled:
            if not should_run_now(seq.schedule, now, seq.last_run_at):
                logger.debug(f"{seq.name} not due yet")
                continue

            logger.info(f"{seq.name} is due, starting run")
            try:
                execution = await self._runner.execute(
                    seq,
                    {"triggered_by": "scheduler", "scheduled_at": now.isoformat()},
                    may_block=True,
                )
            except MeopError as e:
                logger.error(f"Failed to run {seq.name}: {e}")
                errors.append(f"{seq.name}: {e}")
                continue

            triggered.append(seq.name)
            if execution.status == "failed":
                errors.append(f"{seq.name}: {execution.error_message}")

        return {
            "timestamp": now.isoformat(),
            "checked": len(scheduled),
            "triggered": triggered,
            "errors": errors,
        }
