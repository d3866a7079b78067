"""Schedule models and next-run arithmetic.

``next_run_at`` is always anchored to ``time_of_day`` in the configured
timezone and is always strictly after the moment it was computed.
Monthly schedules clamp to the last day of shorter months (Jan 31 ->
Feb 28); the clamped day becomes the new anchor.
"""

import calendar
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Frequency = Literal["daily", "weekly", "monthly"]

TIME_OF_DAY_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class ScheduleSpec(BaseModel):
    """Operator input for a new schedule."""

    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = True
    frequency: Frequency
    time_of_day: str = Field(alias="timeOfDay", pattern=TIME_OF_DAY_PATTERN)
    retention_days: int = Field(default=30, ge=1, alias="retentionDays")


class Schedule(ScheduleSpec):
    """A stored schedule.  Only the manager mutates the run timestamps."""

    id: str
    last_run_at: datetime | None = Field(default=None, alias="lastRunAt")
    next_run_at: datetime = Field(alias="nextRunAt")


class ScheduleRun(BaseModel):
    """Outcome of one schedule within a ``tick()``."""

    schedule_id: str
    status: Literal["succeeded", "failed", "busy"]
    error: str | None = None
    next_run_at: datetime | None = None


def parse_time_of_day(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def nth_occurrence(anchor: datetime, frequency: Frequency, n: int) -> datetime:
    """The ``n``-th interval after ``anchor`` (wall-clock arithmetic)."""
    if frequency == "daily":
        return anchor + timedelta(days=n)
    if frequency == "weekly":
        return anchor + timedelta(days=7 * n)
    return add_months(anchor, n)


def first_run_at(time_of_day: str, now: datetime, tz: tzinfo = timezone.utc) -> datetime:
    """First occurrence of ``time_of_day`` strictly after ``now`` (UTC result)."""
    local_now = now.astimezone(tz)
    candidate = datetime.combine(local_now.date(), parse_time_of_day(time_of_day), tzinfo=tz)
    if candidate <= local_now:
        candidate = datetime.combine(
            local_now.date() + timedelta(days=1), parse_time_of_day(time_of_day), tzinfo=tz
        )
    return candidate.astimezone(timezone.utc)


def next_run_after(
    schedule: Schedule, now: datetime, tz: tzinfo = timezone.utc
) -> datetime:
    """Advance a schedule that just ran.

    Starts from the due slot (``schedule.next_run_at``) re-anchored to
    ``time_of_day`` and steps whole intervals until the result is after
    ``now``.  Missed slots are collapsed into the single run that just
    happened.
    """
    slot = schedule.next_run_at.astimezone(tz)
    anchor = datetime.combine(slot.date(), parse_time_of_day(schedule.time_of_day), tzinfo=tz)

    n = 1
    candidate = nth_occurrence(anchor, schedule.frequency, n)
    while candidate <= now:
        n += 1
        candidate = nth_occurrence(anchor, schedule.frequency, n)
    return candidate.astimezone(timezone.utc)
