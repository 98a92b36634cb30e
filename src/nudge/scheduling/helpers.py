"""Builders for common recurring schedules.

Each helper returns ``(first_fire_time, rule)`` ready for
``Scheduler.submit``. Wall-clock times are interpreted at a fixed UTC
offset, and the first occurrence is always strictly after ``now``.
"""

from datetime import UTC, datetime, timedelta, timezone

from nudge.scheduling.errors import InvalidRecurrenceRule
from nudge.scheduling.recurrence import add_months
from nudge.scheduling.types import RecurrenceKind, RecurrenceRule

Schedule = tuple[datetime, RecurrenceRule]


def _local_now(now: datetime | None, utc_offset_minutes: int) -> datetime:
    tz = timezone(timedelta(minutes=utc_offset_minutes))
    return (now or datetime.now(UTC)).astimezone(tz)


def _check_time(hour: int, minute: int) -> None:
    if not 0 <= hour <= 23:
        raise InvalidRecurrenceRule(f"hour must be 0-23, got {hour}")
    if not 0 <= minute <= 59:
        raise InvalidRecurrenceRule(f"minute must be 0-59, got {minute}")


def daily_at(
    hour: int,
    minute: int = 0,
    *,
    now: datetime | None = None,
    utc_offset_minutes: int = 0,
    end_time: datetime | None = None,
) -> Schedule:
    """Every day at ``hour:minute``; starts tomorrow if that time has passed today."""
    _check_time(hour, minute)
    local_now = _local_now(now, utc_offset_minutes)
    first = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if first <= local_now:
        first += timedelta(days=1)
    rule = RecurrenceRule(
        kind=RecurrenceKind.DAILY,
        interval=1,
        end_time=end_time,
        utc_offset_minutes=utc_offset_minutes,
    )
    return first.astimezone(UTC), rule


def weekly_on(
    day_of_week: int,
    hour: int,
    minute: int = 0,
    *,
    now: datetime | None = None,
    utc_offset_minutes: int = 0,
    end_time: datetime | None = None,
) -> Schedule:
    """Every week on ``day_of_week`` (0 = Monday) at ``hour:minute``."""
    if not 0 <= day_of_week <= 6:
        raise InvalidRecurrenceRule(f"day_of_week must be 0-6, got {day_of_week}")
    _check_time(hour, minute)
    local_now = _local_now(now, utc_offset_minutes)
    days_until = (day_of_week - local_now.weekday() + 7) % 7
    first = (local_now + timedelta(days=days_until)).replace(
        hour=hour, minute=minute, second=0, microsecond=0
    )
    # Target day is today but the time has passed
    if first <= local_now:
        first += timedelta(days=7)
    rule = RecurrenceRule(
        kind=RecurrenceKind.WEEKLY,
        interval=1,
        end_time=end_time,
        anchor_day_of_week=day_of_week,
        utc_offset_minutes=utc_offset_minutes,
    )
    return first.astimezone(UTC), rule


def monthly_on(
    day_of_month: int,
    hour: int,
    minute: int = 0,
    *,
    now: datetime | None = None,
    utc_offset_minutes: int = 0,
    end_time: datetime | None = None,
) -> Schedule:
    """Every month on ``day_of_month`` at ``hour:minute``, clamped in short months."""
    if not 1 <= day_of_month <= 31:
        raise InvalidRecurrenceRule(f"day_of_month must be 1-31, got {day_of_month}")
    _check_time(hour, minute)
    local_now = _local_now(now, utc_offset_minutes)
    first = add_months(local_now, 0, day_of_month).replace(
        hour=hour, minute=minute, second=0, microsecond=0
    )
    if first <= local_now:
        first = add_months(first, 1, day_of_month)
    rule = RecurrenceRule(
        kind=RecurrenceKind.MONTHLY,
        interval=1,
        end_time=end_time,
        anchor_day_of_month=day_of_month,
        utc_offset_minutes=utc_offset_minutes,
    )
    return first.astimezone(UTC), rule
