"""Recurrence computation.

Pure functions: no clock reads, no I/O. ``next_fire_time`` is always called
with the moment a job actually fired, so a job that was suspended for a long
time fires once and then resumes its cadence instead of replaying every
missed occurrence.
"""

import calendar
from datetime import UTC, datetime, timedelta, timezone

from nudge.scheduling.errors import InvalidRecurrenceRule
from nudge.scheduling.types import RecurrenceKind, RecurrenceRule

# Fixed UTC offsets are limited to what real zones use.
MAX_UTC_OFFSET_MINUTES = 14 * 60


def validate_rule(rule: RecurrenceRule) -> None:
    """Reject malformed rules before anything is scheduled.

    Raises:
        InvalidRecurrenceRule: If the rule cannot produce a valid schedule.
    """
    if not isinstance(rule.kind, RecurrenceKind):
        raise InvalidRecurrenceRule(f"Unknown recurrence kind: {rule.kind!r}")

    # bool is an int subclass; reject it explicitly
    if isinstance(rule.interval, bool) or not isinstance(rule.interval, int):
        raise InvalidRecurrenceRule("Recurrence interval must be an integer")
    if rule.interval <= 0:
        raise InvalidRecurrenceRule(
            f"Recurrence interval must be positive, got {rule.interval}"
        )

    if rule.anchor_day_of_week is not None:
        if rule.kind != RecurrenceKind.WEEKLY:
            raise InvalidRecurrenceRule(
                "anchor_day_of_week only applies to weekly rules"
            )
        if not 0 <= rule.anchor_day_of_week <= 6:
            raise InvalidRecurrenceRule(
                f"anchor_day_of_week must be 0-6, got {rule.anchor_day_of_week}"
            )

    if rule.anchor_day_of_month is not None:
        if rule.kind != RecurrenceKind.MONTHLY:
            raise InvalidRecurrenceRule(
                "anchor_day_of_month only applies to monthly rules"
            )
        if not 1 <= rule.anchor_day_of_month <= 31:
            raise InvalidRecurrenceRule(
                f"anchor_day_of_month must be 1-31, got {rule.anchor_day_of_month}"
            )

    if abs(rule.utc_offset_minutes) > MAX_UTC_OFFSET_MINUTES:
        raise InvalidRecurrenceRule(
            f"utc_offset_minutes out of range: {rule.utc_offset_minutes}"
        )

    if rule.end_time is not None and rule.end_time.tzinfo is None:
        raise InvalidRecurrenceRule("end_time must be timezone-aware")


def add_months(value: datetime, months: int, day: int | None = None) -> datetime:
    """Advance ``value`` by whole months, clamping the day to the month's end.

    ``day`` overrides the day of month of the result (still clamped), so
    January 31 + 1 month is February 28 (29 in leap years), never March 3.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    target_day = min(day if day is not None else value.day, last_day)
    return value.replace(year=year, month=month, day=target_day)


def next_fire_time(from_time: datetime, rule: RecurrenceRule) -> datetime:
    """Compute the occurrence that follows ``from_time`` under ``rule``.

    Args:
        from_time: Timezone-aware reference time (normally "now" at firing).
        rule: The recurrence rule.

    Returns:
        The next fire time in UTC, strictly after ``from_time``.

    Raises:
        InvalidRecurrenceRule: If the rule is malformed or does not advance.
    """
    if from_time.tzinfo is None:
        raise ValueError("from_time must be timezone-aware")
    validate_rule(rule)

    local_tz = timezone(timedelta(minutes=rule.utc_offset_minutes))
    local = from_time.astimezone(local_tz)

    if rule.kind == RecurrenceKind.DAILY:
        candidate = local + timedelta(days=rule.interval)

    elif rule.kind == RecurrenceKind.WEEKLY:
        candidate = local + timedelta(days=7 * rule.interval)
        if rule.anchor_day_of_week is not None:
            days_ahead = (rule.anchor_day_of_week - candidate.weekday() + 7) % 7
            candidate = candidate + timedelta(days=days_ahead)

    elif rule.kind == RecurrenceKind.MONTHLY:
        candidate = add_months(local, rule.interval, rule.anchor_day_of_month)

    else:
        candidate = local + timedelta(milliseconds=rule.interval)

    result = candidate.astimezone(UTC)
    if result <= from_time:
        raise InvalidRecurrenceRule(
            f"Rule {rule.kind.value} with interval {rule.interval} "
            f"does not advance past {from_time.isoformat()}"
        )
    return result
