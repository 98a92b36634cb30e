"""Scheduling subsystem: timed and recurring notification delivery.

Public API:
- Scheduler: Owns jobs and timers, fires them, records history
- next_fire_time / validate_rule: Pure recurrence computation
- daily_at / weekly_on / monthly_on: Builders for common schedules
- SystemClock / ManualClock: Real and virtual time

Types:
- Job, NotificationPayload, RecurrenceRule, HistoryEntry, DispatchResult
"""

from nudge.scheduling.clock import Clock, ManualClock, SystemClock
from nudge.scheduling.errors import (
    CannotResumeCompletedJob,
    DispatchFailure,
    InvalidRecurrenceRule,
    PastScheduleTime,
    SchedulingError,
    StoreFailure,
)
from nudge.scheduling.helpers import daily_at, monthly_on, weekly_on
from nudge.scheduling.recurrence import next_fire_time, validate_rule
from nudge.scheduling.scheduler import Scheduler
from nudge.scheduling.types import (
    DispatchResult,
    HistoryEntry,
    Job,
    NotificationPayload,
    Priority,
    RecurrenceKind,
    RecurrenceRule,
)

__all__ = [
    "CannotResumeCompletedJob",
    "Clock",
    "DispatchFailure",
    "DispatchResult",
    "HistoryEntry",
    "InvalidRecurrenceRule",
    "Job",
    "ManualClock",
    "NotificationPayload",
    "PastScheduleTime",
    "Priority",
    "RecurrenceKind",
    "RecurrenceRule",
    "Scheduler",
    "SchedulingError",
    "StoreFailure",
    "SystemClock",
    "daily_at",
    "monthly_on",
    "next_fire_time",
    "validate_rule",
    "weekly_on",
]
