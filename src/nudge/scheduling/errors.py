"""Scheduling errors.

Validation errors (``PastScheduleTime``, ``InvalidRecurrenceRule``,
``CannotResumeCompletedJob``) are raised synchronously to the caller and leave
no state behind. ``StoreFailure`` is raised after in-memory state and timers
have already been updated. ``DispatchFailure`` never escapes the firing
protocol; it is recorded to history instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nudge.scheduling.types import DispatchResult


class SchedulingError(Exception):
    """Base class for scheduling errors."""


class PastScheduleTime(SchedulingError):
    """A one-shot job was submitted with a fire time that is not in the future."""


class InvalidRecurrenceRule(SchedulingError, ValueError):
    """A recurrence rule is malformed or would not advance time."""


class CannotResumeCompletedJob(SchedulingError):
    """The job has no remaining occurrences to resume."""


class DispatchFailure(SchedulingError):
    """Delivery through the dispatcher failed."""


class StoreFailure(SchedulingError):
    """Persistence was unavailable.

    ``job_id`` names the job whose in-memory state is ahead of the store.
    ``result`` carries the delivery outcome when an immediate send succeeded
    or failed but its history entry could not be written.
    """

    def __init__(
        self,
        message: str,
        *,
        job_id: str | None = None,
        result: DispatchResult | None = None,
    ) -> None:
        super().__init__(message)
        self.job_id = job_id
        self.result = result
