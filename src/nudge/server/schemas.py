"""Request and response models for the submission API."""

from typing import Any

from pydantic import AwareDatetime, BaseModel, Field, model_validator

from nudge.scheduling.types import (
    DispatchResult,
    HistoryEntry,
    Job,
    NotificationPayload,
    Priority,
    RecurrenceKind,
    RecurrenceRule,
)


class RecurrenceRequest(BaseModel):
    """Recurrence part of a submission.

    Range checks are left to the scheduler so that rule errors are reported
    the same way for every caller.
    """

    kind: RecurrenceKind
    interval: int = 1
    end_time: AwareDatetime | None = None
    anchor_day_of_week: int | None = None
    anchor_day_of_month: int | None = None
    utc_offset_minutes: int = 0

    def to_rule(self) -> RecurrenceRule:
        return RecurrenceRule(
            kind=self.kind,
            interval=self.interval,
            end_time=self.end_time,
            anchor_day_of_week=self.anchor_day_of_week,
            anchor_day_of_month=self.anchor_day_of_month,
            utc_offset_minutes=self.utc_offset_minutes,
        )


class NotificationRequest(BaseModel):
    """A notification to send now or schedule.

    Omitting ``schedule_time`` sends immediately.
    """

    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1)
    destination: str = Field(min_length=1)
    priority: Priority = Priority.MEDIUM
    schedule_time: AwareDatetime | None = None
    recurrence: RecurrenceRequest | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_schedule(self) -> "NotificationRequest":
        if self.recurrence is not None and self.schedule_time is None:
            raise ValueError("recurrence requires schedule_time")
        return self

    def to_payload(self) -> NotificationPayload:
        return NotificationPayload(
            title=self.title,
            message=self.message,
            destination=self.destination,
            priority=self.priority,
            metadata=dict(self.metadata),
        )


class SubmitResponse(BaseModel):
    """Outcome of a submission: a job for scheduled sends, a result otherwise."""

    job: dict[str, Any] | None = None
    result: dict[str, Any] | None = None

    @classmethod
    def scheduled(cls, job: Job) -> "SubmitResponse":
        return cls(job=job.to_dict())

    @classmethod
    def sent(cls, result: DispatchResult) -> "SubmitResponse":
        return cls(result=result.to_dict())


class JobList(BaseModel):
    jobs: list[dict[str, Any]]
    total: int

    @classmethod
    def from_jobs(cls, jobs: list[Job]) -> "JobList":
        return cls(jobs=[job.to_dict() for job in jobs], total=len(jobs))


class HistoryList(BaseModel):
    entries: list[dict[str, Any]]

    @classmethod
    def from_entries(cls, entries: list[HistoryEntry]) -> "HistoryList":
        return cls(entries=[entry.to_dict() for entry in entries])
