"""Scheduling types.

Public types:
- NotificationPayload: What to deliver and where
- RecurrenceRule: How a recurring job repeats
- Job: A scheduled notification with its current firing state
- HistoryEntry: The outcome of one dispatch attempt
- DispatchResult: Result returned to callers of immediate sends
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from urllib.parse import urlsplit


class Priority(StrEnum):
    """Delivery priority passed through to the dispatcher."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RecurrenceKind(StrEnum):
    """Recurrence unit. Custom intervals are expressed in milliseconds."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def describe_destination(destination: str) -> str:
    """Return a destination that is safe to log.

    Named destinations are returned as is. A raw webhook URL carries its
    credential in the path or query, so only scheme and host are kept.
    """
    if not destination.startswith(("https://", "http://")):
        return destination
    parts = urlsplit(destination)
    return f"{parts.scheme}://{parts.hostname or ''}/..."


def _format_datetime(value: datetime | None) -> str | None:
    return value.astimezone(UTC).isoformat() if value else None


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


@dataclass(frozen=True)
class NotificationPayload:
    """Title, message and routing for a notification. Immutable once created."""

    title: str
    message: str
    destination: str
    priority: Priority = Priority.MEDIUM
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "title": self.title,
            "message": self.message,
            "destination": self.destination,
            "priority": self.priority.value,
        }
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NotificationPayload:
        return cls(
            title=data["title"],
            message=data["message"],
            destination=data["destination"],
            priority=Priority(data.get("priority", Priority.MEDIUM.value)),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class RecurrenceRule:
    """Recurrence definition for a job.

    ``interval`` counts days, weeks or months for the calendar kinds and
    milliseconds for ``custom``. Calendar fields (weekday, day of month,
    time of day) are evaluated at ``utc_offset_minutes`` from UTC.
    ``anchor_day_of_week`` uses ``datetime.weekday()`` numbering (0 = Monday).
    """

    kind: RecurrenceKind
    interval: int = 1
    end_time: datetime | None = None
    anchor_day_of_week: int | None = None
    anchor_day_of_month: int | None = None
    utc_offset_minutes: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind.value, "interval": self.interval}
        if self.end_time:
            data["end_time"] = _format_datetime(self.end_time)
        if self.anchor_day_of_week is not None:
            data["anchor_day_of_week"] = self.anchor_day_of_week
        if self.anchor_day_of_month is not None:
            data["anchor_day_of_month"] = self.anchor_day_of_month
        if self.utc_offset_minutes:
            data["utc_offset_minutes"] = self.utc_offset_minutes
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecurrenceRule:
        return cls(
            kind=RecurrenceKind(data["kind"]),
            interval=data.get("interval", 1),
            end_time=_parse_datetime(data.get("end_time")),
            anchor_day_of_week=data.get("anchor_day_of_week"),
            anchor_day_of_month=data.get("anchor_day_of_month"),
            utc_offset_minutes=data.get("utc_offset_minutes", 0),
        )


@dataclass
class Job:
    """A scheduled notification and its firing state.

    ``id``, ``payload``, ``first_fire_time``, ``recurrence`` and
    ``created_time`` never change after submission. The scheduler mutates
    ``next_fire_time``, ``last_fire_time`` and ``active`` in place.

    ``revision`` counts durable writes. Every writer bumps it before an
    upsert, so a process holding revision N knows a stored copy with a
    higher revision was written by someone else.
    """

    id: str
    payload: NotificationPayload
    first_fire_time: datetime
    recurrence: RecurrenceRule | None = None
    next_fire_time: datetime | None = None
    last_fire_time: datetime | None = None
    active: bool = True
    created_time: datetime = field(default_factory=utc_now)
    revision: int = 0

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None

    def snapshot(self) -> Job:
        """Return a copy that callers may hold without seeing later mutations."""
        return copy.copy(self)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "payload": self.payload.to_dict(),
            "first_fire_time": _format_datetime(self.first_fire_time),
            "next_fire_time": _format_datetime(self.next_fire_time),
            "last_fire_time": _format_datetime(self.last_fire_time),
            "active": self.active,
            "created_time": _format_datetime(self.created_time),
            "revision": self.revision,
        }
        if self.recurrence:
            data["recurrence"] = self.recurrence.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Job:
        recurrence = data.get("recurrence")
        first_fire_time = _parse_datetime(data["first_fire_time"])
        if first_fire_time is None:
            raise ValueError("Job is missing first_fire_time")
        return cls(
            id=data["id"],
            payload=NotificationPayload.from_dict(data["payload"]),
            first_fire_time=first_fire_time,
            recurrence=RecurrenceRule.from_dict(recurrence) if recurrence else None,
            next_fire_time=_parse_datetime(data.get("next_fire_time")),
            last_fire_time=_parse_datetime(data.get("last_fire_time")),
            active=bool(data.get("active", True)),
            created_time=_parse_datetime(data.get("created_time")) or utc_now(),
            revision=int(data.get("revision", 0)),
        )


@dataclass(frozen=True)
class HistoryEntry:
    """Outcome of a single dispatch attempt. ``job_id`` is None for immediate sends."""

    id: str
    job_id: str | None
    fired_at: datetime
    success: bool
    destination_echo: str
    error_detail: str | None = None
    delivery_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "fired_at": _format_datetime(self.fired_at),
            "success": self.success,
            "destination_echo": self.destination_echo,
            "error_detail": self.error_detail,
            "delivery_id": self.delivery_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        fired_at = _parse_datetime(data["fired_at"])
        if fired_at is None:
            raise ValueError("History entry is missing fired_at")
        return cls(
            id=data["id"],
            job_id=data.get("job_id"),
            fired_at=fired_at,
            success=bool(data["success"]),
            destination_echo=data.get("destination_echo", ""),
            error_detail=data.get("error_detail"),
            delivery_id=data.get("delivery_id"),
        )


@dataclass(frozen=True)
class DispatchResult:
    """Result of a single delivery attempt."""

    success: bool
    delivery_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "delivery_id": self.delivery_id,
            "error": self.error,
        }
