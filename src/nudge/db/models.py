"""SQLAlchemy ORM models."""

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    type_annotation_map = {
        dict[str, Any]: JSON,
    }


class JobRecord(Base):
    """Scheduled notification job. Datetimes are stored as naive UTC."""

    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    recurrence: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    first_fire_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    next_fire_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_fire_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (Index("ix_jobs_active_next", "active", "next_fire_time"),)


class HistoryRecord(Base):
    """One dispatch attempt."""

    __tablename__ = "history"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    job_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    fired_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    destination_echo: Mapped[str] = mapped_column(String, nullable=False)
    error_detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_id: Mapped[str | None] = mapped_column(String, nullable=True)
