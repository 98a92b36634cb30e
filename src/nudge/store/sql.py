"""SQLite-backed store using async SQLAlchemy."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from nudge.db.engine import Database
from nudge.db.models import HistoryRecord, JobRecord
from nudge.scheduling.errors import StoreFailure
from nudge.scheduling.types import (
    HistoryEntry,
    Job,
    NotificationPayload,
    RecurrenceRule,
)
from nudge.store.memory import DEFAULT_HISTORY_CAP

logger = logging.getLogger(__name__)


def _to_db(value: datetime | None) -> datetime | None:
    return value.astimezone(UTC).replace(tzinfo=None) if value else None


def _from_db(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _job_to_record(job: Job) -> JobRecord:
    return JobRecord(
        id=job.id,
        payload=job.payload.to_dict(),
        recurrence=job.recurrence.to_dict() if job.recurrence else None,
        first_fire_time=_to_db(job.first_fire_time),
        next_fire_time=_to_db(job.next_fire_time),
        last_fire_time=_to_db(job.last_fire_time),
        active=job.active,
        created_time=_to_db(job.created_time),
        revision=job.revision,
    )


def _record_to_job(record: JobRecord) -> Job:
    first_fire_time = _from_db(record.first_fire_time)
    created_time = _from_db(record.created_time)
    assert first_fire_time is not None and created_time is not None
    return Job(
        id=record.id,
        payload=NotificationPayload.from_dict(record.payload),
        first_fire_time=first_fire_time,
        recurrence=(
            RecurrenceRule.from_dict(record.recurrence) if record.recurrence else None
        ),
        next_fire_time=_from_db(record.next_fire_time),
        last_fire_time=_from_db(record.last_fire_time),
        active=record.active,
        created_time=created_time,
        revision=record.revision,
    )


def _record_to_entry(record: HistoryRecord) -> HistoryEntry:
    fired_at = _from_db(record.fired_at)
    assert fired_at is not None
    return HistoryEntry(
        id=record.id,
        job_id=record.job_id,
        fired_at=fired_at,
        success=record.success,
        destination_echo=record.destination_echo,
        error_detail=record.error_detail,
        delivery_id=record.delivery_id,
    )


class SqlStore:
    """Stores jobs and history as rows; each write is its own transaction.

    Example:
        store = SqlStore(Database(database_path=Path("~/.nudge/nudge.db")))
        await store.open()
    """

    def __init__(self, database: Database, max_history: int = DEFAULT_HISTORY_CAP):
        self._db = database
        self._max_history = max_history

    @property
    def database(self) -> Database:
        return self._db

    async def open(self) -> None:
        """Connect and create tables if needed."""
        try:
            if not self._db.is_connected:
                await self._db.connect()
            await self._db.create_tables()
        except SQLAlchemyError as e:
            raise StoreFailure(f"Failed to open database: {e}") from e

    async def load_all(self) -> list[Job]:
        try:
            async with self._db.session() as session:
                result = await session.execute(select(JobRecord))
                return [_record_to_job(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreFailure(f"Failed to load jobs: {e}") from e

    async def load_job(self, job_id: str) -> Job | None:
        try:
            async with self._db.session() as session:
                record = await session.get(JobRecord, job_id)
                return _record_to_job(record) if record else None
        except SQLAlchemyError as e:
            raise StoreFailure(
                f"Failed to load job {job_id}: {e}", job_id=job_id
            ) from e

    async def load_history(self, limit: int) -> list[HistoryEntry]:
        try:
            async with self._db.session() as session:
                result = await session.execute(
                    select(HistoryRecord)
                    .order_by(HistoryRecord.fired_at.desc())
                    .limit(limit)
                )
                return [_record_to_entry(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreFailure(f"Failed to load history: {e}") from e

    async def upsert_job(self, job: Job) -> None:
        record = _job_to_record(job)
        try:
            async with self._db.session() as session:
                await session.merge(record)
        except SQLAlchemyError as e:
            raise StoreFailure(
                f"Failed to write job {job.id}: {e}", job_id=job.id
            ) from e

    async def append_history(self, entry: HistoryEntry) -> None:
        record = HistoryRecord(
            id=entry.id,
            job_id=entry.job_id,
            fired_at=_to_db(entry.fired_at),
            success=entry.success,
            destination_echo=entry.destination_echo,
            error_detail=entry.error_detail,
            delivery_id=entry.delivery_id,
        )
        try:
            async with self._db.session() as session:
                session.add(record)
                await session.flush()
                keep = (
                    select(HistoryRecord.id)
                    .order_by(HistoryRecord.fired_at.desc())
                    .limit(self._max_history)
                )
                await session.execute(
                    delete(HistoryRecord)
                    .where(HistoryRecord.id.not_in(keep))
                    .execution_options(synchronize_session=False)
                )
        except SQLAlchemyError as e:
            raise StoreFailure(
                f"Failed to append history: {e}", job_id=entry.job_id
            ) from e

    async def delete_job(self, job_id: str) -> bool:
        try:
            async with self._db.session() as session:
                result = await session.execute(
                    delete(JobRecord)
                    .where(JobRecord.id == job_id)
                    .execution_options(synchronize_session=False)
                )
                return (result.rowcount or 0) > 0
        except SQLAlchemyError as e:
            raise StoreFailure(
                f"Failed to delete job {job_id}: {e}", job_id=job_id
            ) from e

    async def close(self) -> None:
        await self._db.disconnect()
