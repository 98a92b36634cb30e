"""Tests for store backends."""

from collections.abc import AsyncGenerator
from datetime import timedelta
from pathlib import Path

import pytest

from nudge.db import Database
from nudge.scheduling.errors import StoreFailure
from nudge.scheduling.types import (
    HistoryEntry,
    Job,
    RecurrenceKind,
    RecurrenceRule,
)
from nudge.store import FileStore, MemoryStore, SqlStore, Store
from tests.conftest import START, make_payload


def make_job(job_id: str = "a1b2c3d4", **kwargs) -> Job:
    defaults = {
        "payload": make_payload(),
        "first_fire_time": START,
        "next_fire_time": START,
        "created_time": START - timedelta(minutes=5),
    }
    defaults.update(kwargs)
    return Job(id=job_id, **defaults)


def make_entry(entry_id: str, minutes: int, job_id: str | None = "a1b2c3d4"):
    return HistoryEntry(
        id=entry_id,
        job_id=job_id,
        fired_at=START + timedelta(minutes=minutes),
        success=True,
        destination_echo="team",
        delivery_id=f"d-{entry_id}",
    )


@pytest.fixture(params=["memory", "file", "sql"])
async def any_store(request, tmp_path: Path) -> AsyncGenerator[Store, None]:
    """Each backend with a history cap of 3."""
    if request.param == "memory":
        store: Store = MemoryStore(max_history=3)
    elif request.param == "file":
        store = FileStore(tmp_path / "data", max_history=3)
    else:
        database = Database(database_path=tmp_path / "nudge.db")
        sql_store = SqlStore(database, max_history=3)
        await sql_store.open()
        store = sql_store
    yield store
    await store.close()


class TestStoreContract:
    """Behavior every backend shares."""

    async def test_empty(self, any_store: Store):
        assert await any_store.load_all() == []
        assert await any_store.load_history(10) == []

    async def test_job_round_trip(self, any_store: Store):
        rule = RecurrenceRule(
            kind=RecurrenceKind.MONTHLY,
            interval=2,
            anchor_day_of_month=31,
            utc_offset_minutes=-300,
            end_time=START + timedelta(days=365),
        )
        payload = make_payload()
        payload.metadata["ticket"] = "OPS-12"
        job = make_job(
            recurrence=rule,
            payload=payload,
            last_fire_time=START - timedelta(days=1),
        )

        await any_store.upsert_job(job)

        [loaded] = await any_store.load_all()
        assert loaded == job
        assert loaded.next_fire_time is not None
        assert loaded.next_fire_time.utcoffset() == timedelta(0)

    async def test_upsert_replaces(self, any_store: Store):
        job = make_job()
        await any_store.upsert_job(job)

        job.active = False
        job.next_fire_time = None
        await any_store.upsert_job(job)

        [loaded] = await any_store.load_all()
        assert loaded.active is False
        assert loaded.next_fire_time is None

    async def test_load_job(self, any_store: Store):
        job = make_job(revision=4)
        await any_store.upsert_job(job)

        loaded = await any_store.load_job(job.id)
        assert loaded == job
        assert loaded is not job
        assert await any_store.load_job("00000000") is None

    async def test_jobs_are_independent_records(self, any_store: Store):
        await any_store.upsert_job(make_job("00000001"))
        await any_store.upsert_job(make_job("00000002"))

        ids = sorted(job.id for job in await any_store.load_all())
        assert ids == ["00000001", "00000002"]

    async def test_history_newest_first(self, any_store: Store):
        await any_store.append_history(make_entry("h1", 1))
        await any_store.append_history(make_entry("h2", 2, job_id=None))

        entries = await any_store.load_history(10)
        assert [e.id for e in entries] == ["h2", "h1"]
        assert entries[0].job_id is None
        assert entries[1].delivery_id == "d-h1"

    async def test_history_limit(self, any_store: Store):
        for i in range(3):
            await any_store.append_history(make_entry(f"h{i}", i))

        entries = await any_store.load_history(2)
        assert [e.id for e in entries] == ["h2", "h1"]

    async def test_history_retention_cap(self, any_store: Store):
        for i in range(6):
            await any_store.append_history(make_entry(f"h{i}", i))

        entries = await any_store.load_history(10)
        assert [e.id for e in entries] == ["h5", "h4", "h3"]

    async def test_delete_job(self, any_store: Store):
        await any_store.upsert_job(make_job())

        assert await any_store.delete_job("a1b2c3d4") is True
        assert await any_store.delete_job("a1b2c3d4") is False
        assert await any_store.load_all() == []


class TestMemoryStore:
    async def test_stores_copies(self):
        store = MemoryStore()
        job = make_job()
        await store.upsert_job(job)

        job.active = False

        persisted = store.get(job.id)
        assert persisted is not None
        assert persisted.active is True


class TestFileStore:
    async def test_one_file_per_job(self, tmp_path: Path):
        store = FileStore(tmp_path)
        await store.upsert_job(make_job("00000001"))
        await store.upsert_job(make_job("00000002"))

        names = sorted(p.name for p in (tmp_path / "jobs").iterdir())
        assert names == ["00000001.json", "00000002.json"]

    async def test_no_temp_files_left(self, tmp_path: Path):
        store = FileStore(tmp_path)
        job = make_job()
        for _ in range(3):
            await store.upsert_job(job)

        assert [p.name for p in (tmp_path / "jobs").iterdir()] == ["a1b2c3d4.json"]

    async def test_malformed_job_file_skipped(self, tmp_path: Path):
        store = FileStore(tmp_path)
        await store.upsert_job(make_job())
        (tmp_path / "jobs" / "broken.json").write_text('{"id": "broken"}')

        jobs = await store.load_all()
        assert [j.id for j in jobs] == ["a1b2c3d4"]

    async def test_malformed_history_line_skipped(self, tmp_path: Path):
        store = FileStore(tmp_path)
        await store.append_history(make_entry("h1", 1))
        with (tmp_path / "history.jsonl").open("a") as f:
            f.write("not json\n")
        await store.append_history(make_entry("h2", 2))

        entries = await store.load_history(10)
        assert [e.id for e in entries] == ["h2", "h1"]

    async def test_compacts_at_twice_the_cap(self, tmp_path: Path):
        store = FileStore(tmp_path, max_history=2)
        for i in range(3):
            await store.append_history(make_entry(f"h{i}", i))

        lines = (tmp_path / "history.jsonl").read_text().splitlines()
        assert len(lines) == 3

        await store.append_history(make_entry("h3", 3))

        lines = (tmp_path / "history.jsonl").read_text().splitlines()
        assert len(lines) == 2

    async def test_rejects_unsafe_ids(self, tmp_path: Path):
        store = FileStore(tmp_path)
        with pytest.raises(StoreFailure):
            await store.upsert_job(make_job("../escape"))

    async def test_write_failure_raises_store_failure(self, tmp_path: Path):
        blocker = tmp_path / "data"
        blocker.write_text("not a directory")
        store = FileStore(tmp_path / "other")
        store._jobs_dir = blocker / "jobs"

        with pytest.raises(StoreFailure) as exc_info:
            await store.upsert_job(make_job())
        assert exc_info.value.job_id == "a1b2c3d4"


class TestSqlStore:
    async def test_persists_across_connections(self, tmp_path: Path):
        path = tmp_path / "nudge.db"
        store = SqlStore(Database(database_path=path))
        await store.open()
        await store.upsert_job(make_job())
        await store.append_history(make_entry("h1", 1))
        await store.close()

        reopened = SqlStore(Database(database_path=path))
        await reopened.open()
        [job] = await reopened.load_all()
        [entry] = await reopened.load_history(10)
        await reopened.close()

        assert job.id == "a1b2c3d4"
        assert job.first_fire_time == START
        assert entry.fired_at == START + timedelta(minutes=1)

    async def test_unopened_database_fails(self, tmp_path: Path):
        store = SqlStore(Database(database_path=tmp_path / "nudge.db"))
        with pytest.raises(RuntimeError):
            await store.load_all()
