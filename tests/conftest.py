"""Shared test fixtures and factories."""

import asyncio
from collections.abc import AsyncGenerator, Generator
from datetime import UTC, datetime
from pathlib import Path

import pytest

from nudge.config.paths import ENV_VAR, get_nudge_home
from nudge.scheduling import ManualClock, NotificationPayload, Priority, Scheduler
from nudge.scheduling.errors import StoreFailure
from nudge.scheduling.types import HistoryEntry, Job
from nudge.store import MemoryStore

# Monday 2026-01-05 09:00 UTC
START = datetime(2026, 1, 5, 9, 0, tzinfo=UTC)


# =============================================================================
# Test Doubles
# =============================================================================


class RecordingDispatcher:
    """Dispatcher that records every call.

    ``fail_with`` makes every delivery raise. ``gate`` blocks deliveries
    until the event is set, for tests that act while a dispatch is in flight.
    """

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.fail_with: BaseException | None = None
        self.gate: asyncio.Event | None = None
        self.in_flight = 0

    async def deliver(
        self, title: str, message: str, destination: str, priority: Priority
    ) -> str:
        self.calls.append(
            {
                "title": title,
                "message": message,
                "destination": destination,
                "priority": priority,
            }
        )
        self.in_flight += 1
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.fail_with is not None:
                raise self.fail_with
        finally:
            self.in_flight -= 1
        return f"msg-{len(self.calls)}"


class FlakyStore(MemoryStore):
    """MemoryStore whose writes can be switched off."""

    def __init__(self, max_history: int = 100) -> None:
        super().__init__(max_history=max_history)
        self.fail_jobs = False
        self.fail_history = False
        self.fail_deletes = False
        self.fail_loads = False

    async def load_all(self) -> list[Job]:
        if self.fail_loads:
            raise StoreFailure("disk unavailable")
        return await super().load_all()

    async def load_job(self, job_id: str) -> Job | None:
        if self.fail_loads:
            raise StoreFailure("disk unavailable")
        return await super().load_job(job_id)

    async def upsert_job(self, job: Job) -> None:
        if self.fail_jobs:
            raise StoreFailure("disk full", job_id=job.id)
        await super().upsert_job(job)

    async def append_history(self, entry: HistoryEntry) -> None:
        if self.fail_history:
            raise OSError("disk full")
        await super().append_history(entry)

    async def delete_job(self, job_id: str) -> bool:
        if self.fail_deletes:
            raise StoreFailure("read-only", job_id=job_id)
        return await super().delete_job(job_id)


def make_payload(
    title: str = "Standup",
    message: str = "Join the call",
    destination: str = "team",
    priority: Priority = Priority.MEDIUM,
) -> NotificationPayload:
    return NotificationPayload(
        title=title, message=message, destination=destination, priority=priority
    )


# =============================================================================
# Scheduler Fixtures
# =============================================================================


@pytest.fixture
def clock() -> ManualClock:
    """Virtual clock starting at START."""
    return ManualClock(START)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def payload() -> NotificationPayload:
    return make_payload()


@pytest.fixture
async def scheduler(
    store: FlakyStore, dispatcher: RecordingDispatcher, clock: ManualClock
) -> AsyncGenerator[Scheduler, None]:
    """A started scheduler on virtual time."""
    sched = Scheduler(store, dispatcher, clock=clock)
    await sched.start()
    yield sched
    await sched.stop()


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture
def nudge_home(monkeypatch, tmp_path: Path) -> Generator[Path, None, None]:
    """Point NUDGE_HOME at a temporary directory."""
    home = tmp_path / "nudge-home"
    monkeypatch.setenv(ENV_VAR, str(home))
    get_nudge_home.cache_clear()
    yield home
    get_nudge_home.cache_clear()


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1", "COLUMNS": "200"})
