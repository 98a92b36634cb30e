"""Store contract for durable job and history persistence."""

from typing import Protocol

from nudge.scheduling.types import HistoryEntry, Job


class Store(Protocol):
    """Durable mirror of the scheduler's job table and delivery history.

    Writes are per record: ``upsert_job`` replaces exactly one job and
    ``append_history`` adds exactly one entry, so concurrent firings of
    different jobs never overwrite each other's state. Implementations
    raise ``StoreFailure`` when the backend is unavailable.
    """

    async def load_all(self) -> list[Job]: ...

    async def load_job(self, job_id: str) -> Job | None:
        """Return the stored copy of one job, or None if it is not stored."""
        ...

    async def load_history(self, limit: int) -> list[HistoryEntry]:
        """Return up to ``limit`` entries, most recent first."""
        ...

    async def upsert_job(self, job: Job) -> None: ...

    async def append_history(self, entry: HistoryEntry) -> None: ...

    async def delete_job(self, job_id: str) -> bool: ...

    async def close(self) -> None: ...
