"""In-process store, used for tests and ephemeral runs."""

from collections import deque

from nudge.scheduling.types import HistoryEntry, Job

DEFAULT_HISTORY_CAP = 100


class MemoryStore:
    """Keeps jobs and history in memory.

    Jobs are copied on write so the stored state reflects what was persisted,
    not later in-memory mutations made by the scheduler.
    """

    def __init__(self, max_history: int = DEFAULT_HISTORY_CAP) -> None:
        self._jobs: dict[str, Job] = {}
        self._history: deque[HistoryEntry] = deque(maxlen=max_history)

    async def load_all(self) -> list[Job]:
        return [job.snapshot() for job in self._jobs.values()]

    async def load_job(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        return job.snapshot() if job else None

    async def load_history(self, limit: int) -> list[HistoryEntry]:
        entries = sorted(self._history, key=lambda e: e.fired_at, reverse=True)
        return entries[:limit]

    async def upsert_job(self, job: Job) -> None:
        self._jobs[job.id] = job.snapshot()

    async def append_history(self, entry: HistoryEntry) -> None:
        self._history.append(entry)

    async def delete_job(self, job_id: str) -> bool:
        return self._jobs.pop(job_id, None) is not None

    async def close(self) -> None:
        pass

    def get(self, job_id: str) -> Job | None:
        """Return the persisted copy of a job."""
        return self._jobs.get(job_id)
