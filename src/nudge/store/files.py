"""File-backed store: one JSON file per job plus a JSONL history log."""

from __future__ import annotations

import asyncio
import logging
import re
from collections import defaultdict
from pathlib import Path

from nudge.scheduling.errors import StoreFailure
from nudge.scheduling.types import HistoryEntry, Job
from nudge.store.jsonl import TypedJSONL, read_json, write_json_atomic
from nudge.store.memory import DEFAULT_HISTORY_CAP

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")


class FileStore:
    """Stores each job in ``<root>/jobs/<id>.json`` and history in ``<root>/history.jsonl``.

    Every job write replaces a single file atomically (temp file + rename)
    under a per-job lock, so concurrent firings of different jobs never
    touch the same file and writes for one job land in call order.
    History is append-only and compacted to the newest ``max_history``
    entries once it grows to twice that size.
    """

    def __init__(self, root: Path, max_history: int = DEFAULT_HISTORY_CAP) -> None:
        self._root = root
        self._jobs_dir = root / "jobs"
        self._max_history = max_history
        self._history = TypedJSONL(root / "history.jsonl", HistoryEntry)
        self._job_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._history_lock = asyncio.Lock()
        self._history_count: int | None = None

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    async def load_all(self) -> list[Job]:
        if not self._jobs_dir.exists():
            return []
        jobs: list[Job] = []
        try:
            paths = sorted(self._jobs_dir.glob("*.json"))
            for path in paths:
                if path.name.startswith("."):
                    continue
                try:
                    jobs.append(Job.from_dict(await read_json(path)))
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning(
                        "malformed_job_file",
                        extra={"file.name": path.name, "error.message": str(e)},
                    )
        except OSError as e:
            raise StoreFailure(f"Failed to load jobs: {e}") from e
        return jobs

    async def load_job(self, job_id: str) -> Job | None:
        path = self._job_path(job_id)
        try:
            return Job.from_dict(await read_json(path))
        except FileNotFoundError:
            return None
        except (ValueError, KeyError, TypeError) as e:
            raise StoreFailure(
                f"Malformed job file {path.name}: {e}", job_id=job_id
            ) from e
        except OSError as e:
            raise StoreFailure(
                f"Failed to load job {job_id}: {e}", job_id=job_id
            ) from e

    async def load_history(self, limit: int) -> list[HistoryEntry]:
        try:
            entries = await self._history.load_all()
        except OSError as e:
            raise StoreFailure(f"Failed to load history: {e}") from e
        entries.sort(key=lambda e: e.fired_at, reverse=True)
        # The log may hold up to twice the cap between compactions
        return entries[: min(limit, self._max_history)]

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    async def upsert_job(self, job: Job) -> None:
        path = self._job_path(job.id)
        data = job.to_dict()
        async with self._job_locks[job.id]:
            try:
                await write_json_atomic(path, data)
            except OSError as e:
                raise StoreFailure(
                    f"Failed to write job {job.id}: {e}", job_id=job.id
                ) from e

    async def append_history(self, entry: HistoryEntry) -> None:
        async with self._history_lock:
            try:
                await self._history.append(entry)
                await self._maybe_compact_history()
            except OSError as e:
                raise StoreFailure(
                    f"Failed to append history: {e}", job_id=entry.job_id
                ) from e

    async def delete_job(self, job_id: str) -> bool:
        path = self._job_path(job_id)
        async with self._job_locks[job_id]:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as e:
                raise StoreFailure(
                    f"Failed to delete job {job_id}: {e}", job_id=job_id
                ) from e
        self._job_locks.pop(job_id, None)
        return True

    async def close(self) -> None:
        pass

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _job_path(self, job_id: str) -> Path:
        if not _SAFE_ID.match(job_id):
            raise StoreFailure(f"Unsafe job id: {job_id!r}", job_id=job_id)
        return self._jobs_dir / f"{job_id}.json"

    async def _maybe_compact_history(self) -> None:
        if self._history_count is None:
            self._history_count = len(await self._history.load_all())
        else:
            self._history_count += 1

        if self._history_count < self._max_history * 2:
            return

        entries = await self._history.load_all()
        kept = entries[-self._max_history :]
        await self._history.rewrite(kept)
        self._history_count = len(kept)
        logger.debug(
            "history_compacted",
            extra={"history.dropped": len(entries) - len(kept)},
        )
