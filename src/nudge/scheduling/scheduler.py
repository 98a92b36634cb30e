"""Notification scheduler.

The scheduler owns the in-memory job table and one timer task per armed
job. Each timer task runs a wait -> fire -> re-read loop on the injected
Clock. Firings are serialized per job with a per-job lock; structural
changes to the table (insert, prune, load) take a short table lock.

Every state transition is written through to the Store as a single-record
upsert. Store failures never stall the scheduler: in-memory state and
timers are updated first, then the failure is raised to the caller of the
triggering operation (or logged, inside the firing protocol).

Other processes (the CLI) may edit the same Store. A firing re-reads its
job from the Store before and after dispatch, and an optional poll
reconciles the whole table, so a job cancelled, added or pruned elsewhere
is honoured without a restart. Jobs carry a write revision; a stored copy
with a higher revision than the in-memory one was written elsewhere and
replaces it.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from nudge.scheduling.clock import Clock, SystemClock
from nudge.scheduling.errors import (
    CannotResumeCompletedJob,
    InvalidRecurrenceRule,
    PastScheduleTime,
    StoreFailure,
)
from nudge.scheduling.recurrence import next_fire_time, validate_rule
from nudge.scheduling.types import (
    DispatchResult,
    HistoryEntry,
    Job,
    NotificationPayload,
    RecurrenceRule,
    describe_destination,
)

if TYPE_CHECKING:
    from nudge.dispatch.base import Dispatcher
    from nudge.store.base import Store

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100


def _new_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass
class _Timer:
    """Handle for a job's timer task.

    ``firing`` is True while the task is inside the firing protocol; such a
    timer is never cancelled, not even by ``stop``, so an in-flight dispatch
    always completes and is recorded.
    """

    task: asyncio.Task[None] | None = None
    firing: bool = False


class Scheduler:
    """Schedules, fires and re-arms notification jobs.

    Example:
        scheduler = Scheduler(FileStore(path), WebhookDispatcher(destinations))
        await scheduler.start()
        job_id = await scheduler.submit(payload, fire_at)
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        store: Store,
        dispatcher: Dispatcher,
        *,
        clock: Clock | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        poll_interval: timedelta | None = None,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._clock: Clock = clock or SystemClock()
        self._history_limit = history_limit
        self._poll_interval = poll_interval
        self._poller: asyncio.Task[None] | None = None
        self._jobs: dict[str, Job] = {}
        self._job_locks: dict[str, asyncio.Lock] = {}
        # Jobs known to have reached the store at least once
        self._persisted: set[str] = set()
        self._timers: dict[str, _Timer] = {}
        self._history: deque[HistoryEntry] = deque(maxlen=history_limit)
        self._table_lock = asyncio.Lock()
        self._arming = True
        self._running = False

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def store(self) -> Store:
        return self._store

    @property
    def running(self) -> bool:
        return self._running

    async def __aenter__(self) -> Scheduler:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, *, recover: bool = True) -> None:
        """Load persisted state and recover pending jobs.

        Due jobs are fired once, synchronously, before this returns; all
        other active jobs get a timer, and the store poll starts when a
        ``poll_interval`` was given. With ``recover=False`` state is only
        loaded: nothing fires, no timers are armed and nothing polls, which
        lets tools edit the store without delivering anything.

        Raises:
            StoreFailure: If the store cannot be read.
        """
        if self._running:
            return

        try:
            jobs = await self._store.load_all()
            history = await self._store.load_history(self._history_limit)
        except StoreFailure:
            raise
        except Exception as e:
            raise StoreFailure(f"Failed to load scheduler state: {e}") from e

        async with self._table_lock:
            self._jobs = {job.id: job for job in jobs}
            self._job_locks = {job.id: asyncio.Lock() for job in jobs}
            self._persisted = {job.id for job in jobs}
            self._history.clear()
            self._history.extend(reversed(history))

        self._arming = recover
        self._running = True
        logger.info(
            "scheduler_started",
            extra={"jobs.total": len(jobs), "scheduler.recover": recover},
        )
        if not recover:
            return

        now = self._clock.now()
        pending = sorted(
            (j for j in jobs if j.active and j.next_fire_time is not None),
            key=lambda j: j.next_fire_time or now,
        )
        for job in pending:
            if job.next_fire_time is not None and job.next_fire_time <= now:
                logger.info(
                    "job_catch_up",
                    extra={
                        "job.id": job.id,
                        "job.overdue_seconds": round(
                            (now - job.next_fire_time).total_seconds(), 1
                        ),
                    },
                )
                await self._fire(job.id)
            self._arm(job.id)

        if self._poll_interval is not None:
            self._poller = asyncio.create_task(
                self._run_poll(self._poll_interval), name="nudge-store-poll"
            )

    async def stop(self) -> None:
        """Cancel waiting timers and wait for in-flight firings to finish.

        A firing that has started dispatching runs to completion, history
        and job writes included, so a delivered notification is never left
        unrecorded. Job state is otherwise left as is for the next start.
        """
        self._running = False
        self._arming = False
        if self._poller is not None:
            self._poller.cancel()
            await asyncio.gather(self._poller, return_exceptions=True)
            self._poller = None

        timers = list(self._timers.values())
        self._timers.clear()
        live = [t for t in timers if t.task is not None and not t.task.done()]
        waiting = [t.task for t in live if t.task is not None and not t.firing]
        firing = [t.task for t in live if t.task is not None and t.firing]
        for task in waiting:
            task.cancel()
        if live:
            await asyncio.gather(*waiting, *firing, return_exceptions=True)
        logger.info(
            "scheduler_stopped",
            extra={"timers.cancelled": len(waiting), "timers.drained": len(firing)},
        )

    async def reconcile(self) -> int:
        """Pick up job changes that other processes wrote to the store.

        New jobs are added and armed, jobs whose stored revision is newer
        replace the in-memory copy, and jobs deleted from the store are
        dropped. Jobs with a firing in progress are skipped; the firing
        re-reads them itself. Returns the number of jobs that changed.

        Raises:
            StoreFailure: If the store cannot be read.
        """
        known = set(self._persisted)
        try:
            stored_jobs = await self._store.load_all()
        except StoreFailure:
            raise
        except Exception as e:
            raise StoreFailure(f"Failed to load jobs: {e}") from e

        changed: list[str] = []
        removed: list[str] = []
        async with self._table_lock:
            stored_ids = {job.id for job in stored_jobs}
            for stored in stored_jobs:
                if self._is_firing(stored.id):
                    continue
                current = self._jobs.get(stored.id)
                if current is not None and stored.revision <= current.revision:
                    continue
                self._jobs[stored.id] = stored
                self._job_locks.setdefault(stored.id, asyncio.Lock())
                self._persisted.add(stored.id)
                changed.append(stored.id)
            for job_id in known - stored_ids:
                if job_id not in self._jobs or self._is_firing(job_id):
                    continue
                self._forget(job_id)
                removed.append(job_id)

        for job_id in changed:
            if self._jobs[job_id].active:
                self._arm(job_id)
            else:
                self._disarm(job_id)
        if changed or removed:
            logger.info(
                "store_reconciled",
                extra={"jobs.changed": len(changed), "jobs.removed": len(removed)},
            )
        return len(changed) + len(removed)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def submit(
        self,
        payload: NotificationPayload,
        first_fire_time: datetime,
        recurrence: RecurrenceRule | None = None,
    ) -> str:
        """Schedule a notification and return its job id.

        One-shot jobs must be in the future. A recurring job whose first
        fire time has passed is accepted and fires immediately, once.

        Raises:
            PastScheduleTime: One-shot job not in the future.
            InvalidRecurrenceRule: Malformed rule.
            StoreFailure: The job is scheduled but could not be persisted.
        """
        if first_fire_time.tzinfo is None:
            raise ValueError("first_fire_time must be timezone-aware")
        first_fire_time = first_fire_time.astimezone(UTC)
        now = self._clock.now()

        if recurrence is None:
            if first_fire_time <= now:
                raise PastScheduleTime(
                    f"Schedule time {first_fire_time.isoformat()} is not in the future"
                )
        else:
            validate_rule(recurrence)
            if (
                recurrence.end_time is not None
                and recurrence.end_time < first_fire_time
            ):
                raise InvalidRecurrenceRule("end_time precedes the first fire time")
            # Fails fast for rules that would never advance
            next_fire_time(first_fire_time, recurrence)

        async with self._table_lock:
            job_id = _new_id()
            while job_id in self._jobs:
                job_id = _new_id()
            job = Job(
                id=job_id,
                payload=payload,
                first_fire_time=first_fire_time,
                recurrence=recurrence,
                next_fire_time=first_fire_time,
                created_time=now,
            )
            self._jobs[job_id] = job
            self._job_locks[job_id] = asyncio.Lock()

        logger.info(
            "job_submitted",
            extra={
                "job.id": job_id,
                "job.title": payload.title[:50],
                "job.first_fire_time": first_fire_time.isoformat(),
                "job.recurrence": recurrence.kind.value if recurrence else None,
            },
        )
        try:
            await self._persist(job)
        finally:
            self._arm(job_id)
        return job_id

    async def cancel(self, job_id: str) -> bool:
        """Stop a job for good. Returns False for unknown ids."""
        return await self._deactivate(job_id, "job_cancelled")

    async def pause(self, job_id: str) -> bool:
        """Stop a job's timer, keeping it resumable. Returns False for unknown ids."""
        return await self._deactivate(job_id, "job_paused")

    async def resume(self, job_id: str) -> bool:
        """Re-activate a paused or cancelled job.

        A recurring job whose next occurrence has passed is rescheduled from
        now. A one-shot job whose time has passed is done for good.

        Raises:
            CannotResumeCompletedJob: No occurrences remain.
            StoreFailure: The job is re-armed but could not be persisted.
        """
        job = self._jobs.get(job_id)
        if job is None:
            return False

        now = self._clock.now()
        if job.next_fire_time is None or job.next_fire_time <= now:
            if job.recurrence is None:
                raise CannotResumeCompletedJob(f"Job {job_id} has already fired")
            candidate = next_fire_time(now, job.recurrence)
            end_time = job.recurrence.end_time
            if end_time is not None and candidate > end_time:
                raise CannotResumeCompletedJob(f"Job {job_id} is past its end time")
            job.next_fire_time = candidate

        job.active = True
        logger.info(
            "job_resumed",
            extra={
                "job.id": job_id,
                "job.next_fire_time": job.next_fire_time.isoformat()
                if job.next_fire_time
                else None,
            },
        )
        try:
            await self._persist(job)
        finally:
            self._arm(job_id)
        return True

    def list_jobs(self) -> list[Job]:
        """Snapshot of all jobs, oldest first."""
        jobs = sorted(self._jobs.values(), key=lambda j: j.created_time)
        return [job.snapshot() for job in jobs]

    def get_job(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        return job.snapshot() if job else None

    def history(self, limit: int = 50) -> list[HistoryEntry]:
        """Most recent delivery attempts first."""
        entries = sorted(self._history, key=lambda e: e.fired_at, reverse=True)
        return entries[:limit]

    def get_stats(self) -> dict[str, Any]:
        jobs = list(self._jobs.values())
        recurring = sum(1 for j in jobs if j.is_recurring)
        return {
            "total": len(jobs),
            "active": sum(1 for j in jobs if j.active),
            "one_shot": len(jobs) - recurring,
            "recurring": recurring,
            "armed": len(self._timers),
        }

    async def dispatch_now(self, payload: NotificationPayload) -> DispatchResult:
        """Deliver immediately, bypassing scheduling. Recorded with no job id.

        Raises:
            StoreFailure: Delivery was attempted but its history entry could
                not be persisted; the outcome is on ``StoreFailure.result``.
        """
        fired_at = self._clock.now()
        result = await self._deliver(payload, job_id=None)
        entry = self._record(None, payload, fired_at, result)
        try:
            await self._store.append_history(entry)
        except Exception as e:
            logger.error(
                "history_write_failed",
                extra={"history.id": entry.id, "error.message": str(e)},
            )
            raise StoreFailure(
                f"Failed to record immediate delivery: {e}", result=result
            ) from e
        return result

    async def prune_inactive(self) -> int:
        """Delete inactive jobs from the table and the store.

        Jobs with a firing in progress are left for a later prune.

        Raises:
            StoreFailure: Jobs were removed in memory but not all deletes landed.
        """
        async with self._table_lock:
            pruned = [
                job_id
                for job_id, job in self._jobs.items()
                if not job.active and not self._job_locks[job_id].locked()
            ]
            for job_id in pruned:
                self._forget(job_id)

        failed: list[str] = []
        for job_id in pruned:
            try:
                await self._store.delete_job(job_id)
            except Exception as e:
                logger.error(
                    "job_delete_failed",
                    extra={"job.id": job_id, "error.message": str(e)},
                )
                failed.append(job_id)

        logger.info(
            "jobs_pruned", extra={"jobs.pruned": len(pruned), "jobs.failed": len(failed)}
        )
        if failed:
            raise StoreFailure(f"Failed to delete jobs: {', '.join(failed)}")
        return len(pruned)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _arm(self, job_id: str) -> None:
        if not self._arming:
            return
        job = self._jobs.get(job_id)
        if job is None or not job.active or job.next_fire_time is None:
            return

        existing = self._timers.get(job_id)
        if existing is not None:
            if existing.firing:
                # The running loop re-reads the job once its firing completes
                return
            if existing.task is not None:
                existing.task.cancel()

        timer = _Timer()
        timer.task = asyncio.create_task(
            self._run_timer(job_id, timer), name=f"nudge-job-{job_id}"
        )
        self._timers[job_id] = timer

    def _disarm(self, job_id: str) -> None:
        timer = self._timers.get(job_id)
        if timer is None or timer.firing:
            return
        del self._timers[job_id]
        if timer.task is not None:
            timer.task.cancel()

    def _is_firing(self, job_id: str) -> bool:
        lock = self._job_locks.get(job_id)
        return lock is not None and lock.locked()

    def _forget(self, job_id: str) -> None:
        """Drop a job from the table. A firing in progress finishes on its own."""
        self._disarm(job_id)
        self._jobs.pop(job_id, None)
        self._job_locks.pop(job_id, None)
        self._persisted.discard(job_id)

    async def _run_poll(self, interval: timedelta) -> None:
        while True:
            await self._clock.after(interval)
            try:
                await self.reconcile()
            except Exception as e:
                logger.error("store_poll_failed", extra={"error.message": str(e)})

    async def _run_timer(self, job_id: str, timer: _Timer) -> None:
        try:
            while True:
                if not self._arming:
                    return
                job = self._jobs.get(job_id)
                if job is None or not job.active or job.next_fire_time is None:
                    return
                delay = job.next_fire_time - self._clock.now()
                logger.debug(
                    "timer_armed",
                    extra={
                        "job.id": job_id,
                        "timer.delay_seconds": round(delay.total_seconds(), 3),
                    },
                )
                await self._clock.after(delay)
                timer.firing = True
                try:
                    await self._fire(job_id)
                finally:
                    timer.firing = False
        except Exception:
            logger.error("timer_loop_failed", extra={"job.id": job_id}, exc_info=True)
        finally:
            if self._timers.get(job_id) is timer:
                del self._timers[job_id]

    # ------------------------------------------------------------------
    # Firing protocol
    # ------------------------------------------------------------------

    async def _fire(self, job_id: str) -> None:
        lock = self._job_locks.get(job_id)
        if lock is None:
            return
        async with lock:
            job = await self._refresh(job_id)
            now = self._clock.now()
            if job is None or not job.active:
                # Cancelled after the timer was armed
                logger.debug("job_fire_skipped", extra={"job.id": job_id})
                return
            if job.next_fire_time is None or job.next_fire_time > now:
                # Rescheduled elsewhere; the timer loop waits for the new time
                return

            result = await self._deliver(job.payload, job_id=job_id)
            entry = self._record(job_id, job.payload, now, result)
            # Pick up a cancel or pause written elsewhere during the dispatch
            current = await self._refresh(job_id)

            try:
                await self._store.append_history(entry)
            except Exception as e:
                logger.error(
                    "history_write_failed",
                    extra={"job.id": job_id, "error.message": str(e)},
                )
            if current is None:
                return

            current.last_fire_time = now
            self._advance(current, now)
            current.revision += 1
            try:
                await self._store.upsert_job(current)
            except Exception as e:
                logger.error(
                    "job_write_failed",
                    extra={"job.id": job_id, "error.message": str(e)},
                )
            else:
                self._persisted.add(job_id)

    async def _refresh(self, job_id: str) -> Job | None:
        """Return the job, replaced by its stored copy if that was written elsewhere.

        Returns None when another process deleted the job from the store.
        The in-memory copy is used when the store cannot be read.
        """
        job = self._jobs.get(job_id)
        if job is None:
            return None
        try:
            stored = await self._store.load_job(job_id)
        except Exception as e:
            logger.warning(
                "job_refresh_failed", extra={"job.id": job_id, "error.message": str(e)}
            )
            return job

        if stored is None:
            if job_id not in self._persisted:
                # Never written, e.g. the submit's store write failed
                return job
            logger.info("job_removed_elsewhere", extra={"job.id": job_id})
            self._forget(job_id)
            return None
        if stored.revision <= job.revision:
            return job

        logger.info(
            "job_reloaded",
            extra={"job.id": job_id, "job.revision": stored.revision},
        )
        self._jobs[job_id] = stored
        return stored

    def _advance(self, job: Job, now: datetime) -> None:
        """Compute the job's next occurrence from ``now``, or retire it."""
        if job.recurrence is None:
            job.active = False
            job.next_fire_time = None
            logger.info("job_completed", extra={"job.id": job.id})
            return

        try:
            candidate = next_fire_time(now, job.recurrence)
        except InvalidRecurrenceRule as e:
            logger.error(
                "recurrence_failed", extra={"job.id": job.id, "error.message": str(e)}
            )
            job.active = False
            job.next_fire_time = None
            return

        end_time = job.recurrence.end_time
        if end_time is not None and candidate > end_time:
            job.active = False
            job.next_fire_time = None
            logger.info(
                "job_reached_end_time",
                extra={"job.id": job.id, "job.end_time": end_time.isoformat()},
            )
            return

        job.next_fire_time = candidate

    async def _deliver(
        self, payload: NotificationPayload, *, job_id: str | None
    ) -> DispatchResult:
        try:
            delivery_id = await self._dispatcher.deliver(
                payload.title,
                payload.message,
                payload.destination,
                payload.priority,
            )
        except Exception as e:
            logger.warning(
                "dispatch_failed",
                extra={
                    "job.id": job_id,
                    "notification.destination": describe_destination(
                        payload.destination
                    ),
                    "error.type": type(e).__name__,
                    "error.message": str(e),
                },
            )
            return DispatchResult(success=False, error=str(e) or type(e).__name__)

        logger.info(
            "notification_sent",
            extra={
                "job.id": job_id,
                "delivery.id": delivery_id,
                "notification.title": payload.title[:50],
            },
        )
        return DispatchResult(success=True, delivery_id=delivery_id)

    def _record(
        self,
        job_id: str | None,
        payload: NotificationPayload,
        fired_at: datetime,
        result: DispatchResult,
    ) -> HistoryEntry:
        entry = HistoryEntry(
            id=uuid.uuid4().hex[:12],
            job_id=job_id,
            fired_at=fired_at,
            success=result.success,
            destination_echo=payload.destination,
            error_detail=result.error,
            delivery_id=result.delivery_id,
        )
        self._history.append(entry)
        return entry

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _deactivate(self, job_id: str, event: str) -> bool:
        job = self._jobs.get(job_id)
        if job is None:
            return False
        self._disarm(job_id)
        job.active = False
        logger.info(event, extra={"job.id": job_id})
        await self._persist(job)
        return True

    async def _persist(self, job: Job) -> None:
        job.revision += 1
        try:
            await self._store.upsert_job(job)
        except Exception as e:
            logger.error(
                "job_write_failed", extra={"job.id": job.id, "error.message": str(e)}
            )
            if isinstance(e, StoreFailure):
                raise
            raise StoreFailure(
                f"Failed to persist job {job.id}: {e}", job_id=job.id
            ) from e
        self._persisted.add(job.id)
