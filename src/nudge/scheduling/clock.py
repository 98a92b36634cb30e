"""Clock abstraction for the scheduler.

The scheduler never calls ``datetime.now`` or ``asyncio.sleep`` directly.
``SystemClock`` is used in production; ``ManualClock`` lets tests move
virtual time forward without sleeping.
"""

import asyncio
import heapq
import itertools
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Time source and cancellable suspension primitive."""

    def now(self) -> datetime: ...

    async def after(self, delay: timedelta) -> None:
        """Suspend for ``delay``. Returns promptly when ``delay`` is not positive."""
        ...


class SystemClock:
    """Wall-clock time backed by asyncio sleeps."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    async def after(self, delay: timedelta) -> None:
        await asyncio.sleep(max(0.0, delay.total_seconds()))


class ManualClock:
    """Virtual clock for tests.

    Time only moves when ``advance`` is awaited. Waiters whose deadline is
    reached are released in deadline order, and the event loop is given a
    chance to run whatever they wake up (including re-arming) before the
    clock moves on.

    Example:
        clock = ManualClock(datetime(2026, 1, 1, tzinfo=UTC))
        scheduler = Scheduler(store, dispatcher, clock=clock)
        await scheduler.start()
        await clock.advance(timedelta(days=1))
    """

    def __init__(self, start: datetime | None = None, settle_steps: int = 50):
        self._now = start or datetime.now(UTC)
        self._settle_steps = settle_steps
        self._waiters: list[tuple[datetime, int, asyncio.Future[None]]] = []
        self._seq = itertools.count()

    def now(self) -> datetime:
        return self._now

    @property
    def pending(self) -> int:
        """Number of waiters still suspended."""
        return sum(1 for _, _, fut in self._waiters if not fut.done())

    async def after(self, delay: timedelta) -> None:
        if delay <= timedelta(0):
            await asyncio.sleep(0)
            return
        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        heapq.heappush(self._waiters, (self._now + delay, next(self._seq), fut))
        await fut

    async def advance(self, delta: timedelta) -> None:
        """Move time forward by ``delta``, releasing every deadline reached."""
        await self.advance_to(self._now + delta)

    async def advance_to(self, target: datetime) -> None:
        await self.settle()
        while True:
            while self._waiters and self._waiters[0][2].done():
                heapq.heappop(self._waiters)
            if not self._waiters or self._waiters[0][0] > target:
                break
            deadline, _, fut = heapq.heappop(self._waiters)
            self._now = max(self._now, deadline)
            fut.set_result(None)
            await self.settle()
        self._now = max(self._now, target)
        await self.settle()

    async def settle(self) -> None:
        """Yield to the event loop so woken tasks can run to their next wait."""
        for _ in range(self._settle_steps):
            await asyncio.sleep(0)
