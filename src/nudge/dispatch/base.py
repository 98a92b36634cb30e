"""Dispatcher contract."""

from typing import Protocol

from nudge.scheduling.types import Priority


class Dispatcher(Protocol):
    """Delivers a rendered notification to a destination.

    Returns a delivery identifier on success. Any raised exception is a
    delivery failure; the scheduler records it and carries on.
    """

    async def deliver(
        self,
        title: str,
        message: str,
        destination: str,
        priority: Priority,
    ) -> str: ...
