"""Shared runtime bootstrap for the server and CLI entrypoints."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from nudge.config.models import NudgeConfig
from nudge.db.engine import Database
from nudge.dispatch.base import Dispatcher
from nudge.dispatch.log import LogDispatcher
from nudge.dispatch.webhook import WebhookDestination, WebhookDispatcher
from nudge.scheduling.clock import Clock
from nudge.scheduling.scheduler import Scheduler
from nudge.store.base import Store
from nudge.store.files import FileStore
from nudge.store.memory import MemoryStore
from nudge.store.sql import SqlStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Runtime:
    """Composed runtime dependencies."""

    scheduler: Scheduler
    store: Store
    dispatcher: Dispatcher

    async def aclose(self) -> None:
        """Stop the scheduler and release store and dispatcher resources."""
        await self.scheduler.stop()
        if isinstance(self.dispatcher, WebhookDispatcher):
            await self.dispatcher.aclose()
        await self.store.close()


async def create_store(config: NudgeConfig) -> Store:
    """Build the configured store, ready for use."""
    store_config = config.store
    history_cap = config.scheduler.history_limit

    if store_config.backend == "memory":
        return MemoryStore(max_history=history_cap)

    if store_config.backend == "sqlite":
        if store_config.database_url:
            database = Database(database_url=store_config.database_url)
        else:
            database = Database(database_path=store_config.resolve_path())
        store = SqlStore(database, max_history=history_cap)
        await store.open()
        return store

    return FileStore(store_config.resolve_path(), max_history=history_cap)


def create_dispatcher(config: NudgeConfig) -> Dispatcher:
    """Build the configured dispatcher."""
    dispatcher_config = config.dispatcher
    if dispatcher_config.backend == "log":
        return LogDispatcher()

    destinations = {
        name: WebhookDestination(
            url=destination.url.get_secret_value(), format=destination.format
        )
        for name, destination in dispatcher_config.destinations.items()
        if destination.url is not None
    }
    return WebhookDispatcher(destinations, timeout=dispatcher_config.timeout)


def _poll_interval(config: NudgeConfig) -> timedelta | None:
    """How often the scheduler re-reads a store other processes may edit."""
    seconds = config.scheduler.poll_interval
    if config.store.backend == "memory" or seconds <= 0:
        return None
    return timedelta(seconds=seconds)


async def bootstrap_runtime(
    config: NudgeConfig,
    *,
    clock: Clock | None = None,
    recover: bool = True,
) -> Runtime:
    """Create the store, dispatcher and scheduler, and start the scheduler.

    Raises:
        StoreFailure: If persisted state cannot be loaded.
    """
    store = await create_store(config)
    dispatcher = create_dispatcher(config)
    scheduler = Scheduler(
        store,
        dispatcher,
        clock=clock,
        history_limit=config.scheduler.history_limit,
        poll_interval=_poll_interval(config),
    )
    logger.debug(
        "runtime_created",
        extra={
            "store.backend": config.store.backend,
            "dispatcher.backend": config.dispatcher.backend,
        },
    )
    runtime = Runtime(scheduler=scheduler, store=store, dispatcher=dispatcher)
    try:
        await scheduler.start(recover=recover)
    except Exception:
        await runtime.aclose()
        raise
    return runtime
