"""FastAPI application for the Nudge server."""

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from nudge.scheduling.errors import (
    CannotResumeCompletedJob,
    InvalidRecurrenceRule,
    PastScheduleTime,
    StoreFailure,
)
from nudge.server.routes import health, notifications

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from nudge.config import NudgeConfig
    from nudge.runtime import Runtime
    from nudge.scheduling.clock import Clock

logger = logging.getLogger(__name__)


async def _bad_request(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def _conflict(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


async def _store_unavailable(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, StoreFailure)
    content: dict[str, object] = {"detail": str(exc)}
    if exc.job_id is not None:
        content["job_id"] = exc.job_id
    if exc.result is not None:
        content["result"] = exc.result.to_dict()
    return JSONResponse(status_code=503, content=content)


class NudgeServer:
    """Main server application.

    Owns the runtime (store, dispatcher, scheduler) for the lifetime of the
    FastAPI app: the scheduler is started, and overdue jobs recovered, before
    the first request is served.
    """

    def __init__(
        self,
        config: "NudgeConfig",
        *,
        clock: "Clock | None" = None,
    ):
        self._config = config
        self._clock = clock
        self._runtime: "Runtime | None" = None
        self._app = self._create_app()

    @property
    def app(self) -> FastAPI:
        """Get the FastAPI application."""
        return self._app

    @property
    def runtime(self) -> "Runtime | None":
        return self._runtime

    def _create_app(self) -> FastAPI:
        """Create and configure the FastAPI app."""

        @asynccontextmanager
        async def lifespan(app: FastAPI) -> "AsyncIterator[None]":
            from nudge.runtime import bootstrap_runtime

            # Startup
            logger.info("server_starting")
            self._runtime = await bootstrap_runtime(self._config, clock=self._clock)
            app.state.scheduler = self._runtime.scheduler

            yield

            # Shutdown
            logger.info("server_stopping")
            await self._runtime.aclose()
            app.state.scheduler = None

        app = FastAPI(
            title="Nudge",
            description="Scheduled notification delivery API",
            version="0.1.0",
            lifespan=lifespan,
        )

        app.state.server = self
        app.state.config = self._config
        app.state.scheduler = None

        app.add_exception_handler(PastScheduleTime, _bad_request)
        app.add_exception_handler(InvalidRecurrenceRule, _bad_request)
        app.add_exception_handler(CannotResumeCompletedJob, _conflict)
        app.add_exception_handler(StoreFailure, _store_unavailable)

        app.include_router(health.router, tags=["health"])
        app.include_router(notifications.router, tags=["notifications"])

        return app


def create_app(config: "NudgeConfig", *, clock: "Clock | None" = None) -> FastAPI:
    """Create the FastAPI application."""
    server = NudgeServer(config, clock=clock)
    return server.app
