"""FastAPI application entrypoint for the session server."""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager, suppress

import structlog
import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from lide.api.router import api_router, root_router
from lide.db import init_db
from lide.errors import SessionNotFound
from lide.log_config import configure_logging
from lide.maintenance import start_maintenance
from lide.middleware import (
    http_exception_handler,
    request_logging_middleware,
    session_not_found_handler,
    validation_exception_handler,
)
from lide.registry import SessionRegistry
from lide.runner import ProcessSupervisor, Tmux
from lide.settings import settings
from lide.store import SessionStore

configure_logging()
logger = structlog.get_logger(__name__)


def build_registry(store: SessionStore) -> SessionRegistry:
    """Wire the registry to tmux and the PTY supervisor from settings."""
    tmux = Tmux(
        prefix=settings.tmux_prefix(),
        timeout=settings.tmux_command_timeout_seconds(),
        disabled=settings.tmux_disabled(),
    )
    supervisor = ProcessSupervisor(tmux, shell=settings.shell())
    return SessionRegistry(store, supervisor)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    store = SessionStore()
    registry = build_registry(store)
    await registry.supervisor.tmux.find()
    app.state.store = store
    app.state.registry = registry
    app.state.started_at = time.monotonic()
    tasks = start_maintenance(registry)
    logger.info(
        "Session server started",
        host=settings.host(),
        port=settings.port(),
        data_dir=settings.data_dir(),
    )
    try:
        yield
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        await registry.shutdown()


app = FastAPI(lifespan=lifespan)

app.middleware("http")(request_logging_middleware)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(SessionNotFound, session_not_found_handler)

app.include_router(api_router)
app.include_router(root_router)


def run() -> None:
    """Entry point for the lide console script."""
    uvicorn.run(
        "lide.main:app",
        host=settings.host(),
        port=settings.port(),
        reload=False,
        log_config=None,
    )


if __name__ == "__main__":
    run()
