"""Side-channel session endpoints used outside the chat socket."""

from __future__ import annotations

from contextlib import contextmanager

import structlog
from fastapi import APIRouter, Depends

from lide.api.deps import get_registry, get_store
from lide.api.errors import raise_http_error
from lide.api.schemas import (
    KillResponse,
    OutputResponse,
    SaveOutputResponse,
    SessionResponse,
    SessionStatusResponse,
    TmuxCheckResponse,
)

router = APIRouter(tags=["sessions"])
logger = structlog.get_logger(__name__)


@contextmanager
def _session_logging_context(session_id: str):
    structlog.contextvars.bind_contextvars(session_id=session_id)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars("session_id")


@router.get("/sessions", response_model=list[SessionResponse])
async def list_sessions(
    registry=Depends(get_registry), store=Depends(get_store)
) -> list[SessionResponse]:
    """List active persisted sessions, flagging the ones held in memory."""
    records = store.list_active_sessions()
    logger.info("Listed sessions", count=len(records))
    return [
        SessionResponse.from_record(record, is_live=registry.is_live(record.session_id))
        for record in records
    ]


@router.get("/sessions/{session_id}", response_model=SessionStatusResponse)
async def get_session(session_id: str, registry=Depends(get_registry)) -> SessionStatusResponse:
    """Fetch the live status of a session."""
    with _session_logging_context(session_id):
        session = registry.get(session_id)
        if session is None:
            raise_http_error("NOT_FOUND", "Session not found", 404, {"session_id": session_id})
        return SessionStatusResponse.from_live(
            session,
            status=registry.status(session_id),
            pending_timers=registry.timers(session_id),
        )


@router.get("/sessions/{session_id}/output", response_model=OutputResponse)
async def get_output(session_id: str, registry=Depends(get_registry)) -> OutputResponse:
    """Return the output buffer from memory, falling back to the last flush."""
    with _session_logging_context(session_id):
        output, source = registry.get_output(session_id)
        logger.info("Fetched output", source=source, length=len(output))
        return OutputResponse(session_id=session_id, output=output, source=source)


@router.post("/sessions/{session_id}/save-output", response_model=SaveOutputResponse)
async def save_output(session_id: str, registry=Depends(get_registry)) -> SaveOutputResponse:
    """Flush the output buffer now. Always acknowledges, even for unknown ids."""
    with _session_logging_context(session_id):
        if registry.save_output(session_id):
            logger.info("Saved output on request")
        return SaveOutputResponse()


@router.delete("/sessions/{session_id}", response_model=KillResponse)
async def kill_session(session_id: str, registry=Depends(get_registry)) -> KillResponse:
    """Kill the process and tmux session and forget the session entirely."""
    with _session_logging_context(session_id):
        await registry.kill(session_id, remove=True, kill_multiplexer=True)
        return KillResponse()


@router.get("/sessions/{session_id}/tmux", response_model=TmuxCheckResponse)
async def tmux_check(session_id: str, registry=Depends(get_registry)) -> TmuxCheckResponse:
    """Report whether the tmux session for this id is still running."""
    supervisor = registry.supervisor
    return TmuxCheckResponse(
        session_id=session_id,
        tmux_name=supervisor.tmux.name_for(session_id),
        exists=await supervisor.multiplexer_exists(session_id),
    )
