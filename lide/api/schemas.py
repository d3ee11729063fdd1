"""Pydantic request/response models for API endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field

from lide.models import CliState, SessionPhase

if TYPE_CHECKING:
    from lide.models import SessionRecord
    from lide.registry import LiveSession


# --- WebSocket Models ---


class ClientMessage(BaseModel):
    """A message sent by the client over the chat socket.

    Unknown keys are ignored; ``type`` selects the operation.
    """

    model_config = ConfigDict(extra="ignore")

    type: str = Field(..., min_length=1)
    data: str | None = None
    cols: int | None = Field(default=None, gt=0)
    rows: int | None = Field(default=None, gt=0)


# --- Response Models ---


class SessionResponse(BaseModel):
    """Persisted session metadata returned by the list endpoint."""

    session_id: str
    project_path: str
    created_at: str
    last_activity_at: str
    is_active: bool
    multiplexer_name: str | None
    cols: int
    rows: int
    is_live: bool

    @classmethod
    def from_record(cls, record: SessionRecord, *, is_live: bool) -> SessionResponse:
        return cls(
            session_id=record.session_id,
            project_path=record.project_path,
            created_at=record.created_at,
            last_activity_at=record.last_activity_at,
            is_active=record.is_active,
            multiplexer_name=record.multiplexer_name,
            cols=record.cols,
            rows=record.rows,
            is_live=is_live,
        )


class SessionStatusResponse(BaseModel):
    """Live status of a session held by the registry."""

    session_id: str
    project_path: str
    phase: SessionPhase
    state: CliState
    current_tool: str | None
    is_responding: bool
    has_client: bool
    multiplexer_name: str | None
    cols: int
    rows: int
    output_length: int
    message_count: int
    pending_timers: int
    is_stuck: bool
    stuck_duration_ms: int
    last_activity_ms: int

    @classmethod
    def from_live(
        cls, session: LiveSession, *, status: dict, pending_timers: int
    ) -> SessionStatusResponse:
        return cls(
            session_id=session.session_id,
            project_path=session.project_path,
            phase=session.phase,
            state=session.state,
            current_tool=session.current_tool,
            is_responding=session.is_responding,
            has_client=session.channel is not None,
            multiplexer_name=session.multiplexer_name,
            cols=session.cols,
            rows=session.rows,
            output_length=len(session.output),
            message_count=len(session.messages),
            pending_timers=pending_timers,
            is_stuck=status["isStuck"],
            stuck_duration_ms=status["stuckDuration"],
            last_activity_ms=status["lastActivity"],
        )


class OutputResponse(BaseModel):
    """Terminal output buffer of a session."""

    session_id: str
    output: str
    source: Literal["memory", "database"]


class SaveOutputResponse(BaseModel):
    saved: bool = True


class KillResponse(BaseModel):
    killed: bool = True


class TmuxCheckResponse(BaseModel):
    """Whether the tmux session backing a session id exists."""

    session_id: str
    tmux_name: str
    exists: bool


class HealthResponse(BaseModel):
    """Health check response."""

    ok: bool
    status: str
    version: str
    active_sessions: int
    total_sessions: int
    uptime: float
