"""SQLModel tables, enums and shared payload models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel
from sqlmodel import Field, SQLModel


class CliState(str, Enum):
    """Visual state of the CLI inferred from its terminal output."""
    IDLE = "idle"
    THINKING = "thinking"
    RESPONDING = "responding"
    TOOL_RUNNING = "tool_running"
    WAITING_CONFIRM = "waiting_confirm"
    UNKNOWN = "unknown"


class SessionPhase(str, Enum):
    """Lifecycle phase of a session held by the registry."""
    CREATING = "creating"
    LIVE = "live"
    DETACHED = "detached"
    DEAD = "dead"


class ErrorDetail(BaseModel):
    """Structured error payload for API responses."""
    code: str
    message: str
    details: dict | list | None


class ErrorResponse(BaseModel):
    """Envelope for API error responses."""
    error: ErrorDetail


# --- Database Tables (SQLModel with table=True) ---


class SessionRecord(SQLModel, table=True):
    """Durable session metadata used to restore sessions after restarts."""
    __tablename__ = "sessions"

    session_id: str = Field(primary_key=True)
    project_path: str
    created_at: str
    last_activity_at: str = Field(index=True)
    is_active: bool = Field(default=True, index=True)
    multiplexer_name: Optional[str] = None
    cols: int = 120
    rows: int = 30


class MessageRecord(SQLModel, table=True):
    """One entry of a session's conversation history."""
    __tablename__ = "messages"

    id: str = Field(primary_key=True)
    session_id: str = Field(index=True)
    role: str  # "user" or "assistant"
    content: str
    created_at: str
    seq: int


class OutputRecord(SQLModel, table=True):
    """Last flushed copy of a session's terminal output buffer."""
    __tablename__ = "session_output"

    session_id: str = Field(primary_key=True)
    output: str = ""
    updated_at: str
