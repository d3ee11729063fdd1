"""Builders for the server-to-client WebSocket events.

Every event is a flat JSON object with a ``type`` key; field names use the
camelCase spelling the browser client expects.
"""

from __future__ import annotations

from typing import Any

from lide.models import CliState


def connected(session_id: str, *, reconnected: bool, cwd: str) -> dict[str, Any]:
    return {"type": "connected", "sessionId": session_id, "reconnected": reconnected, "cwd": cwd}


def output(data: str) -> dict[str, Any]:
    """A raw terminal chunk, delivered in arrival order."""
    return {"type": "output", "data": data}


def output_buffer(data: str) -> dict[str, Any]:
    """The whole retained buffer, replayed once after (re)connecting."""
    return {"type": "output-buffer", "data": data}


def history(messages: list[dict]) -> dict[str, Any]:
    return {"type": "history", "messages": messages}


def state_change(state: CliState, tool: str | None) -> dict[str, Any]:
    return {"type": "state-change", "claudeState": state.value, "currentTool": tool}


def status(
    state: CliState,
    tool: str | None,
    *,
    last_activity_ms: int,
    is_stuck: bool,
    stuck_duration_ms: int,
) -> dict[str, Any]:
    """Snapshot of a session's liveness.

    Args:
        state: Current classified CLI state.
        tool: Name of the running tool, if any.
        last_activity_ms: Epoch milliseconds of the last process output.
        is_stuck: True while a response is pending and output has stalled.
        stuck_duration_ms: Time since the last output when stuck, else 0.
    """
    return {
        "type": "status",
        "claudeState": state.value,
        "currentTool": tool,
        "lastActivity": last_activity_ms,
        "isStuck": is_stuck,
        "stuckDuration": stuck_duration_ms,
    }


def error(message: str) -> dict[str, Any]:
    return {"type": "error", "error": message}


def pong() -> dict[str, Any]:
    return {"type": "pong"}


def done() -> dict[str, Any]:
    return {"type": "done"}
