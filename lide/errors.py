"""Domain exceptions raised by the supervisor and session registry."""

from __future__ import annotations


class LideError(Exception):
    """Base class for session server errors."""


class MultiplexerError(LideError):
    """A tmux control command failed or timed out."""


class SpawnError(LideError):
    """No process could be spawned or attached for a session."""


class SessionNotFound(LideError):
    """The requested session is not registered."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id
