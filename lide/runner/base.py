"""Protocol definitions for process handles and their event callbacks."""

from __future__ import annotations

from typing import Protocol


class ProcessEvents(Protocol):
    """Callbacks invoked by a process handle, dispatched by session id.

    Handles pass themselves back so the receiver can ignore events from a
    handle it has already replaced.
    """

    def on_data(self, session_id: str, handle: "ProcessHandle", text: str) -> None: ...

    def on_exit(self, session_id: str, handle: "ProcessHandle", exit_code: int | None) -> None: ...


class ProcessHandle(Protocol):
    """A terminal-backed process owned by exactly one session."""

    session_id: str
    pid: int

    @property
    def exited(self) -> bool: ...

    def start(self) -> None:
        """Begin delivering output to the events sink."""
        ...

    def write(self, text: str) -> None: ...

    def resize(self, cols: int, rows: int) -> None: ...

    def kill(self) -> None:
        """Terminate the process. Must not raise on an already-dead handle."""
        ...
