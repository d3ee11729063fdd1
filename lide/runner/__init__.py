"""Process supervision: tmux-backed or direct PTY processes per session."""

from __future__ import annotations

from lide.runner.base import ProcessEvents, ProcessHandle
from lide.runner.supervisor import ProcessSupervisor, SpawnResult
from lide.runner.tmux import Tmux, session_name

__all__ = [
    "ProcessEvents",
    "ProcessHandle",
    "ProcessSupervisor",
    "SpawnResult",
    "Tmux",
    "session_name",
]
