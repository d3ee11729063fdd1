"""Spawn, attach, probe and kill the terminal process behind a session."""

from __future__ import annotations

import os
from dataclasses import dataclass

import structlog

from lide.errors import MultiplexerError, SpawnError
from lide.runner.base import ProcessEvents, ProcessHandle
from lide.runner.pty import PtyProcess
from lide.runner.tmux import Tmux

logger = structlog.get_logger(__name__)

EXTRA_PATH_DIRS = ("/usr/local/bin", "/opt/homebrew/bin")


@dataclass
class SpawnResult:
    handle: ProcessHandle
    attached_existing: bool
    multiplexer_name: str | None


def _child_env() -> dict[str, str]:
    env = dict(os.environ)
    env["TERM"] = "xterm-256color"
    env["COLORTERM"] = "truecolor"
    # tmux refuses to attach from inside another tmux client.
    env.pop("TMUX", None)
    parts = [p for p in env.get("PATH", "").split(os.pathsep) if p]
    for extra in EXTRA_PATH_DIRS:
        if extra not in parts:
            parts.append(extra)
    env["PATH"] = os.pathsep.join(parts)
    return env


class ProcessSupervisor:
    """Owns process creation for sessions.

    When tmux is available every session lives inside a named tmux session,
    and the PTY we hold is only an attached client; killing it leaves the
    tmux session (and the CLI inside it) running for a later reattach.
    Without tmux the shell is spawned directly and dies with its handle.
    """

    def __init__(self, tmux: Tmux, *, shell: str = "/bin/bash") -> None:
        self.tmux = tmux
        self.shell = shell

    async def spawn_or_attach(
        self,
        session_id: str,
        project_path: str,
        events: ProcessEvents,
        *,
        cols: int = 120,
        rows: int = 30,
    ) -> SpawnResult:
        """Attach to the session's tmux session, creating it if needed.

        Args:
            session_id: Session identifier; the tmux name is derived from it.
            project_path: Working directory for a new process.
            events: Sink for output and exit callbacks.
            cols: Initial terminal width.
            rows: Initial terminal height.

        Raises:
            SpawnError: Neither tmux nor the direct fallback produced a process.
        """
        env = _child_env()
        created: str | None = None
        try:
            if await self.tmux.available():
                name = self.tmux.name_for(session_id)
                attached_existing = await self.tmux.has_session(name)
                if not attached_existing:
                    await self.tmux.new_session(name, project_path)
                    created = name
                handle = PtyProcess(
                    session_id,
                    self.tmux.attach_argv(name),
                    cwd=project_path,
                    env=env,
                    events=events,
                    cols=cols,
                    rows=rows,
                )
                logger.info(
                    "Attached PTY to tmux session",
                    session_id=session_id,
                    tmux_name=name,
                    attached_existing=attached_existing,
                )
                return SpawnResult(handle, attached_existing, name)

            handle = PtyProcess(
                session_id,
                [self.shell],
                cwd=project_path,
                env=env,
                events=events,
                cols=cols,
                rows=rows,
            )
            logger.info("Spawned shell without tmux", session_id=session_id, shell=self.shell)
            return SpawnResult(handle, False, None)
        except (OSError, MultiplexerError) as exc:
            logger.error("Failed to spawn session process", session_id=session_id, error=str(exc))
            if created is not None:
                # Only the session this call created is removed.
                await self.tmux.kill_session(created)
            raise SpawnError(f"Failed to spawn process: {exc}") from exc

    def is_alive(self, handle: ProcessHandle | None) -> bool:
        """Signal-zero probe that never reads output."""
        if handle is None or handle.exited:
            return False
        probe = getattr(handle, "is_alive", None)
        if probe is not None:
            return probe()
        try:
            os.kill(handle.pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    def kill(self, handle: ProcessHandle | None) -> None:
        if handle is None:
            return
        try:
            handle.kill()
        except Exception:
            logger.warning("Failed to kill process", session_id=handle.session_id, exc_info=True)

    async def multiplexer_name_for(self, session_id: str) -> str | None:
        """Return the tmux name a spawn would use, or None without tmux."""
        if not await self.tmux.available():
            return None
        return self.tmux.name_for(session_id)

    async def kill_multiplexer(self, session_id: str) -> bool:
        return await self.tmux.kill_session(self.tmux.name_for(session_id))

    async def multiplexer_exists(self, session_id: str) -> bool:
        return await self.tmux.has_session(self.tmux.name_for(session_id))
