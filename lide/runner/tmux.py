"""Discovery and control of the tmux binary used to keep sessions alive."""

from __future__ import annotations

import asyncio
import re

import structlog

from lide.errors import MultiplexerError

logger = structlog.get_logger(__name__)

# Checked in order; the first one that answers ``-V`` wins.
TMUX_CANDIDATES = (
    "tmux",
    "/opt/homebrew/bin/tmux",
    "/usr/local/bin/tmux",
    "/usr/bin/tmux",
)

MAX_NAME_ID_LENGTH = 40

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9]")


def session_name(session_id: str, prefix: str = "lide_chat_") -> str:
    """Derive a deterministic tmux-safe session name from a session id."""
    return prefix + _UNSAFE_NAME_CHARS.sub("_", session_id)[:MAX_NAME_ID_LENGTH]


async def _run(*argv: str, timeout: float) -> int:
    """Run a command, discarding output, and return its exit status.

    Raises:
        FileNotFoundError: The binary does not exist.
        MultiplexerError: The command did not finish within ``timeout``.
    """
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
    )
    try:
        return await asyncio.wait_for(proc.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise MultiplexerError(f"{' '.join(argv)} timed out after {timeout}s") from None


class Tmux:
    """Thin async wrapper over the tmux command line.

    The binary is located lazily on first use and cached for the lifetime of
    the instance. When ``disabled`` is set, tmux is reported unavailable and
    callers fall back to spawning processes directly.
    """

    def __init__(
        self,
        *,
        prefix: str = "lide_chat_",
        candidates: tuple[str, ...] = TMUX_CANDIDATES,
        timeout: float = 5.0,
        disabled: bool = False,
    ) -> None:
        self.prefix = prefix
        self.timeout = timeout
        self._candidates = candidates
        self._disabled = disabled
        self._path: str | None = None
        self._probed = False

    @property
    def path(self) -> str | None:
        return self._path

    async def find(self) -> str | None:
        """Return the first working tmux binary, probing candidates once."""
        if self._probed:
            return self._path
        self._probed = True
        if self._disabled:
            logger.info("tmux disabled by configuration; sessions will not persist")
            return None
        for candidate in self._candidates:
            try:
                status = await _run(candidate, "-V", timeout=self.timeout)
            except (OSError, MultiplexerError):
                continue
            if status == 0:
                self._path = candidate
                break
        if self._path:
            logger.info("tmux available; sessions will persist", path=self._path)
        else:
            logger.warning("tmux not found; sessions will not persist across reconnects")
        return self._path

    async def available(self) -> bool:
        return await self.find() is not None

    def name_for(self, session_id: str) -> str:
        return session_name(session_id, self.prefix)

    async def has_session(self, name: str) -> bool:
        """Return True if a tmux session with this exact name exists."""
        path = await self.find()
        if not path:
            return False
        try:
            status = await _run(path, "has-session", "-t", f"={name}", timeout=self.timeout)
        except (OSError, MultiplexerError):
            logger.warning("tmux has-session failed", tmux_name=name, exc_info=True)
            return False
        exists = status == 0
        logger.debug("tmux session probe", tmux_name=name, exists=exists)
        return exists

    async def new_session(self, name: str, cwd: str) -> None:
        """Create a detached tmux session rooted at ``cwd``.

        Raises:
            MultiplexerError: tmux is unavailable or refused to create it.
        """
        path = await self.find()
        if not path:
            raise MultiplexerError("tmux not available")
        try:
            status = await _run(
                path, "new-session", "-d", "-s", name, "-c", cwd, timeout=self.timeout
            )
        except OSError as exc:
            raise MultiplexerError(f"failed to run tmux: {exc}") from exc
        if status != 0:
            raise MultiplexerError(f"tmux new-session exited with status {status}")
        logger.info("Created tmux session", tmux_name=name, cwd=cwd)

    async def kill_session(self, name: str) -> bool:
        """Kill a tmux session. Missing sessions are not an error."""
        path = await self.find()
        if not path:
            return False
        try:
            status = await _run(path, "kill-session", "-t", f"={name}", timeout=self.timeout)
        except (OSError, MultiplexerError):
            logger.warning("tmux kill-session failed", tmux_name=name, exc_info=True)
            return False
        if status == 0:
            logger.info("Killed tmux session", tmux_name=name)
        return status == 0

    def attach_argv(self, name: str) -> list[str]:
        if not self._path:
            raise MultiplexerError("tmux not available")
        return [self._path, "attach-session", "-t", f"={name}"]
