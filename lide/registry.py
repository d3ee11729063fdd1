"""In-memory registry of live sessions.

The registry is the single owner of every :class:`LiveSession`: process
handles, the bound client channel, output buffers and backoff campaigns.
Process callbacks, socket messages and the sweepers all mutate sessions
through it, on the event loop thread.
"""

from __future__ import annotations

import asyncio
import random
import string
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import structlog

from lide.api import emit
from lide.backoff import RETRY_STATES, BackoffScheduler
from lide.errors import SessionNotFound, SpawnError
from lide.models import CliState, SessionPhase
from lide.parsing import LineSplitter, classify, ends_turn, parse_json_line, parse_stream_event
from lide.runner.base import ProcessHandle
from lide.runner.supervisor import ProcessSupervisor
from lide.settings import settings
from lide.store import SessionStore

logger = structlog.get_logger(__name__)

INTERRUPT = "\x03"
RESTART_DELAY_SECONDS = 0.1

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_session_id() -> str:
    """Return a new id of the form ``chat_<epoch ms>_<7 base36 chars>``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=7))
    return f"chat_{int(time.time() * 1000)}_{suffix}"


class ClientChannel:
    """Ordered outbound event queue for one client connection.

    Process callbacks are synchronous, so they enqueue here and a single
    pump task drains the queue onto the socket in order.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self.closed = False

    def send(self, event: dict[str, Any]) -> None:
        if self.closed:
            return
        self._queue.put_nowait(event)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(None)

    async def pump(self, sender: Callable[[dict[str, Any]], Awaitable[None]]) -> None:
        """Forward queued events to ``sender`` until the channel is closed."""
        while True:
            event = await self._queue.get()
            if event is None:
                return
            await sender(event)


@dataclass
class LiveSession:
    session_id: str
    project_path: str
    handle: ProcessHandle | None = None
    channel: ClientChannel | None = None
    output: str = ""
    messages: list[dict] = field(default_factory=list)
    state: CliState = CliState.IDLE
    current_tool: str | None = None
    phase: SessionPhase = SessionPhase.CREATING
    is_responding: bool = False
    last_activity: float = field(default_factory=time.time)
    last_output_time: float = field(default_factory=time.time)
    last_state_change: float = field(default_factory=time.time)
    multiplexer_name: str | None = None
    cols: int = 120
    rows: int = 30
    line_buffer: LineSplitter = field(default_factory=LineSplitter)
    reply_parts: list[str] = field(default_factory=list)
    cli_timer: asyncio.TimerHandle | None = None


class SessionRegistry:
    """Find-or-create, reconnect and tear down sessions.

    Args:
        store: Durable store for metadata, output and history.
        supervisor: Spawns and probes session processes.
        cli_command: Command line typed into a fresh shell to launch the CLI.
        cli_start_delay: Seconds between spawn and typing ``cli_command``.
        output_max: Maximum retained output characters per session.
        backoff_delays: Paste confirmation delays in seconds.
        stuck_threshold: Seconds without output before a responding session
            is reported as possibly stuck.
        session_timeout: Seconds of inactivity before the idle sweep reaps
            a session.
        hard_delete_idle: Remove idle sessions from the store instead of
            marking them inactive.
    """

    def __init__(
        self,
        store: SessionStore,
        supervisor: ProcessSupervisor,
        *,
        cli_command: str | None = None,
        cli_start_delay: float | None = None,
        output_max: int | None = None,
        backoff_delays: tuple[float, ...] | None = None,
        stuck_threshold: float | None = None,
        session_timeout: float | None = None,
        hard_delete_idle: bool | None = None,
    ) -> None:
        self.store = store
        self.supervisor = supervisor
        self.cli_command = cli_command if cli_command is not None else settings.cli_command()
        self.cli_start_delay = (
            cli_start_delay if cli_start_delay is not None else settings.cli_start_delay_seconds()
        )
        self.output_max = output_max if output_max is not None else settings.output_buffer_max()
        self.stuck_threshold = (
            stuck_threshold if stuck_threshold is not None else settings.stuck_threshold_seconds()
        )
        self.session_timeout = (
            session_timeout if session_timeout is not None else settings.session_timeout_seconds()
        )
        self.hard_delete_idle = (
            hard_delete_idle if hard_delete_idle is not None else settings.idle_hard_delete()
        )
        self.scheduler = BackoffScheduler(
            self._state_of,
            self.send_enter,
            backoff_delays if backoff_delays is not None else settings.paste_confirm_backoff(),
        )
        self._sessions: dict[str, LiveSession] = {}
        self._dirty: set[str] = set()
        self._locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, session_id: str) -> LiveSession | None:
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> LiveSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def list_live(self) -> list[LiveSession]:
        return list(self._sessions.values())

    def is_live(self, session_id: str) -> bool:
        return session_id in self._sessions

    def is_dirty(self, session_id: str) -> bool:
        return session_id in self._dirty

    def timers(self, session_id: str) -> int:
        """Number of outstanding paste confirmation timers for a session."""
        return self.scheduler.pending(session_id)

    def _state_of(self, session_id: str) -> CliState | None:
        session = self._sessions.get(session_id)
        return session.state if session else None

    def _lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    # ------------------------------------------------------------------
    # Connect / detach / kill
    # ------------------------------------------------------------------

    async def connect(
        self,
        session_id: str | None,
        project_path: str,
        channel: ClientChannel,
        *,
        start_cli: bool = True,
        cols: int | None = None,
        rows: int | None = None,
    ) -> LiveSession:
        """Bind a client channel to a session, restoring or creating it.

        Resolution order for a requested id: a live session whose process is
        still alive is re-attached without spawning; a live session whose
        process died is respawned with its buffer and history; a persisted
        session is restored from the store and respawned; anything else is
        created fresh.

        Raises:
            SpawnError: No process could be spawned or attached.
        """
        target_id = session_id or generate_session_id()
        async with self._lock(target_id):
            existing = self._sessions.get(target_id)
            if existing is not None:
                if self.supervisor.is_alive(existing.handle):
                    return self._reattach(existing, channel)
                logger.info("Live session has a dead process; respawning", session_id=target_id)
                self._drop(existing)
                return await self._spawn(
                    target_id,
                    existing.project_path,
                    channel,
                    start_cli=start_cli,
                    cols=cols or existing.cols,
                    rows=rows or existing.rows,
                    output=existing.output,
                    messages=existing.messages,
                    restoring=True,
                )

            record = self.store.find_session(target_id) if session_id else None
            if record is not None:
                logger.info("Restoring persisted session", session_id=target_id)
                output = self.store.load_output(target_id)
                messages = self.store.load_messages(target_id)
                self.store.touch_session(target_id)
                return await self._spawn(
                    target_id,
                    record.project_path,
                    channel,
                    start_cli=start_cli,
                    cols=cols or record.cols,
                    rows=rows or record.rows,
                    output=output,
                    messages=messages,
                    restoring=True,
                )

            logger.info("Creating session", session_id=target_id, project_path=project_path)
            self.store.create_session(
                target_id,
                project_path,
                await self.supervisor.multiplexer_name_for(target_id),
                cols=cols or 120,
                rows=rows or 30,
            )
            try:
                return await self._spawn(
                    target_id,
                    project_path,
                    channel,
                    start_cli=start_cli,
                    cols=cols or 120,
                    rows=rows or 30,
                )
            except SpawnError:
                self.store.remove_session(target_id)
                raise

    def _reattach(self, session: LiveSession, channel: ClientChannel) -> LiveSession:
        self._bind(session, channel)
        channel.send(emit.connected(session.session_id, reconnected=True, cwd=session.project_path))
        if session.output:
            channel.send(emit.output_buffer(session.output))
        self.store.touch_session(session.session_id)
        logger.info("Reattached client to live session", session_id=session.session_id)
        return session

    async def _spawn(
        self,
        session_id: str,
        project_path: str,
        channel: ClientChannel,
        *,
        start_cli: bool,
        cols: int,
        rows: int,
        output: str = "",
        messages: list[dict] | None = None,
        restoring: bool = False,
    ) -> LiveSession:
        session = LiveSession(
            session_id=session_id,
            project_path=project_path,
            output=output,
            messages=list(messages or []),
            cols=cols,
            rows=rows,
        )
        result = await self.supervisor.spawn_or_attach(
            session_id, project_path, self, cols=cols, rows=rows
        )
        session.handle = result.handle
        session.multiplexer_name = result.multiplexer_name
        self._sessions[session_id] = session
        self._bind(session, channel)

        reconnected = result.attached_existing if restoring else False
        channel.send(emit.connected(session_id, reconnected=reconnected, cwd=project_path))
        if session.output:
            channel.send(emit.output_buffer(session.output))

        # Output flows only once the session is registered and announced.
        result.handle.start()
        if start_cli and not result.attached_existing:
            self._schedule_cli(session, self.cli_start_delay)
        logger.info(
            "Session live",
            session_id=session_id,
            attached_existing=result.attached_existing,
            tmux_name=result.multiplexer_name,
        )
        return session

    def _bind(self, session: LiveSession, channel: ClientChannel) -> None:
        previous = session.channel
        if previous is not None and previous is not channel:
            # One socket per session: the newest connection wins.
            previous.close()
        session.channel = channel
        session.phase = SessionPhase.LIVE
        session.last_activity = time.time()

    def detach(self, session_id: str, channel: ClientChannel) -> None:
        """Unbind a closed channel; the process keeps running."""
        session = self._sessions.get(session_id)
        if session is None or session.channel is not channel:
            return
        session.channel = None
        session.phase = SessionPhase.DETACHED
        self._flush(session)
        logger.info("Client detached", session_id=session_id)

    async def kill(
        self, session_id: str, *, remove: bool = True, kill_multiplexer: bool = True
    ) -> bool:
        """Tear a session down. Safe to call for unknown or already-dead ids.

        Returns:
            True if a live session was removed from the registry.
        """
        session = self._sessions.get(session_id)
        if session is not None:
            self._teardown(session, flush=not remove)
        if kill_multiplexer:
            await self.supervisor.kill_multiplexer(session_id)
        if remove:
            self.store.remove_session(session_id)
        else:
            self.store.mark_session_inactive(session_id)
        self._locks.pop(session_id, None)
        logger.info("Session killed", session_id=session_id, removed=remove)
        return session is not None

    def _teardown(self, session: LiveSession, *, flush: bool = True) -> None:
        if flush:
            self._flush(session)
        self._drop(session)

    def _drop(self, session: LiveSession) -> None:
        self.scheduler.cancel(session.session_id)
        if session.cli_timer is not None:
            session.cli_timer.cancel()
            session.cli_timer = None
        self.supervisor.kill(session.handle)
        session.phase = SessionPhase.DEAD
        if self._sessions.get(session.session_id) is session:
            del self._sessions[session.session_id]
        self._dirty.discard(session.session_id)

    # ------------------------------------------------------------------
    # Process callbacks
    # ------------------------------------------------------------------

    def on_data(self, session_id: str, handle: ProcessHandle, text: str) -> None:
        session = self._sessions.get(session_id)
        if session is None or session.handle is not handle:
            return
        now = time.time()
        session.last_output_time = now
        session.last_activity = now
        session.output += text
        if len(session.output) > self.output_max:
            session.output = session.output[-self.output_max:]
        self._dirty.add(session_id)
        self._send(session, emit.output(text))

        result = classify(session.output)
        self._set_state(session, result.state, result.tool)

        for line in session.line_buffer.feed(text):
            payload = parse_json_line(line)
            if payload is None:
                continue
            event = parse_stream_event(payload)
            if event is not None:
                if event["type"] == "text":
                    session.reply_parts.append(event["content"])
                self._send(session, event)
            if ends_turn(payload):
                self._finish_turn(session)

    def on_exit(self, session_id: str, handle: ProcessHandle, exit_code: int | None) -> None:
        session = self._sessions.get(session_id)
        if session is None or session.handle is not handle:
            return
        logger.warning("Session process exited", session_id=session_id, exit_code=exit_code)
        self._send(session, emit.error(f"Claude CLI exited with code {exit_code}"))
        self._teardown(session)
        try:
            self.store.mark_session_inactive(session_id)
        except Exception:
            logger.exception("Failed to mark session inactive", session_id=session_id)

    def _finish_turn(self, session: LiveSession) -> None:
        session.is_responding = False
        self._set_state(session, CliState.IDLE, None)
        if not session.reply_parts:
            return
        reply = "".join(session.reply_parts)
        session.reply_parts = []
        self._append_message(session, "assistant", reply)

    def _set_state(self, session: LiveSession, state: CliState, tool: str | None) -> None:
        if session.state == state and session.current_tool == tool:
            return
        previous = session.state
        session.state = state
        session.current_tool = tool
        session.last_state_change = time.time()
        logger.debug(
            "CLI state changed",
            session_id=session.session_id,
            previous=previous.value,
            state=state.value,
            tool=tool,
        )
        self._send(session, emit.state_change(state, tool))
        if state not in RETRY_STATES:
            self.scheduler.cancel(session.session_id)

    def _send(self, session: LiveSession, event: dict[str, Any]) -> None:
        if session.channel is None:
            return
        try:
            session.channel.send(event)
        except Exception:
            logger.warning("Failed to queue event", session_id=session.session_id, exc_info=True)

    # ------------------------------------------------------------------
    # Client operations
    # ------------------------------------------------------------------

    def touch(self, session_id: str) -> None:
        session = self.require(session_id)
        session.last_activity = time.time()
        try:
            self.store.touch_session(session_id)
        except Exception:
            logger.exception("Failed to touch session", session_id=session_id)

    def send_input(self, session_id: str, data: str) -> dict:
        """Type a line into the CLI and record it as a user message."""
        session = self.require(session_id)
        self._write(session, data + "\n")
        session.is_responding = True
        session.reply_parts = []
        self._set_state(session, CliState.UNKNOWN, None)
        self.scheduler.schedule(session_id)
        return self._append_message(session, "user", data)

    def abort(self, session_id: str) -> None:
        session = self.require(session_id)
        self._write(session, INTERRUPT)
        self.scheduler.cancel(session_id)
        session.is_responding = False
        self._set_state(session, CliState.IDLE, None)

    def send_enter(self, session_id: str) -> None:
        self._write(self.require(session_id), "\n")

    def restart_cli(self, session_id: str) -> None:
        """Interrupt whatever is running and relaunch the CLI command."""
        session = self.require(session_id)
        self._write(session, INTERRUPT)
        self.scheduler.cancel(session_id)
        session.is_responding = False
        self._schedule_cli(session, RESTART_DELAY_SECONDS)

    def resize(self, session_id: str, cols: int, rows: int) -> None:
        session = self.require(session_id)
        if cols <= 0 or rows <= 0:
            return
        session.cols = cols
        session.rows = rows
        if session.handle is not None:
            try:
                session.handle.resize(cols, rows)
            except OSError:
                logger.warning("Failed to resize PTY", session_id=session_id, exc_info=True)
        self.store.resize_session(session_id, cols, rows)

    def history(self, session_id: str) -> list[dict]:
        return list(self.require(session_id).messages)

    def status(self, session_id: str, now: float | None = None) -> dict[str, Any]:
        session = self.require(session_id)
        now = time.time() if now is None else now
        since_output = now - session.last_output_time
        is_stuck = session.is_responding and since_output > self.stuck_threshold
        return emit.status(
            session.state,
            session.current_tool,
            last_activity_ms=int(session.last_output_time * 1000),
            is_stuck=is_stuck,
            stuck_duration_ms=round(since_output * 1000) if is_stuck else 0,
        )

    def save_output(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        return self._flush(session)

    def get_output(self, session_id: str) -> tuple[str, str]:
        """Return ``(output, source)``, preferring the in-memory buffer."""
        session = self._sessions.get(session_id)
        if session is not None:
            return session.output, "memory"
        return self.store.load_output(session_id), "database"

    def _write(self, session: LiveSession, text: str) -> None:
        if session.handle is None:
            raise OSError("session has no process")
        session.handle.write(text)

    def _schedule_cli(self, session: LiveSession, delay: float) -> None:
        if session.cli_timer is not None:
            session.cli_timer.cancel()
        session.cli_timer = asyncio.get_running_loop().call_later(
            delay, self._start_cli, session.session_id, session.handle
        )

    def _start_cli(self, session_id: str, handle: ProcessHandle | None) -> None:
        session = self._sessions.get(session_id)
        if session is None or session.handle is not handle:
            return
        session.cli_timer = None
        try:
            self._write(session, self.cli_command + "\n")
        except OSError:
            logger.warning("Failed to launch CLI", session_id=session_id, exc_info=True)
            return
        logger.info("Launched CLI", session_id=session_id, command=self.cli_command)

    def _append_message(self, session: LiveSession, role: str, content: str) -> dict:
        try:
            message = self.store.add_message(session.session_id, role, content)
        except Exception:
            logger.exception("Failed to persist message", session_id=session.session_id)
            message = {
                "id": None,
                "session_id": session.session_id,
                "role": role,
                "content": content,
                "created_at": None,
            }
        session.messages.append(message)
        return message

    # ------------------------------------------------------------------
    # Sweeper hooks
    # ------------------------------------------------------------------

    def _flush(self, session: LiveSession) -> bool:
        try:
            self.store.save_output(session.session_id, session.output)
        except Exception:
            logger.exception("Failed to save output", session_id=session.session_id)
            self._dirty.add(session.session_id)
            return False
        self._dirty.discard(session.session_id)
        return True

    def flush_dirty(self) -> int:
        """Persist every buffer changed since the last flush."""
        flushed = 0
        for session_id in list(self._dirty):
            session = self._sessions.get(session_id)
            if session is None:
                self._dirty.discard(session_id)
                continue
            if self._flush(session):
                flushed += 1
        return flushed

    async def sweep_idle(self, now: float | None = None) -> list[str]:
        """Reap sessions with no activity for longer than the timeout."""
        if self.session_timeout <= 0:
            return []
        now = time.time() if now is None else now
        expired = [
            session.session_id
            for session in self._sessions.values()
            if now - session.last_activity > self.session_timeout
        ]
        for session_id in expired:
            logger.info("Session timed out", session_id=session_id)
            try:
                await self.kill(session_id, remove=self.hard_delete_idle, kill_multiplexer=False)
            except Exception:
                logger.exception("Failed to reap idle session", session_id=session_id)
        return expired

    def detect_stuck(self, now: float | None = None) -> list[str]:
        """Push a ``status`` event to clients whose response has stalled.

        Advisory only: nothing is killed or interrupted.
        """
        now = time.time() if now is None else now
        stuck = []
        for session in list(self._sessions.values()):
            if not session.is_responding or session.channel is None:
                continue
            since_output = now - session.last_output_time
            if since_output <= self.stuck_threshold:
                continue
            logger.info(
                "Session appears stuck",
                session_id=session.session_id,
                seconds_since_output=round(since_output),
            )
            self._send(session, self.status(session.session_id, now))
            stuck.append(session.session_id)
        return stuck

    async def shutdown(self) -> None:
        """Flush and release every session, leaving tmux sessions running."""
        self.scheduler.cancel_all()
        for session in list(self._sessions.values()):
            self._teardown(session)
            if session.channel is not None:
                session.channel.close()
            try:
                self.store.mark_session_inactive(session.session_id)
            except Exception:
                logger.exception("Failed to mark session inactive", session_id=session.session_id)
        logger.info("Session registry shut down")
