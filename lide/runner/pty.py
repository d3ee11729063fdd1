"""PTY-backed process handle driven by the asyncio event loop."""

from __future__ import annotations

import asyncio
import codecs
import fcntl
import os
import pty
import signal
import struct
import termios

import structlog

from lide.runner.base import ProcessEvents

logger = structlog.get_logger(__name__)

READ_CHUNK = 65536


def _set_winsize(fd: int, cols: int, rows: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


class PtyProcess:
    """A child process attached to a pseudo-terminal.

    Output is read with ``loop.add_reader`` on the master side and decoded
    incrementally so multi-byte characters split across reads survive.
    Nothing is delivered to ``events`` until :meth:`start` is called, which
    lets the registry finish registering the session first.

    The master fd is non-blocking. Input the child has not consumed yet is
    kept in a pending buffer and drained with ``loop.add_writer``, so a child
    that stops reading stdin never stalls the event loop.
    """

    def __init__(
        self,
        session_id: str,
        argv: list[str],
        *,
        cwd: str,
        env: dict[str, str],
        events: ProcessEvents,
        cols: int = 120,
        rows: int = 30,
    ) -> None:
        self.session_id = session_id
        self.argv = argv
        self._events = events
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._reading = False
        self._writing = False
        self._pending = bytearray()
        self._reaping = False
        self._exited = False
        self._closed = False
        self.exit_code: int | None = None

        pid, fd = pty.fork()
        if pid == 0:
            # Child: replace the image immediately; never return into the loop.
            try:
                os.chdir(cwd)
                os.execvpe(argv[0], argv, env)
            except BaseException:
                os._exit(127)
        self.pid = pid
        self.fd = fd
        os.set_blocking(fd, False)
        try:
            _set_winsize(fd, cols, rows)
        except OSError:
            logger.debug("Failed to set initial PTY size", session_id=session_id)
        logger.info("Spawned PTY process", session_id=session_id, pid=pid, argv=argv, cwd=cwd)

    @property
    def exited(self) -> bool:
        return self._exited

    def start(self) -> None:
        if self._reading or self._closed:
            return
        asyncio.get_running_loop().add_reader(self.fd, self._on_readable)
        self._reading = True

    def _stop_reading(self) -> None:
        if not self._reading:
            return
        self._reading = False
        try:
            asyncio.get_running_loop().remove_reader(self.fd)
        except (RuntimeError, ValueError, OSError):
            pass

    def _on_readable(self) -> None:
        try:
            data = os.read(self.fd, READ_CHUNK)
        except BlockingIOError:
            return
        except OSError:
            # EIO: the slave side closed because the child exited.
            data = b""
        if not data:
            self._stop_reading()
            self._schedule_reap()
            return
        text = self._decoder.decode(data)
        if text:
            self._events.on_data(self.session_id, self, text)

    def _schedule_reap(self, *, force_after: float | None = None) -> None:
        if self._reaping or self._exited:
            return
        self._reaping = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.create_task(self._reap(force_after))

    async def _reap(self, force_after: float | None = None) -> None:
        loop = asyncio.get_running_loop()
        status: int | None = None
        if force_after is not None:
            # Give the child a grace period after SIGHUP, then SIGKILL it.
            deadline = loop.time() + force_after
            try:
                while loop.time() < deadline:
                    pid, wstatus = os.waitpid(self.pid, os.WNOHANG)
                    if pid:
                        status = wstatus
                        break
                    await asyncio.sleep(0.05)
                else:
                    os.kill(self.pid, signal.SIGKILL)
            except (ChildProcessError, ProcessLookupError):
                pass
        if status is None:
            try:
                _, status = await loop.run_in_executor(None, os.waitpid, self.pid, 0)
            except ChildProcessError:
                status = None
        self.exit_code = os.waitstatus_to_exitcode(status) if status is not None else None
        self._exited = True
        self._close_fd()
        logger.info("PTY process exited", session_id=self.session_id, exit_code=self.exit_code)
        self._events.on_exit(self.session_id, self, self.exit_code)

    @property
    def pending_bytes(self) -> int:
        """Bytes accepted by :meth:`write` but not yet taken by the PTY."""
        return len(self._pending)

    def write(self, text: str) -> None:
        """Queue text for the process as UTF-8 and write what the PTY accepts.

        Raises:
            OSError: The PTY is closed or the write failed.
        """
        if self._closed:
            raise OSError("PTY is closed")
        self._pending += text.encode("utf-8")
        if not self._writing:
            self._drain()

    def _drain(self) -> None:
        while self._pending:
            try:
                written = os.write(self.fd, self._pending)
            except BlockingIOError:
                break
            except OSError:
                self._pending.clear()
                self._stop_writing()
                raise
            del self._pending[:written]
        if self._pending:
            if not self._writing:
                asyncio.get_running_loop().add_writer(self.fd, self._on_writable)
                self._writing = True
                logger.debug(
                    "PTY input buffer full; deferring write",
                    session_id=self.session_id,
                    pending=len(self._pending),
                )
        else:
            self._stop_writing()

    def _on_writable(self) -> None:
        try:
            self._drain()
        except OSError:
            logger.warning("Failed to write to PTY", session_id=self.session_id, exc_info=True)

    def _stop_writing(self) -> None:
        if not self._writing:
            return
        self._writing = False
        try:
            asyncio.get_running_loop().remove_writer(self.fd)
        except (RuntimeError, ValueError, OSError):
            pass

    def resize(self, cols: int, rows: int) -> None:
        if self._closed:
            return
        _set_winsize(self.fd, cols, rows)
        try:
            os.kill(self.pid, signal.SIGWINCH)
        except ProcessLookupError:
            pass

    def is_alive(self) -> bool:
        """Signal-zero liveness probe; never reads output."""
        if self._exited or self.pid <= 0:
            return False
        try:
            os.kill(self.pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    def kill(self) -> None:
        self._stop_reading()
        self._stop_writing()
        if not self._exited:
            try:
                os.kill(self.pid, signal.SIGHUP)
            except ProcessLookupError:
                pass
            self._schedule_reap(force_after=2.0)
        self._close_fd()

    def _close_fd(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stop_writing()
        self._pending.clear()
        try:
            os.close(self.fd)
        except OSError:
            pass
