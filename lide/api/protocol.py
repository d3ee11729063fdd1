"""Dispatch of client socket messages onto registry operations."""

from __future__ import annotations

from typing import Awaitable, Callable

import structlog
from pydantic import ValidationError

from lide.api import emit
from lide.api.schemas import ClientMessage
from lide.errors import SessionNotFound
from lide.registry import ClientChannel, SessionRegistry

logger = structlog.get_logger(__name__)

Handler = Callable[[ClientMessage], Awaitable[None]]


class ProtocolHandler:
    """Handles the messages of one socket bound to one session.

    Each message is validated, touches the session, then runs the handler
    registered for its ``type``. Malformed and unknown messages are logged
    and dropped; the connection stays open.
    """

    def __init__(self, registry: SessionRegistry, session_id: str, channel: ClientChannel) -> None:
        self.registry = registry
        self.session_id = session_id
        self.channel = channel
        self._handlers: dict[str, Handler] = {
            "input": self._input,
            "abort": self._abort,
            "ping": self._ping,
            "get-history": self._get_history,
            "send-enter": self._send_enter,
            "kill-session": self._kill_session,
            "get-status": self._get_status,
            "resize": self._resize,
            "restart-claude": self._restart_cli,
        }

    @property
    def message_types(self) -> frozenset[str]:
        return frozenset(self._handlers)

    async def handle_text(self, raw: str) -> None:
        try:
            message = ClientMessage.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning(
                "Ignoring malformed client message",
                session_id=self.session_id,
                errors=exc.error_count(),
            )
            return
        await self.handle(message)

    async def handle(self, message: ClientMessage) -> None:
        handler = self._handlers.get(message.type)
        if handler is None:
            logger.warning(
                "Ignoring unknown client message", session_id=self.session_id, type=message.type
            )
            return
        try:
            self.registry.touch(self.session_id)
            await handler(message)
        except SessionNotFound:
            self.channel.send(emit.error("Session not found"))
        except OSError as exc:
            logger.warning(
                "Process write failed", session_id=self.session_id, type=message.type, error=str(exc)
            )
            self.channel.send(emit.error(f"Failed to write to process: {exc}"))

    async def _input(self, message: ClientMessage) -> None:
        if message.data is None:
            logger.warning("Ignoring input without data", session_id=self.session_id)
            return
        self.registry.send_input(self.session_id, message.data)

    async def _abort(self, message: ClientMessage) -> None:
        self.registry.abort(self.session_id)

    async def _ping(self, message: ClientMessage) -> None:
        self.channel.send(emit.pong())

    async def _get_history(self, message: ClientMessage) -> None:
        self.channel.send(emit.history(self.registry.history(self.session_id)))

    async def _send_enter(self, message: ClientMessage) -> None:
        self.registry.send_enter(self.session_id)

    async def _kill_session(self, message: ClientMessage) -> None:
        await self.registry.kill(self.session_id, remove=True, kill_multiplexer=True)
        self.channel.send(emit.done())

    async def _get_status(self, message: ClientMessage) -> None:
        self.channel.send(self.registry.status(self.session_id))

    async def _resize(self, message: ClientMessage) -> None:
        if not message.cols or not message.rows:
            logger.warning("Ignoring resize without size", session_id=self.session_id)
            return
        self.registry.resize(self.session_id, message.cols, message.rows)

    async def _restart_cli(self, message: ClientMessage) -> None:
        self.registry.restart_cli(self.session_id)
