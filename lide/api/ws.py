"""WebSocket endpoint bridging a browser client to a session."""

from __future__ import annotations

import asyncio
from contextlib import suppress

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from lide.api import emit
from lide.api.deps import get_registry
from lide.api.protocol import ProtocolHandler
from lide.errors import SpawnError
from lide.registry import ClientChannel
from lide.settings import settings

router = APIRouter(tags=["chat"])
logger = structlog.get_logger(__name__)

# Close code sent when a newer connection took over the session.
REPLACED_CLOSE_CODE = 4000


async def _receive_loop(websocket: WebSocket, handler: ProtocolHandler) -> None:
    while True:
        raw = await websocket.receive_text()
        await handler.handle_text(raw)


@router.websocket("/ws/chat")
async def chat_socket(
    websocket: WebSocket,
    session: str | None = Query(default=None),
    path: str | None = Query(default=None),
    start_claude: str = Query(default="true", alias="startClaude"),
    cols: int | None = Query(default=None, gt=0),
    rows: int | None = Query(default=None, gt=0),
) -> None:
    registry = get_registry(websocket)
    await websocket.accept()
    channel = ClientChannel()
    project_path = path or settings.project_path()
    try:
        live = await registry.connect(
            session or None,
            project_path,
            channel,
            start_cli=start_claude.lower() != "false",
            cols=cols,
            rows=rows,
        )
    except SpawnError as exc:
        logger.error("Failed to open session", session_id=session, error=str(exc))
        await websocket.send_json(emit.error(str(exc)))
        await websocket.close(code=1011)
        return
    except Exception:
        logger.exception("Failed to open session", session_id=session)
        await websocket.send_json(emit.error("Failed to open session"))
        await websocket.close(code=1011)
        return

    session_id = live.session_id
    structlog.contextvars.bind_contextvars(session_id=session_id)
    logger.info("Client connected", project_path=live.project_path)
    handler = ProtocolHandler(registry, session_id, channel)
    pump = asyncio.create_task(channel.pump(websocket.send_json))
    receiver = asyncio.create_task(_receive_loop(websocket, handler))
    try:
        done, pending = await asyncio.wait({pump, receiver}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("Socket task failed", error=repr(exc))
        if pump in done and receiver not in done:
            # The channel was closed by a newer connection to the same session.
            with suppress(RuntimeError, WebSocketDisconnect):
                await websocket.close(code=REPLACED_CLOSE_CODE)
    finally:
        registry.detach(session_id, channel)
        channel.close()
        logger.info("Client disconnected")
        structlog.contextvars.unbind_contextvars("session_id")
