"""Health endpoint."""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends, Request

from lide import __version__
from lide.api.deps import get_registry, get_store
from lide.api.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(
    request: Request,
    registry=Depends(get_registry),
    store=Depends(get_store),
) -> HealthResponse:
    """Health check endpoint with live and persisted session counts."""
    started = getattr(request.app.state, "started_at", None)
    uptime = time.monotonic() - started if started is not None else 0.0
    return HealthResponse(
        ok=True,
        status="ok",
        version=__version__,
        active_sessions=len(registry.list_live()),
        total_sessions=len(store.list_active_sessions()),
        uptime=round(uptime, 3),
    )
