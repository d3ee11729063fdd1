"""Composition of API routers."""

from __future__ import annotations

from fastapi import APIRouter

from lide.api.health import router as health_router
from lide.api.sessions import router as sessions_router
from lide.api.ws import router as ws_router

api_router = APIRouter(prefix="/api")
api_router.include_router(sessions_router)
api_router.include_router(health_router)

root_router = APIRouter()
root_router.include_router(ws_router)
