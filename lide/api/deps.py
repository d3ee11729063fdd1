"""Dependency helpers for API endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi.requests import HTTPConnection

if TYPE_CHECKING:
    from lide.registry import SessionRegistry
    from lide.store import SessionStore


def get_registry(conn: HTTPConnection) -> "SessionRegistry":
    """Return the session registry created by the application lifespan."""
    return conn.app.state.registry


def get_store(conn: HTTPConnection) -> "SessionStore":
    return conn.app.state.store
