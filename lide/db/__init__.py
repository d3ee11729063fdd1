"""Database engine and session management."""

from __future__ import annotations

import os

import structlog
from sqlalchemy import Engine
from sqlmodel import Session as DBSession
from sqlmodel import SQLModel, create_engine

from lide.settings import settings

logger = structlog.get_logger(__name__)

# Lazy-initialized engine
_engine: Engine | None = None


def get_db_url() -> str:
    """Return the database URL for the configured data directory."""
    data_dir = settings.data_dir()
    db_path = os.path.join(data_dir, "lide.db")
    return f"sqlite:///{db_path}"


def _get_engine() -> Engine:
    """Get or create the database engine."""
    global _engine
    if _engine is None:
        os.makedirs(settings.data_dir(), exist_ok=True)
        _engine = create_engine(
            get_db_url(),
            echo=False,
            connect_args={"check_same_thread": False},
        )
    return _engine


def reset_engine() -> None:
    """Reset the engine so it will be recreated with current settings.

    Used by tests to point at a fresh database after changing LIDE_DATA_DIR.
    """
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None


def get_session() -> DBSession:
    """Get a new database session."""
    return DBSession(_get_engine())


def init_db() -> None:
    """Create any missing tables."""
    # Register table models on the shared metadata before create_all.
    import lide.models  # noqa: F401

    SQLModel.metadata.create_all(bind=_get_engine())
    logger.debug("Database initialized", url=get_db_url())


__all__ = [
    "get_session",
    "get_db_url",
    "init_db",
    "reset_engine",
    "DBSession",
]
