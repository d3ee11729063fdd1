"""Background sweepers: buffer flush, idle timeout and stuck detection."""

from __future__ import annotations

import asyncio

import structlog

from lide.registry import SessionRegistry
from lide.settings import settings

logger = structlog.get_logger(__name__)


async def flush_loop(registry: SessionRegistry, interval_s: float | None = None) -> None:
    """Periodically persist output buffers that changed since the last tick."""
    interval_s = interval_s if interval_s is not None else settings.output_save_interval_seconds()
    while True:
        await asyncio.sleep(interval_s)
        try:
            flushed = registry.flush_dirty()
            if flushed:
                logger.debug("Flushed output buffers", count=flushed)
        except Exception:
            logger.exception("Output flush loop failed")


async def idle_loop(
    registry: SessionRegistry,
    interval_s: float | None = None,
    retention_days: int | None = None,
) -> None:
    """Reap idle sessions, then prune old inactive rows from the store."""
    interval_s = interval_s if interval_s is not None else settings.idle_sweep_interval_seconds()
    retention_days = (
        retention_days if retention_days is not None else settings.session_retention_days()
    )
    while True:
        await asyncio.sleep(interval_s)
        try:
            expired = await registry.sweep_idle()
            if expired:
                logger.info("Reaped idle sessions", count=len(expired))
            removed = registry.store.cleanup_sessions(retention_days)
            if removed:
                logger.info("Pruned inactive sessions", count=removed)
        except Exception:
            logger.exception("Idle sweep loop failed")


async def stuck_loop(registry: SessionRegistry, interval_s: float | None = None) -> None:
    """Periodically warn clients whose response has stopped producing output."""
    interval_s = interval_s if interval_s is not None else settings.stuck_check_interval_seconds()
    while True:
        await asyncio.sleep(interval_s)
        try:
            registry.detect_stuck()
        except Exception:
            logger.exception("Stuck detection loop failed")


def start_maintenance(registry: SessionRegistry) -> list[asyncio.Task]:
    """Start all sweepers as tasks on the running loop."""
    return [
        asyncio.create_task(flush_loop(registry), name="lide-flush"),
        asyncio.create_task(idle_loop(registry), name="lide-idle"),
        asyncio.create_task(stuck_loop(registry), name="lide-stuck"),
    ]
