"""Tests for the background sweeper loops."""

import asyncio
import time

import pytest

from lide.maintenance import flush_loop, idle_loop, start_maintenance, stuck_loop
from lide.registry import ClientChannel


async def run_briefly(coro, duration: float = 0.15) -> None:
    """Run a loop coroutine for a short time, then cancel it."""
    task = asyncio.create_task(coro)
    await asyncio.sleep(duration)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


class TestFlushLoop:
    """Test periodic output flushing."""

    @pytest.mark.anyio
    async def test_flushes_dirty_buffers(self, registry, supervisor, fresh_store) -> None:
        live = await registry.connect(None, "/tmp", ClientChannel(), start_cli=False)
        supervisor.handles[0].emit("pending output")
        assert registry.is_dirty(live.session_id)

        await run_briefly(flush_loop(registry, interval_s=0.02))

        assert not registry.is_dirty(live.session_id)
        assert fresh_store.load_output(live.session_id) == "pending output"

    @pytest.mark.anyio
    async def test_survives_errors(self, registry, monkeypatch) -> None:
        """A failing tick is logged and the loop keeps running."""
        calls = []

        def boom() -> int:
            calls.append(1)
            raise RuntimeError("disk full")

        monkeypatch.setattr(registry, "flush_dirty", boom)
        await run_briefly(flush_loop(registry, interval_s=0.02))
        assert len(calls) > 1


class TestIdleLoop:
    """Test idle reaping and retention pruning."""

    @pytest.mark.anyio
    async def test_reaps_idle_sessions(self, registry, supervisor, fresh_store) -> None:
        live = await registry.connect(None, "/tmp", ClientChannel(), start_cli=False)
        live.last_activity = time.time() - 3600

        await run_briefly(idle_loop(registry, interval_s=0.02, retention_days=0))

        assert not registry.is_live(live.session_id)
        assert supervisor.handles[0].killed
        record = fresh_store.find_session(live.session_id)
        assert record is not None
        assert record.is_active is False

    @pytest.mark.anyio
    async def test_prunes_with_retention(self, registry, monkeypatch) -> None:
        seen = []
        monkeypatch.setattr(registry.store, "cleanup_sessions", lambda days: seen.append(days) or 0)

        await run_briefly(idle_loop(registry, interval_s=0.02, retention_days=3))

        assert seen and set(seen) == {3}


class TestStuckLoop:
    """Test periodic stuck detection."""

    @pytest.mark.anyio
    async def test_pushes_status_to_stuck_client(self, registry) -> None:
        channel = ClientChannel()
        live = await registry.connect(None, "/tmp", channel, start_cli=False)
        live.is_responding = True
        live.last_output_time = time.time() - 120

        await run_briefly(stuck_loop(registry, interval_s=0.02))

        statuses = []
        while not channel._queue.empty():  # noqa: SLF001
            event = channel._queue.get_nowait()  # noqa: SLF001
            if event and event["type"] == "status":
                statuses.append(event)
        assert statuses
        assert statuses[0]["isStuck"] is True
        assert statuses[0]["stuckDuration"] >= 120_000


class TestStartMaintenance:
    """Test sweeper task startup."""

    @pytest.mark.anyio
    async def test_starts_named_tasks(self, registry) -> None:
        tasks = start_maintenance(registry)
        try:
            assert sorted(task.get_name() for task in tasks) == [
                "lide-flush",
                "lide-idle",
                "lide-stuck",
            ]
            assert not any(task.done() for task in tasks)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
