"""Shared pytest fixtures for lide tests."""

import os
import time
from typing import AsyncGenerator, Generator

import httpx
import pytest

# Never touch a real tmux server from the test suite.
os.environ["LIDE_TMUX_DISABLED"] = "1"
os.environ.setdefault("LIDE_LOG_LEVEL", "WARNING")

from fastapi.testclient import TestClient

from lide.errors import SpawnError
from lide.main import app
from lide.registry import SessionRegistry
from lide.runner.supervisor import SpawnResult
from lide.runner.tmux import Tmux
from lide.store import SessionStore


class FakeHandle:
    """In-memory stand-in for a PTY process handle."""

    _next_pid = 40000

    def __init__(self, session_id: str, events, cols: int, rows: int) -> None:
        FakeHandle._next_pid += 1
        self.session_id = session_id
        self.pid = FakeHandle._next_pid
        self.events = events
        self.size = (cols, rows)
        self.writes: list[str] = []
        self.started = False
        self.alive = True
        self.killed = False

    @property
    def exited(self) -> bool:
        return not self.alive

    def start(self) -> None:
        self.started = True

    def write(self, text: str) -> None:
        if not self.alive:
            raise OSError("PTY is closed")
        self.writes.append(text)

    def resize(self, cols: int, rows: int) -> None:
        self.size = (cols, rows)

    def kill(self) -> None:
        self.alive = False
        self.killed = True

    def emit(self, text: str) -> None:
        """Simulate process output arriving."""
        self.events.on_data(self.session_id, self, text)

    def exit(self, code: int | None = 0) -> None:
        """Simulate the process exiting."""
        self.alive = False
        self.events.on_exit(self.session_id, self, code)


class FakeSupervisor:
    """Supervisor double that tracks tmux sessions in a set."""

    def __init__(self, *, use_tmux: bool = True) -> None:
        self.tmux = Tmux(disabled=True)
        self.use_tmux = use_tmux
        self.multiplexers: set[str] = set()
        self.handles: list[FakeHandle] = []
        self.fail = False

    async def spawn_or_attach(self, session_id, project_path, events, *, cols=120, rows=30):
        if self.fail:
            raise SpawnError("Failed to spawn process: no shell")
        handle = FakeHandle(session_id, events, cols, rows)
        self.handles.append(handle)
        if not self.use_tmux:
            return SpawnResult(handle, False, None)
        name = self.tmux.name_for(session_id)
        attached = name in self.multiplexers
        self.multiplexers.add(name)
        return SpawnResult(handle, attached, name)

    def is_alive(self, handle) -> bool:
        return handle is not None and handle.alive

    def kill(self, handle) -> None:
        if handle is not None:
            handle.kill()

    async def multiplexer_name_for(self, session_id: str):
        return self.tmux.name_for(session_id) if self.use_tmux else None

    async def kill_multiplexer(self, session_id: str) -> bool:
        name = self.tmux.name_for(session_id)
        existed = name in self.multiplexers
        self.multiplexers.discard(name)
        return existed

    async def multiplexer_exists(self, session_id: str) -> bool:
        return self.tmux.name_for(session_id) in self.multiplexers


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch) -> str:
    """Create a temporary data directory for test isolation."""
    data_dir = str(tmp_path / "data")
    os.makedirs(data_dir, exist_ok=True)
    monkeypatch.setenv("LIDE_DATA_DIR", data_dir)
    # Reset the db engine so it picks up the new data dir
    from lide.db import init_db, reset_engine

    reset_engine()
    init_db()
    return data_dir


@pytest.fixture
def fresh_store(temp_data_dir) -> SessionStore:
    """Create a SessionStore backed by an isolated database."""
    return SessionStore(max_output=1000)


@pytest.fixture
def supervisor() -> FakeSupervisor:
    return FakeSupervisor()


@pytest.fixture
def registry(fresh_store, supervisor) -> SessionRegistry:
    """A registry with short timers and a fake process supervisor."""
    return SessionRegistry(
        fresh_store,
        supervisor,
        cli_command="claude --output-format stream-json",
        cli_start_delay=0.01,
        output_max=1000,
        backoff_delays=(0.05, 0.1),
        stuck_threshold=30,
        session_timeout=600,
        hard_delete_idle=False,
    )


@pytest.fixture
def app_state(registry, fresh_store) -> Generator[SessionRegistry, None, None]:
    """Install the test registry on the app instead of running the lifespan."""
    app.state.registry = registry
    app.state.store = fresh_store
    app.state.started_at = time.monotonic()
    yield registry
    del app.state.registry
    del app.state.store


@pytest.fixture
async def api_client(app_state) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Create an async HTTP client against the app."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def ws_client(app_state) -> TestClient:
    """Synchronous client for WebSocket tests; the lifespan is not run."""
    return TestClient(app)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Force the AnyIO pytest plugin to run tests under asyncio.

    The registry and scheduler use asyncio primitives directly (call_later,
    Queue), which are incompatible with the trio backend.
    """
    return "asyncio"
