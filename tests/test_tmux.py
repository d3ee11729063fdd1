"""Tests for tmux discovery and control, using a scripted fake binary."""

import asyncio
import stat

import pytest

from lide.errors import MultiplexerError, SpawnError
from lide.runner.supervisor import ProcessSupervisor
from lide.runner.tmux import Tmux, _run, session_name

FAKE_TMUX = """#!/bin/sh
echo "$@" >> {log}
case "$1" in
  -V) exit 0 ;;
  has-session) [ -f {marker} ] && exit 0 || exit 1 ;;
  new-session) {new_session} ;;
  kill-session) [ -f {marker} ] && rm {marker} && exit 0 || exit 1 ;;
  attach-session) sleep 5 ;;
esac
exit 2
"""


@pytest.fixture
def fake_tmux(tmp_path):
    """Write a fake tmux that tracks a single session with a marker file."""

    def build(*, new_session_ok: bool = True) -> tuple[str, object]:
        log = tmp_path / "tmux.log"
        marker = tmp_path / "exists"
        script = tmp_path / "tmux"
        script.write_text(
            FAKE_TMUX.format(
                log=log,
                marker=marker,
                new_session=f"touch {marker}; exit 0" if new_session_ok else "exit 1",
            )
        )
        script.chmod(script.stat().st_mode | stat.S_IEXEC)
        return str(script), log

    return build


class TestSessionName:
    """Test tmux session name derivation."""

    def test_prefix_and_safe_characters(self) -> None:
        assert session_name("chat_1700000000000_ab12cd3") == "lide_chat_chat_1700000000000_ab12cd3"

    def test_unsafe_characters_replaced(self) -> None:
        """Anything outside [a-zA-Z0-9] becomes an underscore."""
        assert session_name("a.b:c/d e") == "lide_chat_a_b_c_d_e"

    def test_truncated_to_forty_characters(self) -> None:
        name = session_name("x" * 100)
        assert name == "lide_chat_" + "x" * 40

    def test_deterministic(self) -> None:
        assert session_name("same") == session_name("same")

    def test_custom_prefix(self) -> None:
        assert session_name("id", prefix="t_") == "t_id"


class TestRun:
    """Test the subprocess helper."""

    @pytest.mark.anyio
    async def test_exit_status(self) -> None:
        assert await _run("sh", "-c", "exit 0", timeout=5) == 0
        assert await _run("sh", "-c", "exit 3", timeout=5) == 3

    @pytest.mark.anyio
    async def test_timeout_raises(self) -> None:
        with pytest.raises(MultiplexerError):
            await _run("sleep", "5", timeout=0.1)

    @pytest.mark.anyio
    async def test_missing_binary(self) -> None:
        with pytest.raises(FileNotFoundError):
            await _run("/nonexistent/tmux", "-V", timeout=1)


class TestTmuxDisabled:
    """A disabled or missing tmux is reported unavailable."""

    @pytest.mark.anyio
    async def test_disabled(self) -> None:
        tmux = Tmux(disabled=True)
        assert await tmux.find() is None
        assert await tmux.available() is False
        assert await tmux.has_session("lide_chat_x") is False
        assert await tmux.kill_session("lide_chat_x") is False

    @pytest.mark.anyio
    async def test_new_session_without_tmux_raises(self) -> None:
        tmux = Tmux(disabled=True)
        with pytest.raises(MultiplexerError):
            await tmux.new_session("lide_chat_x", "/tmp")

    def test_attach_argv_without_tmux_raises(self) -> None:
        with pytest.raises(MultiplexerError):
            Tmux().attach_argv("lide_chat_x")

    @pytest.mark.anyio
    async def test_no_candidate_found(self) -> None:
        tmux = Tmux(candidates=("/nonexistent/tmux", "/also/missing"))
        assert await tmux.find() is None
        assert tmux.path is None


class TestTmuxCommands:
    """Test tmux control against the fake binary."""

    @pytest.mark.anyio
    async def test_find_first_working_candidate(self, fake_tmux) -> None:
        path, _ = fake_tmux()
        tmux = Tmux(candidates=("/nonexistent/tmux", path))
        assert await tmux.find() == path
        assert await tmux.available() is True

    @pytest.mark.anyio
    async def test_session_lifecycle(self, fake_tmux) -> None:
        """new-session, has-session and kill-session use exact-name targets."""
        path, log = fake_tmux()
        tmux = Tmux(candidates=(path,))

        assert await tmux.has_session("lide_chat_a") is False
        await tmux.new_session("lide_chat_a", "/tmp")
        assert await tmux.has_session("lide_chat_a") is True
        assert await tmux.kill_session("lide_chat_a") is True
        assert await tmux.kill_session("lide_chat_a") is False

        lines = log.read_text().splitlines()
        assert "new-session -d -s lide_chat_a -c /tmp" in lines
        assert "has-session -t =lide_chat_a" in lines
        assert "kill-session -t =lide_chat_a" in lines

    @pytest.mark.anyio
    async def test_new_session_failure(self, fake_tmux) -> None:
        path, _ = fake_tmux(new_session_ok=False)
        tmux = Tmux(candidates=(path,))
        with pytest.raises(MultiplexerError):
            await tmux.new_session("lide_chat_a", "/tmp")

    @pytest.mark.anyio
    async def test_attach_argv(self, fake_tmux) -> None:
        path, _ = fake_tmux()
        tmux = Tmux(candidates=(path,))
        await tmux.find()
        assert tmux.attach_argv("lide_chat_a") == [path, "attach-session", "-t", "=lide_chat_a"]


class Recorder:
    """ProcessEvents sink that records exits."""

    def __init__(self) -> None:
        self.exit_codes: list = []
        self.exited = asyncio.Event()

    def on_data(self, session_id, handle, text) -> None:
        pass

    def on_exit(self, session_id, handle, exit_code) -> None:
        self.exit_codes.append(exit_code)
        self.exited.set()


class TestSupervisorWithTmux:
    """Test spawn-or-attach through a tmux binary."""

    @pytest.mark.anyio
    async def test_creates_then_attaches(self, fake_tmux, tmp_path) -> None:
        """The first spawn creates the tmux session, the second attaches to it."""
        path, _ = fake_tmux()
        supervisor = ProcessSupervisor(Tmux(candidates=(path,)), shell="/bin/sh")

        for expected_existing in (False, True):
            events = Recorder()
            result = await supervisor.spawn_or_attach("chat_1", str(tmp_path), events)
            assert result.attached_existing is expected_existing
            assert result.multiplexer_name == "lide_chat_chat_1"
            assert supervisor.is_alive(result.handle)
            supervisor.kill(result.handle)
            await asyncio.wait_for(events.exited.wait(), timeout=5)
            assert not supervisor.is_alive(result.handle)

        assert await supervisor.multiplexer_exists("chat_1") is True
        assert await supervisor.kill_multiplexer("chat_1") is True
        assert await supervisor.multiplexer_exists("chat_1") is False

    @pytest.mark.anyio
    async def test_tmux_failure_raises_spawn_error(self, fake_tmux, tmp_path) -> None:
        path, _ = fake_tmux(new_session_ok=False)
        supervisor = ProcessSupervisor(Tmux(candidates=(path,)))
        with pytest.raises(SpawnError):
            await supervisor.spawn_or_attach("chat_1", str(tmp_path), Recorder())

    @pytest.mark.anyio
    async def test_attach_failure_removes_created_session(
        self, fake_tmux, tmp_path, monkeypatch
    ) -> None:
        """A tmux session created for a failed attach is killed again."""
        path, log = fake_tmux()
        supervisor = ProcessSupervisor(Tmux(candidates=(path,)))

        def refuse(*args, **kwargs):
            raise OSError("out of ptys")

        monkeypatch.setattr("lide.runner.supervisor.PtyProcess", refuse)

        with pytest.raises(SpawnError):
            await supervisor.spawn_or_attach("chat_1", str(tmp_path), Recorder())

        assert await supervisor.multiplexer_exists("chat_1") is False
        assert "kill-session -t =lide_chat_chat_1" in log.read_text().splitlines()

    @pytest.mark.anyio
    async def test_attach_failure_keeps_existing_session(
        self, fake_tmux, tmp_path, monkeypatch
    ) -> None:
        """A pre-existing tmux session survives a failed attach."""
        path, _ = fake_tmux()
        tmux = Tmux(candidates=(path,))
        await tmux.new_session("lide_chat_chat_1", str(tmp_path))
        supervisor = ProcessSupervisor(tmux)

        def refuse(*args, **kwargs):
            raise OSError("out of ptys")

        monkeypatch.setattr("lide.runner.supervisor.PtyProcess", refuse)

        with pytest.raises(SpawnError):
            await supervisor.spawn_or_attach("chat_1", str(tmp_path), Recorder())

        assert await supervisor.multiplexer_exists("chat_1") is True

    @pytest.mark.anyio
    async def test_multiplexer_name_without_tmux(self) -> None:
        supervisor = ProcessSupervisor(Tmux(disabled=True))
        assert await supervisor.multiplexer_name_for("chat_1") is None
        assert supervisor.is_alive(None) is False
        supervisor.kill(None)
