"""Unit tests for settings module."""

import os

import pytest

from lide.settings import DEFAULT_PASTE_CONFIRM_BACKOFF, Settings


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all LIDE_ env vars for clean tests."""
    for key in list(os.environ.keys()):
        if key.startswith("LIDE_"):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestBoolSettings:
    """Test boolean environment variable parsing."""

    def test_tmux_disabled_default_false(self, clean_env) -> None:
        """tmux is used unless disabled."""
        assert Settings.tmux_disabled() is False

    def test_tmux_disabled_true_values(self, clean_env) -> None:
        """Disabling accepts various true values."""
        for value in ["1", "true", "TRUE", "yes", "YES"]:
            clean_env.setenv("LIDE_TMUX_DISABLED", value)
            assert Settings.tmux_disabled() is True

    def test_tmux_disabled_false_values(self, clean_env) -> None:
        for value in ["0", "false", "no", "random"]:
            clean_env.setenv("LIDE_TMUX_DISABLED", value)
            assert Settings.tmux_disabled() is False

    def test_idle_hard_delete(self, clean_env) -> None:
        assert Settings.idle_hard_delete() is False
        clean_env.setenv("LIDE_IDLE_HARD_DELETE", "1")
        assert Settings.idle_hard_delete() is True


class TestIntSettings:
    """Test integer environment variable parsing."""

    def test_port_default(self, clean_env) -> None:
        """Port defaults to 4002."""
        assert Settings.port() == 4002

    def test_port_custom(self, clean_env) -> None:
        clean_env.setenv("LIDE_PORT", "9000")
        assert Settings.port() == 9000

    def test_port_invalid_returns_default(self, clean_env) -> None:
        """Invalid port value returns default."""
        clean_env.setenv("LIDE_PORT", "not_a_number")
        assert Settings.port() == 4002

    def test_output_buffer_max(self, clean_env) -> None:
        assert Settings.output_buffer_max() == 100_000
        clean_env.setenv("LIDE_OUTPUT_BUFFER_MAX", "5000")
        assert Settings.output_buffer_max() == 5000

    def test_session_timeout(self, clean_env) -> None:
        assert Settings.session_timeout_seconds() == 600
        clean_env.setenv("LIDE_SESSION_TIMEOUT", "0")
        assert Settings.session_timeout_seconds() == 0

    def test_session_retention_days(self, clean_env) -> None:
        assert Settings.session_retention_days() == 7
        clean_env.setenv("LIDE_SESSION_RETENTION_DAYS", "30")
        assert Settings.session_retention_days() == 30


class TestFloatSettings:
    """Test float environment variable parsing."""

    def test_stuck_threshold(self, clean_env) -> None:
        assert Settings.stuck_threshold_seconds() == 30.0
        clean_env.setenv("LIDE_STUCK_THRESHOLD", "12.5")
        assert Settings.stuck_threshold_seconds() == 12.5

    def test_cli_start_delay_invalid(self, clean_env) -> None:
        clean_env.setenv("LIDE_CLI_START_DELAY", "soon")
        assert Settings.cli_start_delay_seconds() == 0.5


class TestPasteConfirmBackoff:
    """Test parsing of the paste-confirmation retry schedule."""

    def test_default(self, clean_env) -> None:
        """The default schedule is 3, 5, 10 and 20 seconds."""
        assert Settings.paste_confirm_backoff() == DEFAULT_PASTE_CONFIRM_BACKOFF
        assert DEFAULT_PASTE_CONFIRM_BACKOFF == (3.0, 5.0, 10.0, 20.0)

    def test_custom_sorted(self, clean_env) -> None:
        """Delays are sorted ascending."""
        clean_env.setenv("LIDE_PASTE_CONFIRM_BACKOFF", "4, 1,2.5")
        assert Settings.paste_confirm_backoff() == (1.0, 2.5, 4.0)

    def test_invalid_entries_skipped(self, clean_env) -> None:
        """Non-numeric and non-positive entries are dropped."""
        clean_env.setenv("LIDE_PASTE_CONFIRM_BACKOFF", "x,0,-1,2,,")
        assert Settings.paste_confirm_backoff() == (2.0,)

    def test_all_invalid_returns_default(self, clean_env) -> None:
        clean_env.setenv("LIDE_PASTE_CONFIRM_BACKOFF", "never")
        assert Settings.paste_confirm_backoff() == DEFAULT_PASTE_CONFIRM_BACKOFF


class TestStringSettings:
    """Test string environment variable parsing."""

    def test_log_level_uppercased(self, clean_env) -> None:
        clean_env.setenv("LIDE_LOG_LEVEL", "debug")
        assert Settings.log_level() == "DEBUG"

    def test_log_format_default(self, clean_env) -> None:
        assert Settings.log_format() == "console"

    def test_host_default(self, clean_env) -> None:
        assert Settings.host() == "127.0.0.1"

    def test_tmux_prefix(self, clean_env) -> None:
        assert Settings.tmux_prefix() == "lide_chat_"

    def test_project_path_defaults_to_cwd(self, clean_env, tmp_path) -> None:
        """Without LIDE_PROJECT_PATH new sessions start in the cwd."""
        clean_env.chdir(tmp_path)
        assert Settings.project_path() == os.getcwd()

    def test_data_dir_override(self, clean_env, tmp_path) -> None:
        """Relative overrides are made absolute."""
        clean_env.chdir(tmp_path)
        clean_env.setenv("LIDE_DATA_DIR", "state")
        assert Settings.data_dir() == str(tmp_path / "state")

    def test_cli_command_default(self, clean_env) -> None:
        assert "--output-format stream-json" in Settings.cli_command()
