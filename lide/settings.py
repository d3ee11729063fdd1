"""Centralized environment configuration for the lide session server.

All environment variables are read through this module using the LIDE_
prefix for consistency.

Usage:
    from lide.settings import settings

    port = settings.port()
    if settings.tmux_disabled():
        ...
"""

from __future__ import annotations

import os


def _get(name: str, default: str = "") -> str:
    """Get an environment variable value."""
    return os.environ.get(name, "").strip() or default


def _get_bool(name: str, default: bool = False) -> bool:
    """Get a boolean environment variable."""
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    return value.lower() in ("1", "true", "yes")


def _get_int(name: str, default: int = 0) -> int:
    """Get an integer environment variable."""
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(name: str, default: float = 0.0) -> float:
    """Get a float environment variable."""
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


DEFAULT_PASTE_CONFIRM_BACKOFF = (3.0, 5.0, 10.0, 20.0)


class Settings:
    """Centralized settings for the lide session server.

    Environment variables use the LIDE_ prefix.
    """

    # -------------------------------------------------------------------------
    # Server Settings
    # -------------------------------------------------------------------------

    @staticmethod
    def host() -> str:
        """Host to bind the HTTP/WebSocket server to.

        Env: LIDE_HOST (default: 127.0.0.1)
        """
        return _get("LIDE_HOST", default="127.0.0.1")

    @staticmethod
    def port() -> int:
        """Port to bind the server to.

        Env: LIDE_PORT (default: 4002)
        """
        return _get_int("LIDE_PORT", default=4002)

    @staticmethod
    def data_dir() -> str:
        """Directory for persistent data (the SQLite database).

        Env: LIDE_DATA_DIR

        Default depends on context:
            - Source checkout (pyproject.toml exists): ``<checkout>/.local-ide/data``
            - Installed package: ``~/.local/share/lide/`` (XDG_DATA_HOME)
        """
        value = _get("LIDE_DATA_DIR")
        if value:
            return os.path.abspath(value)

        package_parent = os.path.join(os.path.dirname(__file__), "..")
        if os.path.isfile(os.path.join(package_parent, "pyproject.toml")):
            return os.path.abspath(os.path.join(package_parent, ".local-ide", "data"))

        from lide.config import data_dir_default

        return str(data_dir_default())

    @staticmethod
    def project_path() -> str:
        """Working directory used when a client does not send ``path``.

        Env: LIDE_PROJECT_PATH (default: current working directory)
        """
        return _get("LIDE_PROJECT_PATH") or os.getcwd()

    # -------------------------------------------------------------------------
    # Logging Settings
    # -------------------------------------------------------------------------

    @staticmethod
    def log_level() -> str:
        """Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).

        Env: LIDE_LOG_LEVEL (default: INFO)
        """
        return _get("LIDE_LOG_LEVEL", default="INFO").upper()

    @staticmethod
    def log_format() -> str:
        """Log format: "console" for dev-friendly, "json" for structured.

        Env: LIDE_LOG_FORMAT (default: console)
        """
        return _get("LIDE_LOG_FORMAT", default="console").lower()

    # -------------------------------------------------------------------------
    # Process Settings
    # -------------------------------------------------------------------------

    @staticmethod
    def shell() -> str:
        """Shell spawned directly when no multiplexer is available.

        Env: LIDE_SHELL (default: /bin/bash)
        """
        return _get("LIDE_SHELL", default="/bin/bash")

    @staticmethod
    def cli_command() -> str:
        """Command typed into a fresh session when the CLI is auto-started.

        Env: LIDE_CLI_COMMAND
        """
        return _get(
            "LIDE_CLI_COMMAND",
            default="claude --dangerously-skip-permissions --output-format stream-json",
        )

    @staticmethod
    def cli_start_delay_seconds() -> float:
        """Delay between spawning a session and typing the CLI command.

        Env: LIDE_CLI_START_DELAY (default: 0.5)
        """
        return _get_float("LIDE_CLI_START_DELAY", default=0.5)

    @staticmethod
    def tmux_disabled() -> bool:
        """Never use tmux, always spawn the shell directly.

        Env: LIDE_TMUX_DISABLED (default: 0)
        """
        return _get_bool("LIDE_TMUX_DISABLED")

    @staticmethod
    def tmux_prefix() -> str:
        """Prefix for derived tmux session names.

        Env: LIDE_TMUX_PREFIX (default: lide_chat_)
        """
        return _get("LIDE_TMUX_PREFIX", default="lide_chat_")

    @staticmethod
    def tmux_command_timeout_seconds() -> float:
        """Timeout for individual tmux control commands.

        Env: LIDE_TMUX_TIMEOUT (default: 5)
        """
        return _get_float("LIDE_TMUX_TIMEOUT", default=5.0)

    # -------------------------------------------------------------------------
    # Session Settings
    # -------------------------------------------------------------------------

    @staticmethod
    def output_buffer_max() -> int:
        """Maximum characters of terminal output kept per session.

        Applies to the in-memory buffer and to the persisted copy.

        Env: LIDE_OUTPUT_BUFFER_MAX (default: 100000)
        """
        return _get_int("LIDE_OUTPUT_BUFFER_MAX", default=100_000)

    @staticmethod
    def output_save_interval_seconds() -> float:
        """Interval between flushes of dirty output buffers.

        Env: LIDE_OUTPUT_SAVE_INTERVAL (default: 5)
        """
        return _get_float("LIDE_OUTPUT_SAVE_INTERVAL", default=5.0)

    @staticmethod
    def session_timeout_seconds() -> int:
        """Seconds of inactivity before a live session is cleaned up. 0 disables.

        Env: LIDE_SESSION_TIMEOUT (default: 600)
        """
        return _get_int("LIDE_SESSION_TIMEOUT", default=600)

    @staticmethod
    def idle_sweep_interval_seconds() -> float:
        """Interval between idle-timeout sweeps.

        Env: LIDE_IDLE_SWEEP_INTERVAL (default: 60)
        """
        return _get_float("LIDE_IDLE_SWEEP_INTERVAL", default=60.0)

    @staticmethod
    def idle_hard_delete() -> bool:
        """Delete timed-out sessions instead of marking them inactive.

        Env: LIDE_IDLE_HARD_DELETE (default: 0)
        """
        return _get_bool("LIDE_IDLE_HARD_DELETE")

    @staticmethod
    def session_retention_days() -> int:
        """Days to keep inactive session rows before pruning. 0 disables.

        Env: LIDE_SESSION_RETENTION_DAYS (default: 7)
        """
        return _get_int("LIDE_SESSION_RETENTION_DAYS", default=7)

    @staticmethod
    def stuck_threshold_seconds() -> float:
        """Seconds without output before a responding session looks stuck.

        Env: LIDE_STUCK_THRESHOLD (default: 30)
        """
        return _get_float("LIDE_STUCK_THRESHOLD", default=30.0)

    @staticmethod
    def stuck_check_interval_seconds() -> float:
        """Interval between stuck-session checks.

        Env: LIDE_STUCK_CHECK_INTERVAL (default: 5)
        """
        return _get_float("LIDE_STUCK_CHECK_INTERVAL", default=5.0)

    @staticmethod
    def paste_confirm_backoff() -> tuple[float, ...]:
        """Delays (seconds) at which a paste-confirmation Enter is retried.

        Env: LIDE_PASTE_CONFIRM_BACKOFF (comma-separated, default: 3,5,10,20)
        """
        raw = os.environ.get("LIDE_PASTE_CONFIRM_BACKOFF", "").strip()
        if not raw:
            return DEFAULT_PASTE_CONFIRM_BACKOFF
        out: list[float] = []
        for part in raw.split(","):
            part = part.strip()
            if not part:
                continue
            try:
                delay = float(part)
            except ValueError:
                continue
            if delay > 0:
                out.append(delay)
        return tuple(sorted(out)) or DEFAULT_PASTE_CONFIRM_BACKOFF


# Singleton instance for convenient imports
settings = Settings()
