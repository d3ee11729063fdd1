"""Layered ``.env`` configuration for the ``lide`` command.

Files are applied lowest precedence first and never override variables
that are already set, so the effective order is: environment, then
``./.env``, then ``$XDG_CONFIG_HOME/lide/config.env``, then the defaults in
:mod:`lide.settings`.
"""

from __future__ import annotations

import os
from pathlib import Path

APP_DIR = "lide"
CONFIG_FILE = "config.env"


def _xdg_dir(variable: str, *fallback: str) -> Path:
    base = os.environ.get(variable, "").strip()
    root = Path(base) if base else Path.home().joinpath(*fallback)
    return root / APP_DIR


def config_dir() -> Path:
    """Return ``$XDG_CONFIG_HOME/lide`` (``~/.config/lide`` by default)."""
    return _xdg_dir("XDG_CONFIG_HOME", ".config")


def data_dir_default() -> Path:
    """Return ``$XDG_DATA_HOME/lide`` (``~/.local/share/lide`` by default)."""
    return _xdg_dir("XDG_DATA_HOME", ".local", "share")


def config_files() -> list[Path]:
    """Candidate config files, lowest precedence first."""
    return [config_dir() / CONFIG_FILE, Path.cwd() / ".env"]


def _parse_value(raw: str) -> str:
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    # An unquoted "#" starts a comment only at the start or after a space.
    for index, char in enumerate(value):
        if char == "#" and (index == 0 or value[index - 1] == " "):
            return value[:index].rstrip()
    return value


def parse_env_file(path: str | Path) -> dict[str, str]:
    """Read ``KEY=value`` pairs from a dotenv-style file.

    Blank lines, ``#`` comments and an ``export`` prefix are accepted; lines
    without a key are skipped. A missing or unreadable file yields ``{}``.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return {}

    values: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, sep, raw = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        values[key] = _parse_value(raw)
    return values


def load_config() -> list[Path]:
    """Apply config files to ``os.environ`` without overriding set variables.

    Returns:
        The config files that were found, lowest precedence first.
    """
    merged: dict[str, str] = {}
    found: list[Path] = []
    for path in config_files():
        if not path.is_file():
            continue
        found.append(path)
        merged.update(parse_env_file(path))

    for key, value in merged.items():
        os.environ.setdefault(key, value)
    return found
