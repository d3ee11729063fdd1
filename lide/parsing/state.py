"""Classify the CLI's visible state from the tail of its terminal output.

The rules are checked in order and the first match wins, so more specific
markers (a pending paste confirmation) must precede generic ones (the
response bullet). Only the last ``TAIL_WINDOW`` characters are examined.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

from lide.models import CliState

TAIL_WINDOW = 500

RESPONSE_MARKER = "⏺"

PASTE_MARKERS = ("[Pasted text #", "lines]")
READY_MARKERS = ("⏵⏵", "bypass permissions")
THINKING_MARKERS = ("Thinking", "Precipitating", "thinking)", "✻")

# Most specific first; the last pattern catches any ``⏺ Name(args)`` call.
TOOL_PATTERNS = (
    re.compile(r"⏺\s*(Search|Grep|Glob)\s*\(", re.IGNORECASE),
    re.compile(r"⏺\s*(Read|Write|Edit)\s*\(", re.IGNORECASE),
    re.compile(r"⏺\s*(Bash|Task)\s*\(", re.IGNORECASE),
    re.compile(r"⏺\s*(\w+)\s*\([^)]*\)"),
)


@dataclass(frozen=True)
class Classification:
    state: CliState
    tool: str | None = None


def _paste_pending(recent: str) -> Classification | None:
    if all(marker in recent for marker in PASTE_MARKERS):
        return Classification(CliState.WAITING_CONFIRM)
    return None


def _ready(recent: str) -> Classification | None:
    if any(marker in recent for marker in READY_MARKERS):
        return Classification(CliState.IDLE)
    return None


def _thinking(recent: str) -> Classification | None:
    if any(marker in recent for marker in THINKING_MARKERS):
        return Classification(CliState.THINKING)
    return None


def _tool_running(recent: str) -> Classification | None:
    for pattern in TOOL_PATTERNS:
        match = pattern.search(recent)
        if match:
            return Classification(CliState.TOOL_RUNNING, match.group(1))
    return None


def _responding(recent: str) -> Classification | None:
    if RESPONSE_MARKER in recent:
        return Classification(CliState.RESPONDING)
    return None


RULES: tuple[Callable[[str], Classification | None], ...] = (
    _paste_pending,
    _ready,
    _thinking,
    _tool_running,
    _responding,
)


def classify(output: str) -> Classification:
    """Return the state implied by the most recent output."""
    recent = output[-TAIL_WINDOW:]
    for rule in RULES:
        result = rule(recent)
        if result is not None:
            return result
    return Classification(CliState.UNKNOWN)
