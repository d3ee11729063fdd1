"""Map ``--output-format stream-json`` lines onto client events.

Terminal output interleaves JSON event lines with ordinary escape-coded
text. Lines that are not JSON objects are ignored; they still reach the
client through the raw output stream.
"""

from __future__ import annotations

import json
from typing import Any

# Event types that end an assistant turn.
TURN_END_TYPES = frozenset({"message_stop", "result"})


class LineSplitter:
    """Accumulates chunks and yields complete, non-empty, stripped lines."""

    def __init__(self) -> None:
        self.pending = ""

    def feed(self, chunk: str) -> list[str]:
        self.pending += chunk
        *lines, self.pending = self.pending.split("\n")
        return [line.strip() for line in lines if line.strip()]


def parse_json_line(line: str) -> dict[str, Any] | None:
    """Decode a line as a JSON object, or return None for anything else."""
    if not line.startswith("{"):
        return None
    try:
        value = json.loads(line)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def _tool_result_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "")
            for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        )
    return ""


def parse_stream_event(payload: dict[str, Any]) -> dict[str, Any] | None:
    """Translate one CLI stream event into a client event dict.

    Returns None for event types with no client-facing counterpart.
    """
    kind = payload.get("type")

    if kind == "assistant":
        message = payload.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, list):
            return None
        # The first text or thinking block wins, in block order.
        for block in content:
            if not isinstance(block, dict):
                continue
            if block.get("type") == "text" and block.get("text"):
                return {"type": "text", "content": block["text"]}
            if block.get("type") == "thinking" and block.get("thinking"):
                return {"type": "thinking", "content": block["thinking"]}
        return None

    if kind == "user":
        message = payload.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, list):
            return None
        for block in content:
            if isinstance(block, dict) and block.get("type") == "tool_result":
                return {
                    "type": "tool_use_output",
                    "id": block.get("tool_use_id"),
                    "output": _tool_result_text(block.get("content")),
                }
        return None

    if kind == "result":
        tool_use_id = payload.get("tool_use_id")
        if not tool_use_id:
            return None
        is_error = bool(payload.get("is_error"))
        event: dict[str, Any] = {
            "type": "tool_use_end",
            "id": tool_use_id,
            "status": "error" if is_error else "success",
        }
        if is_error:
            event["error"] = payload.get("error")
        return event

    if kind == "content_block_start":
        block = payload.get("content_block") or {}
        if block.get("type") == "thinking":
            return {"type": "thinking", "content": ""}
        if block.get("type") == "tool_use":
            return {
                "type": "tool_use_start",
                "id": block.get("id"),
                "tool": block.get("name"),
                "input": {},
            }
        return None

    if kind == "content_block_delta":
        delta = payload.get("delta") or {}
        if delta.get("type") == "text_delta":
            return {"type": "text", "content": delta.get("text", "")}
        if delta.get("type") == "thinking_delta":
            return {"type": "thinking", "content": delta.get("thinking", "")}
        return None

    if kind == "error":
        error = payload.get("error")
        message = error.get("message") if isinstance(error, dict) else None
        return {"type": "error", "error": message or payload.get("message") or "Unknown error"}

    return None


def ends_turn(payload: dict[str, Any]) -> bool:
    return payload.get("type") in TURN_END_TYPES
