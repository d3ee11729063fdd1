"""Interpretation of raw CLI terminal output."""

from lide.parsing.state import Classification, classify
from lide.parsing.stream import LineSplitter, ends_turn, parse_json_line, parse_stream_event

__all__ = [
    "Classification",
    "LineSplitter",
    "classify",
    "ends_turn",
    "parse_json_line",
    "parse_stream_event",
]
