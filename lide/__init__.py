"""Session orchestration server for long-running terminal AI CLIs."""

__version__ = "0.1.0"
