"""CLI entry point for lide.

Provides the ``lide start`` subcommand.

``load_config()`` must run before importing ``lide.main`` because that
module calls ``configure_logging()`` at import time.
"""

from __future__ import annotations

import argparse
import os
import sys


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point (``lide`` command)."""
    parser = argparse.ArgumentParser(
        prog="lide",
        description="lide: keep terminal AI CLIs alive across browser reconnects",
    )
    sub = parser.add_subparsers(dest="command")

    start_parser = sub.add_parser("start", help="Start the session server")
    start_parser.add_argument("--host", help="Host to bind to")
    start_parser.add_argument("--port", type=int, help="Port to bind to")
    start_parser.add_argument("--project", help="Default project directory for new sessions")
    start_parser.add_argument(
        "--no-tmux", action="store_true", help="Spawn shells directly instead of inside tmux"
    )

    args = parser.parse_args(argv)

    if args.command == "start":
        _run_start(args)
    else:
        parser.print_help()
        sys.exit(1)


def _run_start(args: argparse.Namespace) -> None:
    """Handle ``lide start``."""
    # Flags win over config files, which never override the environment.
    if args.host:
        os.environ["LIDE_HOST"] = args.host
    if args.port:
        os.environ["LIDE_PORT"] = str(args.port)
    if args.project:
        os.environ["LIDE_PROJECT_PATH"] = os.path.abspath(args.project)
    if args.no_tmux:
        os.environ["LIDE_TMUX_DISABLED"] = "1"

    from lide.config import load_config

    load_config()

    from lide.main import run

    run()


if __name__ == "__main__":
    main()
