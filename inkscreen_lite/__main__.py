"""Command-line entry for inkscreen_lite."""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn

from . import run_server


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the inkscreen_lite CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="inkscreen_lite",
        description="inkscreen - render server for e-ink display panels",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m inkscreen_lite                      # Start server on default port (8080)
  python -m inkscreen_lite --port 3000          # Start server on port 3000
  python -m inkscreen_lite --store memory       # Run without a database file
        """,
    )

    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 8080, or INKSCREEN_WEB_PORT)",
    )
    parser.add_argument(
        "--host",
        metavar="HOST",
        help="Address to bind (default: 0.0.0.0, or INKSCREEN_WEB_HOST)",
    )
    parser.add_argument(
        "--store",
        choices=("sqlite", "memory"),
        help="Device/template store backend (default: sqlite, or INKSCREEN_STORE)",
    )

    return parser


def main() -> NoReturn:
    """Run the inkscreen_lite CLI."""
    parser = _create_parser()
    args = parser.parse_args()

    try:
        run_server(args)
    except KeyboardInterrupt:
        sys.exit(130)
    sys.exit(0)


if __name__ == "__main__":
    main()
