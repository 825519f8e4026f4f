"""Command-line interface for todoapi."""

from __future__ import annotations

import argparse

from pathlib import Path
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Sequence


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="todoapi",
        description="todoapi server and configuration tools",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Run the API server with uvicorn")
    serve_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Bind address (uses config default)",
    )
    serve_parser.add_argument(
        "--port",
        "-p",
        type=int,
        default=None,
        help="Bind port (uses config default)",
    )
    serve_parser.add_argument(
        "--reload",
        action="store_true",
        default=None,
        help="Enable auto-reload for development",
    )

    # config command
    config_parser = subparsers.add_parser("config", help="Show or export configuration")
    config_group = config_parser.add_mutually_exclusive_group()
    config_group.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration (secrets redacted)",
    )
    config_group.add_argument(
        "--env",
        action="store_true",
        help="Export configuration as environment variables",
    )
    config_parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Output file path (default: stdout)",
    )

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the main CLI entry point.

    Returns
    -------
    int
        Exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        return handle_serve(args)
    if args.command == "config":
        return handle_config(args)
    parser.print_help()
    return 0


def handle_serve(args: argparse.Namespace) -> int:
    """Handle the serve command."""
    import uvicorn

    from .config import get_settings

    server = get_settings().server
    uvicorn.run(
        "todoapi.app:create_app",
        factory=True,
        host=args.host or server.host,
        port=args.port or server.port,
        reload=server.reload if args.reload is None else args.reload,
    )
    return 0


def handle_config(args: argparse.Namespace) -> int:
    """Handle the config command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    from .config import TodoApiSettings

    settings = TodoApiSettings()
    output = settings.to_env() if args.env else settings.show()

    if args.output:
        Path(args.output).write_text(output, encoding="utf-8")
        print(f"Configuration written to {args.output}")
    else:
        print(output)

    return 0
