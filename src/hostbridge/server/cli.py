"""Server CLI entry point: ``hostbridge serve``."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from hostbridge import __version__
from hostbridge.config import load_settings


def run_server(host: str | None = None, port: int | None = None) -> None:
    """Start the FastAPI server with uvicorn."""
    import uvicorn

    settings = load_settings().server
    uvicorn.run(
        "hostbridge.server.app:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        log_level="info",
    )


def parse_cli_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="hostbridge", description="hostbridge server")
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument("command", nargs="?", default="serve", choices=["serve"])
    parser.add_argument("--host", default=None, help="Bind host (default: [server] host)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: [server] port)")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to hostbridge.toml (default: $HOSTBRIDGE_CONFIG)",
    )
    return parser.parse_args(argv if argv is not None else sys.argv[1:])


def main() -> None:
    """Load ``.env``, then serve."""
    load_dotenv()
    args = parse_cli_args()
    if args.config:
        # The app factory runs inside uvicorn and reads the path from the environment.
        os.environ["HOSTBRIDGE_CONFIG"] = str(Path(args.config).expanduser())
    run_server(args.host, args.port)
