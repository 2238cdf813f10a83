"""
Command line entry point: run the browser MCP server over stdio.
"""
from __future__ import annotations

import argparse
import logging
import sys

from browser_mcp.browser import BrowserConfig
from browser_mcp.cdp.client import setup_logging


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="browser-mcp",
        description="MCP server exposing browser tools over the Chrome DevTools Protocol.",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run Chrome without a visible window (default: visible window).",
    )
    parser.add_argument(
        "--host",
        default="localhost",
        help="Host of an already running Chrome to attach to (default: localhost).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=9222,
        help="Port of the DevTools protocol (default: 9222).",
    )
    parser.add_argument("--width", type=int, default=1280, help="Viewport width (default: 1280).")
    parser.add_argument("--height", type=int, default=720, help="Viewport height (default: 720).")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> BrowserConfig:
    return BrowserConfig(
        headless=args.headless,
        host=args.host,
        port=args.port,
        viewport_width=args.width,
        viewport_height=args.height,
        debug=args.debug,
    )


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    setup_logging(logging.INFO, debug=args.debug)

    # Imported late so --help works without the server stack loaded.
    from browser_mcp.server import run_server

    run_server(build_config(args))
    return 0


if __name__ == "__main__":
    sys.exit(main())
