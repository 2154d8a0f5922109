"""
=============================================================================
REDIRECTOR CLI ENTRY POINT
=============================================================================

    # Rules and port from the environment (port defaults to 3000)
    REDIRECT_A_FROM='^example.com/old$' REDIRECT_A_TO='example.com/new' \\
        python -m redirector

    # Flags override the environment
    python -m redirector --port 8080 --host 127.0.0.1 --log-format json

Exit status is 0 after a clean shutdown (Ctrl+C, SIGTERM) and 1 when the
server can't start, e.g. because the port is already in use.

=============================================================================
"""

import argparse
import logging
import sys

from . import __version__
from .config import ServerConfig, LOG_FORMATS
from .server import RedirectServer


logger = logging.getLogger("redirector")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="redirector",
        description="HTTP server that redirects requests according to REDIRECT_* rules",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Rules are read from the environment:
  REDIRECT_<NAME>_FROM   regex matched against host + path
  REDIRECT_<NAME>_TO     replacement, may use $1, ${name}

Examples:
  REDIRECT_A_FROM='^(.*)/docs/(.*)$' REDIRECT_A_TO='$1/help/$2' redirector
  redirector --port 8080 --log-format json
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS (default: from environment)
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Address to bind to (default: $HOST or ::, all interfaces)",
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: $PORT or 3000)",
    )

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum worker threads (default: $WORKERS or 16)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: $LOG_LEVEL or INFO)",
    )

    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=None,
        help="Access log format (default: $LOG_FORMAT or text)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"redirector {__version__}",
    )

    return parser


def load_config(args: argparse.Namespace, environ=None) -> ServerConfig:
    """Environment first, then command-line flags on top."""
    config = ServerConfig.from_env(environ)

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.workers is not None:
        config.max_workers = args.workers
        config.min_workers = min(config.min_workers, args.workers)
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_format is not None:
        config.log_format = args.log_format

    return config


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        server = RedirectServer(load_config(args))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        server.run()
    except OSError as e:
        logger.error(f"Server failed to start: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
