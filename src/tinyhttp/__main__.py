"""
=============================================================================
TINYHTTP CLI ENTRY POINT
=============================================================================

Run the server from the command line:

    python -m tinyhttp [OPTIONS]
    tinyhttp [OPTIONS]

Examples:

    tinyhttp                                  # ./public_html on :8080
    tinyhttp --root ./site --port 3000        # Custom root and port
    tinyhttp --not-found /missing.html        # Custom 404 page
    tinyhttp -l DEBUG --log-format json       # Verbose, machine-readable

Every option also has a TH_CFG_* environment variable (see config.py);
flags win over the environment.

The process exit status is the ExitCode of whatever stopped the server
(see errors.py), so supervisors can tell a bad web root (11, 13, 14, ...)
from a port clash (2).
=============================================================================
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .config import ServerConfig
from .diagnostics import LOG_LEVELS, fatal, notice, setup_logging
from .errors import ExitCode, ProcessFatalError
from .security import sanity_check
from .server import TinyHTTPServer


logger = logging.getLogger("tinyhttp.main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tinyhttp",
        description="Tiny static file server: preloaded content, literal GET matching",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tinyhttp                                # Serve ./public_html on port 8080
  tinyhttp --root ./site --port 3000      # Custom root and port
  tinyhttp --host 127.0.0.1               # Localhost only
  tinyhttp --not-found /missing.html      # Route served on a miss
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", help="Address to bind to (default: 0.0.0.0)")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (default: 8080)")
    parser.add_argument("--backlog", type=int, help="Listen backlog, 1-128 (default: 16)")
    parser.add_argument("--rx-timeout", type=float, help="Receive timeout in seconds (default: 1)")
    parser.add_argument("--tx-timeout", type=float, help="Send timeout in seconds (default: 1)")

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--root", "-r", help="Web root directory (default: public_html)")
    parser.add_argument("--not-found", help="Route served on a miss (default: /404.html)")

    # ─────────────────────────────────────────────────────────────────────
    # PERFORMANCE / LOGGING / SECURITY
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--workers", "-w", type=int,
                        help="Worker threads kept warm; more start on demand (default: 4)")
    parser.add_argument("--log-level", "-l", choices=LOG_LEVELS, help="Logging level (default: INFO)")
    parser.add_argument("--log-format", choices=["text", "json"], help="Log format (default: text)")
    parser.add_argument("--no-sandbox", action="store_true",
                        help="Don't restrict the process after binding")
    parser.add_argument("--allow-root", action="store_true",
                        help="Permit starting as root (privileges are dropped to 'nobody')")

    parser.add_argument("--version", "-v", action="version", version=f"TinyHTTP {__version__}")
    return parser


def resolve_config(args: argparse.Namespace, environ=None) -> ServerConfig:
    """Defaults, then TH_CFG_* environment, then command-line flags."""
    config = ServerConfig.from_env(environ)

    overrides = {
        "host": args.host,
        "port": args.port,
        "backlog": args.backlog,
        "rx_timeout": args.rx_timeout,
        "tx_timeout": args.tx_timeout,
        "web_root": args.root,
        "notfound_route": args.not_found,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)

    if args.workers is not None:
        config.min_workers = args.workers
    if args.no_sandbox:
        config.sandbox = False
    if args.allow_root:
        config.allow_root = True

    config.validate()
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """
    Parse arguments, start the server, and return the process exit code.
    """
    args = build_parser().parse_args(argv)

    # Logging first, with whatever the flags say, so config errors are logged too.
    setup_logging(args.log_level or "INFO", args.log_format or "text")

    try:
        config = resolve_config(args)
        setup_logging(config.log_level, config.log_format)

        sanity_check(allow_root=config.allow_root)
        notice("TinyHTTP STARTING UP", logger)
        config.log_summary()

        TinyHTTPServer(config).run()

    except ProcessFatalError as e:
        return int(fatal(e.exit_code, str(e), logger))

    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")

    return int(ExitCode.OK)


# =============================================================================
# ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    sys.exit(main())
