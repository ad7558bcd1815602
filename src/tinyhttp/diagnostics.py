"""
=============================================================================
DIAGNOSTICS - LEVELED LOGGING
=============================================================================

All TinyHTTP logging goes through the stdlib logging module under the
"tinyhttp" namespace. This module adds the two things the stdlib lacks:

    NOTICE (25)   Between INFO and WARNING. Used for the few lines an
                  operator always wants to see (startup, scan summary).

    fatal()       Log a process-fatal condition together with the exit
                  code it maps to, and hand the code back to the caller.

=============================================================================
LOG FORMATS
=============================================================================

    TEXT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 2026-10-16 10:55:36 [NOTICE] tinyhttp.server[4242]: STARTING UP     │
    └─────────────────────────────────────────────────────────────────────┘

    JSON (one object per line, for log aggregators):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"time": "...", "level": "ERROR", "logger": "tinyhttp.server",     │
    │  "pid": 4242, "thread": "worker-1", "message": "..."}               │
    └─────────────────────────────────────────────────────────────────────┘

The process id is part of every line: with many workers logging at once,
the thread name and pid are what tie lines to a connection.
=============================================================================
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from .errors import ExitCode


NOTICE = 25
logging.addLevelName(NOTICE, "NOTICE")

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s[%(process)d]: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_LEVELS = ("DEBUG", "INFO", "NOTICE", "WARNING", "ERROR", "CRITICAL")

logger = logging.getLogger("tinyhttp")


class JSONFormatter(logging.Formatter):
    """Render each record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "pid": record.process,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        exit_code = getattr(record, "exit_code", None)
        if exit_code is not None:
            entry["exit_code"] = exit_code
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(level: str = "INFO", log_format: str = "text", stream=None) -> None:
    """
    Configure the "tinyhttp" logger.

    Installs exactly one stream handler (stderr by default), so calling
    this twice does not duplicate output.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(stream or sys.stderr)
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT))

    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(numeric_level)
    logger.propagate = False


def notice(message: str, log: Optional[logging.Logger] = None) -> None:
    """Log at NOTICE level."""
    (log or logger).log(NOTICE, message)


def fatal(code: ExitCode, message: str, log: Optional[logging.Logger] = None) -> ExitCode:
    """
    Log a fatal condition and return its exit code.

    The caller decides what "fatal" means in its scope: main() passes the
    code to sys.exit(), the connection boundary just closes the socket.
    """
    (log or logger).critical(
        f"{message} (exit {int(code)} {code.name})",
        extra={"exit_code": int(code)},
    )
    return code
