"""
=============================================================================
EXIT CODES AND ERROR HIERARCHY
=============================================================================

Every way TinyHTTP can fail has a name and a number. Operators read the
number from the process exit status (or from the log line of a dead
connection) and know exactly which check tripped.

=============================================================================
TWO FATALITY SCOPES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      WHO DIES WHEN SOMETHING BREAKS?                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ProcessFatalError                ConnectionFatalError              │
    │   ─────────────────                ────────────────────              │
    │                                                                      │
    │   • bad configuration              • non-GET request                 │
    │   • unsafe web root (symlink,      • weird request path              │
    │     cycle, device file, ...)       • too few / too many bytes        │
    │   • socket/bind/listen failure     • recv/send failure or timeout    │
    │   • sandbox failure                • not-found route missing         │
    │                                                                      │
    │   Whole server exits with          Only this connection is closed.   │
    │   exit_code before serving.        Listener and siblings live on.    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Errors are raised where they happen and caught at exactly two places:
the per-connection dispatch boundary in server.py, and main() in
__main__.py.
=============================================================================
"""

from enum import IntEnum
from typing import Optional


class ExitCode(IntEnum):
    """
    All exit / status codes TinyHTTP will ever report.

    The numbering is part of the operational contract: scripts and
    supervisors key off these values, so never renumber.
    """

    OK = 0
    SOCKET_FAILED = 1
    BIND_FAILED = 2
    LISTEN_FAILED = 3
    SANDBOX_FAILED = 4
    FORK_FAILED = 5                 # Worker dispatch could not be started
    INVALID_NUMERIC_ENV_VAR = 6
    DONT_USE_ROOT = 7
    FTS_OPEN_FAILED = 8             # Web root missing or not a directory
    FTS_CLOSE_FAILED = 9
    FTS_READ_FAILED = 10            # Could not list a directory / stat an entry
    SYMLINK_IN_WEB_ROOT = 11
    FTS_READ_FAILED_ERR_DNR = 12
    FTS_UNUSUAL_FILE = 13           # Device, socket, FIFO, cross-device entry
    CYCLE_IN_WEB_ROOT = 14
    HCREATE_FAILED = 15             # Route table could not be created
    FOPEN_FAILED = 16
    MALLOC_FAILED = 17
    FREAD_FAILED = 18
    HSEARCH_TABLE_FULL = 19         # Duplicate route or table over capacity
    SETSOCKOPT_FAILED = 20
    SOCKET_READ_FAILED = 21
    NON_GET_REQUEST = 22
    SOCKET_WEIRD_RX_LENGTH = 23
    WEIRD_REQUEST_PATH = 24
    NOTFOUND_NOT_FOUND = 25
    SOCKET_SEND_FAILED = 26
    SOCKET_WEIRD_TX_LENGTH = 27


class TinyHTTPError(Exception):
    """
    Base class for every TinyHTTP failure.

    Carries the ExitCode that classifies it, plus the OS error (if any)
    so log lines can show errno detail next to our own context.
    """

    exit_code: ExitCode = ExitCode.OK

    def __init__(
        self,
        message: str,
        exit_code: Optional[ExitCode] = None,
        os_error: Optional[OSError] = None,
    ):
        if exit_code is not None:
            self.exit_code = exit_code
        self.os_error = os_error
        if os_error is not None and os_error.strerror:
            message = f"{message}: {os_error.strerror}"
        super().__init__(message)


# =============================================================================
# PROCESS-FATAL: the server must not start (or keep running)
# =============================================================================

class ProcessFatalError(TinyHTTPError):
    """Terminates the whole server."""


class ConfigError(ProcessFatalError):
    exit_code = ExitCode.INVALID_NUMERIC_ENV_VAR


class SecurityError(ProcessFatalError):
    exit_code = ExitCode.DONT_USE_ROOT


class SandboxError(ProcessFatalError):
    exit_code = ExitCode.SANDBOX_FAILED


class SocketSetupError(ProcessFatalError):
    """socket(), bind() or listen() failed; exit_code says which."""
    exit_code = ExitCode.SOCKET_FAILED


class DispatchError(ProcessFatalError):
    """A worker thread could not be started."""
    exit_code = ExitCode.FORK_FAILED


class ScanError(ProcessFatalError):
    """The web root failed a safety check or could not be loaded."""
    exit_code = ExitCode.FTS_READ_FAILED

    def __init__(self, message: str, exit_code: Optional[ExitCode] = None,
                 os_error: Optional[OSError] = None, path: Optional[str] = None):
        super().__init__(message, exit_code, os_error)
        self.path = path


class DuplicateRouteError(ScanError):
    exit_code = ExitCode.HSEARCH_TABLE_FULL


class RouteTableFullError(ScanError):
    exit_code = ExitCode.HSEARCH_TABLE_FULL


class RouteTableFrozenError(ScanError):
    exit_code = ExitCode.HSEARCH_TABLE_FULL


# =============================================================================
# CONNECTION-FATAL: only the current worker's connection ends
# =============================================================================

class ConnectionFatalError(TinyHTTPError):
    """Terminates only the current connection."""


class SocketOptionError(ConnectionFatalError):
    exit_code = ExitCode.SETSOCKOPT_FAILED


class SocketReadError(ConnectionFatalError):
    exit_code = ExitCode.SOCKET_READ_FAILED


class WeirdRxLengthError(ConnectionFatalError):
    exit_code = ExitCode.SOCKET_WEIRD_RX_LENGTH

    def __init__(self, received: int, min_size: int, max_size: int):
        super().__init__(
            f"Weird receive length: got {received} bytes, "
            f"expected {min_size}..{max_size}"
        )
        self.received = received


class NonGetRequestError(ConnectionFatalError):
    exit_code = ExitCode.NON_GET_REQUEST


class WeirdRequestPathError(ConnectionFatalError):
    exit_code = ExitCode.WEIRD_REQUEST_PATH


class NotFoundRouteMissingError(ConnectionFatalError):
    exit_code = ExitCode.NOTFOUND_NOT_FOUND


class SocketSendError(ConnectionFatalError):
    exit_code = ExitCode.SOCKET_SEND_FAILED


class WeirdTxLengthError(ConnectionFatalError):
    exit_code = ExitCode.SOCKET_WEIRD_TX_LENGTH

    def __init__(self, sent: int, expected: int):
        super().__init__(
            f"Didn't manage to send enough bytes to the client: "
            f"sent {sent} of {expected}"
        )
        self.sent = sent
