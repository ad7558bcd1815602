"""
=============================================================================
TINYHTTP SERVER
=============================================================================

Ties the pieces together and owns the one place where a connection's
failure is classified and contained.

=============================================================================
STARTUP ORDER
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   1. scan web root        WebRootScanner → frozen RouteTable         │
    │                           (any problem: process-fatal, no socket)    │
    │   2. bind + listen        SocketServer.bind()                        │
    │   3. enter sandbox        security.enter_sandbox()                   │
    │   4. start workers        ThreadPool.start()                         │
    │   5. accept loop          SocketServer.serve()  ◄── blocks here      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The table is complete and frozen before the socket exists, so no client
can ever observe a half-built site.

=============================================================================
DISPATCH BOUNDARY
=============================================================================

    accept loop ──► pool.submit(conn) ──► worker ──► _process_connection
                                                          │
                                   ConnectionFatalError ◄─┤ logged, closed
                                   anything else        ◄─┘ logged, closed

Nothing a client does can raise out of _process_connection, so the
listener and every other in-flight connection keep going.
=============================================================================
"""

import logging
import threading
from typing import Optional, Tuple

from .config import ServerConfig
from .content import ScanResult, WebRootScanner
from .core import Connection, ConnectionProtocol, SocketServer, ThreadPool
from .diagnostics import notice
from .errors import ConnectionFatalError, DispatchError, NotFoundRouteMissingError
from .security import enter_sandbox


logger = logging.getLogger(__name__)


class TinyHTTPServer:
    """
    Static file server over a preloaded, read-only route table.

    Usage:
        server = TinyHTTPServer(ServerConfig(web_root="./site", port=8080))
        server.run()          # blocks until SIGINT/SIGTERM or shutdown()
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self._scan: Optional[ScanResult] = None
        self._protocol: Optional[ConnectionProtocol] = None

        self._socket_server = SocketServer(
            host=self.config.host,
            port=self.config.port,
            backlog=self.config.backlog,
            rx_timeout=self.config.rx_timeout,
            tx_timeout=self.config.tx_timeout,
        )
        self._thread_pool = ThreadPool(
            handler=self._process_connection,
            min_workers=self.config.min_workers,
        )

        self._ready = threading.Event()

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    @property
    def scan_result(self) -> Optional[ScanResult]:
        return self._scan

    @property
    def address(self) -> Tuple[str, int]:
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._socket_server.is_running

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server accepts connections (for tests/embedding)."""
        return self._ready.wait(timeout)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def load(self) -> ScanResult:
        """
        Scan the web root. Only once per server.

        Raises:
            ScanError: The web root is unsafe or unreadable.
        """
        if self._scan is None:
            self._scan = WebRootScanner(self.config.web_root).scan()
            self._protocol = ConnectionProtocol(
                table=self._scan.table,
                notfound_route=self.config.notfound_route,
                max_route_length=self._scan.max_route_length,
            )
            notice(
                f"web root loaded: {len(self._scan.table)} routes, "
                f"longest route {self._scan.max_route_length} bytes",
                logger,
            )
            if self.config.notfound_route not in self._scan.table:
                logger.warning(
                    f"not-found route {self.config.notfound_route} is not in the web root; "
                    f"misses will get the built-in 404 body"
                )
        return self._scan

    def run(self) -> None:
        """
        Start serving (blocking).

        Raises:
            ProcessFatalError: Scan, socket, sandbox or worker startup failed.
        """
        self.load()
        self._socket_server.bind()

        try:
            if self.config.sandbox:
                enter_sandbox()
            self._thread_pool.start()
        except BaseException:
            self._socket_server.close()
            raise

        host, port = self.address
        notice(f"TinyHTTP serving {self.config.web_root} on {host}:{port}", logger)
        for route in self._scan.table.routes():
            logger.debug(f"route: {route}")

        self._ready.set()
        try:
            self._socket_server.serve(self._handle_connection)
        finally:
            self._ready.clear()
            self._thread_pool.shutdown(wait=True, timeout=self.config.tx_timeout * 4)
            logger.info("Server stopped")

    def shutdown(self) -> None:
        """Stop accepting; run() returns once in-flight connections finish."""
        self._socket_server.shutdown()

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection) -> None:
        """Accept-loop callback: hand off to a worker without blocking."""
        try:
            self._thread_pool.submit(conn)
        except DispatchError:
            conn.close()
            raise

    def _process_connection(self, conn: Connection) -> None:
        """Serve one connection on a worker thread; never raises."""
        try:
            self._protocol.serve(conn)

        except NotFoundRouteMissingError as e:
            logger.error(
                f"[{conn.id}] MISCONFIGURATION: {e} Sent built-in 404 body "
                f"(exit {int(e.exit_code)} {e.exit_code.name})"
            )

        except ConnectionFatalError as e:
            logger.error(
                f"[{conn.id}] connection from {conn.client} aborted: {e} "
                f"(exit {int(e.exit_code)} {e.exit_code.name})"
            )

        except Exception as e:
            logger.exception(f"[{conn.id}] unexpected error handling {conn.client}: {e}")
            conn.close()

