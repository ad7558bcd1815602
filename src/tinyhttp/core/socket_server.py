"""
=============================================================================
LISTENING SOCKET
=============================================================================

Owns the listening TCP socket and the accept loop.

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. socket()    Create the listening socket       → SOCKET_FAILED
    2. bind()      Reserve host:port                 → BIND_FAILED
    3. listen()    Start the kernel accept queue     → LISTEN_FAILED
                   (backlog = queue length)

       ── the caller restricts privileges HERE, between listen() and
          the first accept(): the socket already exists, so nothing
          afterwards needs the right to create one ──

    4. accept()    One new socket per client, looped until shutdown
    5. close()     Release the listening socket

Steps 1-3 are bind(), step 4 is serve(). They are split so the server can
enter its sandbox in between. Failures in 1-3 are process-fatal
(SocketSetupError); an accept() failure is logged and the loop goes on.

=============================================================================
INTERRUPTIBLE ACCEPT
=============================================================================

The listening socket has a 1 second timeout, so accept() wakes up
regularly to check whether shutdown() was called:

    while not stop_requested:
        try:
            accept()          # blocks at most 1s
        except timeout:
            continue          # check the stop flag, loop again

shutdown() only sets the flag, so it may be called before serve() has
even started: the loop then exits on its first check.
=============================================================================
"""

import logging
import signal
import socket
import threading
import time
from typing import Callable, Optional, Tuple

from ..errors import ExitCode, SocketSetupError
from .connection import Connection


logger = logging.getLogger(__name__)

ACCEPT_POLL_INTERVAL = 1.0


class SocketServer:
    """
    Usage:
        server = SocketServer("0.0.0.0", 8080, backlog=16, rx_timeout=1, tx_timeout=1)
        server.bind()
        enter_sandbox()
        server.serve(handle_connection)   # blocks until shutdown()
    """

    def __init__(self, host: str, port: int, backlog: int = 16,
                 rx_timeout: float = 1.0, tx_timeout: float = 1.0):
        self.host = host
        self.port = port
        self.backlog = backlog
        self.rx_timeout = rx_timeout
        self.tx_timeout = tx_timeout

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._stop_requested = threading.Event()
        self._stopped = threading.Event()
        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running and not self._stop_requested.is_set()

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); the real port once bound, even if 0 was asked for."""
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.host, self.port)

    # =========================================================================
    # SETUP
    # =========================================================================

    def bind(self) -> None:
        """
        Create, bind and listen.

        Raises:
            SocketSetupError: exit_code is SOCKET_FAILED, BIND_FAILED or
                LISTEN_FAILED depending on which call failed.
        """
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            # Restarting the server shouldn't wait out TIME_WAIT.
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        except OSError as e:
            raise SocketSetupError("socket()", exit_code=ExitCode.SOCKET_FAILED, os_error=e) from e

        try:
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            raise SocketSetupError(
                f"bind() to {self.host}:{self.port}", exit_code=ExitCode.BIND_FAILED, os_error=e
            ) from e

        try:
            sock.listen(self.backlog)
        except OSError as e:
            sock.close()
            raise SocketSetupError("listen()", exit_code=ExitCode.LISTEN_FAILED, os_error=e) from e

        sock.settimeout(ACCEPT_POLL_INTERVAL)
        self._socket = sock
        host, port = self.address
        logger.info(f"listening on: {host}:{port}")

    def _setup_signals(self):
        """
        SIGTERM (docker stop, systemd) and SIGINT (Ctrl+C) trigger a
        graceful shutdown. Signal handlers can only be installed from the
        main thread; embedded/test servers running elsewhere skip this.
        """
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # ACCEPT LOOP
    # =========================================================================

    def serve(self, connection_handler: Callable[[Connection], None]) -> None:
        """
        Accept connections until shutdown(), passing each to the handler.

        The handler must not block: it hands the connection to a worker.
        """
        if self._socket is None:
            raise RuntimeError("serve() called before bind()")

        self._running = True
        self._setup_signals()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while not self._stop_requested.is_set():
            logger.debug("awaiting next connection with accept().")
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._stop_requested.is_set():
                    break
                # e.g. EMFILE; the listener itself stays up.
                logger.error(f"accept(): {e}")
                time.sleep(0.05)
                continue

            conn = Connection(
                socket=client_socket,
                address=client_address,
                rx_timeout=self.rx_timeout,
                tx_timeout=self.tx_timeout,
            )
            logger.info(f"[{conn.id}] accepted new client: {conn.client}")
            connection_handler(conn)

    def shutdown(self):
        """Stop the accept loop. Safe to call from any thread, more than once."""
        if self._running and not self._stop_requested.is_set():
            logger.info("Shutting down listener...")
        self._stop_requested.set()

    def _cleanup(self):
        self._running = False
        self._restore_signals()
        self.close()
        self._stopped.set()
        logger.info("Listener stopped")

    def close(self):
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._stopped.wait(timeout)
