"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted client socket for the lifetime of ONE request.

=============================================================================
CONNECTION STATES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     Connection State Machine                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │     AWAIT_REQUEST ──► PARSE ──► ROUTE_LOOKUP ──► RESPOND ──► CLOSED  │
    │           │             │            │              │           ▲    │
    │           └─────────────┴──────┬─────┴──────────────┘           │    │
    │                                ▼                                │    │
    │                              FATAL ─────────────────────────────┘    │
    │                                                                      │
    │   FATAL:  something went wrong for THIS connection only.             │
    │   CLOSED: both directions shut down, descriptor released.            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

There is no KEEP_ALIVE state: one request, one response, close.

=============================================================================
TWO TIMEOUTS, ONE SOCKET
=============================================================================

Python sockets carry a single timeout, but we want separate receive and
send deadlines. The connection switches the timeout right before each
phase: rx_timeout before reading the request, tx_timeout before writing
the response. Since a connection only ever reads, then writes, the two
never overlap.
=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from ..errors import SocketOptionError
from .bounded_io import read_exact_or_less, write_all


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    AWAIT_REQUEST = "await_request"
    PARSE = "parse"
    ROUTE_LOOKUP = "route_lookup"
    RESPOND = "respond"
    CLOSED = "closed"
    FATAL = "fatal"


@dataclass
class Connection:
    """
    One client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier used to tag log lines.
        state: Current protocol state.
        rx_timeout: Receive deadline in seconds.
        tx_timeout: Send deadline in seconds.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.AWAIT_REQUEST
    created_at: float = field(default_factory=time.time)

    rx_timeout: float = 1.0
    tx_timeout: float = 1.0

    bytes_received: int = 0
    bytes_sent: int = 0

    def __post_init__(self):
        # Accepted sockets may inherit non-blocking mode from the listener.
        self.socket.setblocking(True)

    @property
    def client(self) -> str:
        if isinstance(self.address, tuple) and len(self.address) >= 2:
            return f"{self.address[0]}:{self.address[1]}"
        return str(self.address)

    @property
    def age(self) -> float:
        return time.time() - self.created_at

    def _set_timeout(self, seconds: float) -> None:
        try:
            self.socket.settimeout(seconds)
        except (OSError, ValueError) as e:
            raise SocketOptionError(f"settimeout({seconds}) failed: {e}") from e

    # =========================================================================
    # I/O
    # =========================================================================

    def receive(self, min_size: int, max_size: int) -> bytes:
        """Read the request under the receive deadline."""
        self._set_timeout(self.rx_timeout)
        data = read_exact_or_less(self.socket, min_size, max_size)
        self.bytes_received += len(data)
        return data

    def send(self, data: Union[bytes, memoryview]) -> None:
        """Write `data` completely under the send deadline."""
        self._set_timeout(self.tx_timeout)
        self.bytes_sent += write_all(self.socket, data)

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self) -> None:
        """
        Shut down both directions and release the descriptor.

        Idempotent. Errors here are expected (the peer may already be
        gone) and are not reported.
        """
        if self.state == ConnectionState.CLOSED:
            return

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Peer already disconnected

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(
            f"[{self.id}] closed after {self.age * 1000:.1f}ms "
            f"(rx {self.bytes_received}B, tx {self.bytes_sent}B)"
        )

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
