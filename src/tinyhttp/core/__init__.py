"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  SocketServer        bind/listen, accept loop, signals              │
    │        │                                                            │
    │        │ Connection per client                                      │
    │        ▼                                                            │
    │  ThreadPool          one worker per in-flight connection            │
    │        │                                                            │
    │        ▼                                                            │
    │  ConnectionProtocol  read → parse → lookup → write → close          │
    │        │                                                            │
    │        ▼                                                            │
    │  bounded_io          looped recv/send with length checks            │
    └─────────────────────────────────────────────────────────────────────┘
=============================================================================
"""

from .bounded_io import read_exact_or_less, write_all
from .connection import Connection, ConnectionState
from .protocol import ConnectionProtocol, parse_request
from .socket_server import SocketServer
from .thread_pool import ThreadPool

__all__ = [
    "read_exact_or_less",
    "write_all",
    "Connection",
    "ConnectionState",
    "ConnectionProtocol",
    "parse_request",
    "SocketServer",
    "ThreadPool",
]
