"""
=============================================================================
TINYHTTP - Static File Server With A Tiny Attack Surface
=============================================================================

TinyHTTP serves a directory of static files and does almost nothing else,
on purpose:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       WHAT TINYHTTP DOES                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   AT STARTUP (once)                                                 │
    │   - Walks the web root, refusing symlinks, cycles, device files     │
    │   - Skips dotfiles and dot-directories                              │
    │   - Loads every file into memory, keyed by its route               │
    │   - Freezes the route table, binds the socket, sandboxes itself     │
    │                                                                      │
    │   PER CONNECTION                                                    │
    │   - Reads at most (longest route + 5) bytes                        │
    │   - Accepts only requests starting with the bytes "GET "           │
    │   - Exact route lookup, 404 page on a miss                         │
    │   - Writes status line, Content-Length, body. Closes.              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

No headers are parsed, no file is opened after startup, no connection is
kept alive. The filesystem is never consulted with anything a client sent.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    tinyhttp/
    ├── __init__.py          # This file
    ├── __main__.py          # CLI entry point
    ├── config.py            # ServerConfig, TH_CFG_* environment
    ├── diagnostics.py       # Logging setup, NOTICE level, fatal()
    ├── errors.py            # ExitCode and the error hierarchy
    ├── security.py          # Root refusal, sandbox
    ├── server.py            # TinyHTTPServer orchestrator
    ├── content/             # Startup-time content
    │   ├── blob.py          # ContentBlob
    │   ├── routes.py        # RouteTable
    │   └── scanner.py       # WebRootScanner
    ├── core/                # Networking
    │   ├── bounded_io.py    # Looped, size-checked recv/send
    │   ├── connection.py    # Client socket wrapper + states
    │   ├── protocol.py      # Per-connection state machine
    │   ├── socket_server.py # Listening socket, accept loop
    │   └── thread_pool.py   # Worker threads
    └── http/
        └── response.py      # Status lines and header bytes

=============================================================================
QUICK START
=============================================================================

    from tinyhttp import TinyHTTPServer, ServerConfig

    server = TinyHTTPServer(ServerConfig(web_root="./site", port=8080))
    server.run()

Or from a shell:

    TH_CFG_WEB_ROOT=./site tinyhttp
=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import TinyHTTPServer

__all__ = ["TinyHTTPServer", "ServerConfig", "__version__"]
