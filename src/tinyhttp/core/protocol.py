"""
=============================================================================
CONNECTION PROTOCOL
=============================================================================

Everything that happens between accept() and close() for one client.

=============================================================================
REQUEST HANDLING FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   AWAIT_REQUEST   read 5 .. (max_route_length + 5) bytes             │
    │        │          "GET " + path + one delimiter byte                 │
    │        ▼                                                             │
    │   PARSE           must start with b"GET " exactly                    │
    │        │          path = bytes up to first space/control char        │
    │        │          path must be non-empty and start with "/"          │
    │        ▼                                                             │
    │   ROUTE_LOOKUP    table.lookup(path)                                 │
    │        │            hit  → 200 OK, matched blob                      │
    │        │            miss → 404 NOT FOUND, not-found route's blob     │
    │        │            miss again → built-in "404 NOT FOUND" body,      │
    │        │                         then NotFoundRouteMissingError      │
    │        ▼                                                             │
    │   RESPOND         header, then body, each with write_all()           │
    │        │                                                             │
    │        ▼                                                             │
    │   CLOSED          shutdown(SHUT_RDWR), close()                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Any failure moves the connection to FATAL, raises a ConnectionFatalError
and still ends in CLOSED. Nothing here can affect another connection:
the only shared object is the frozen RouteTable, which is only read.

=============================================================================
WHY NOT PARSE HTTP PROPERLY?
=============================================================================

A static site only needs to know WHICH file. Every header we parse is
code that can be attacked. Reading at most max_route_length + 5 bytes
means a client can't make us buffer more than our longest URL, and a
literal prefix match can't be confused by odd casing, folding, or
encodings. A path longer than any route simply misses.
=============================================================================
"""

import logging
import os
import re
from typing import Optional

from ..content.routes import RouteEntry, RouteTable
from ..errors import (
    ConnectionFatalError,
    NonGetRequestError,
    NotFoundRouteMissingError,
    WeirdRequestPathError,
)
from ..http.response import HTTPResponse, ResponseStatus, fallback_not_found
from .connection import Connection, ConnectionState


logger = logging.getLogger(__name__)

REQUEST_PREFIX = b"GET "
MIN_REQUEST_SIZE = 5            # "GET /"
FRAMING_OVERHEAD = 5            # "GET " + one delimiter after the path

# Path token: everything up to the first whitespace or control byte.
_PATH_TOKEN = re.compile(rb"[^\x00-\x20\x7f]*")


def max_request_size(max_route_length: int) -> int:
    """Largest request we will read for a table whose longest route is given."""
    return max(max_route_length + FRAMING_OVERHEAD, MIN_REQUEST_SIZE)


def parse_request(raw: bytes) -> str:
    """
    Extract the request path.

    Raises:
        NonGetRequestError: Input doesn't start with b"GET ".
        WeirdRequestPathError: Path is empty or doesn't start with "/".
    """
    if not raw.startswith(REQUEST_PREFIX):
        raise NonGetRequestError("Got a non-GET request. Aborting.")

    token = _PATH_TOKEN.match(raw, len(REQUEST_PREFIX)).group(0)
    if not token or not token.startswith(b"/"):
        raise WeirdRequestPathError("Got a weird request path. Aborting.")

    # Same decoding the scanner's str paths went through.
    return os.fsdecode(token)


class ConnectionProtocol:
    """
    Serves one request per connection from a frozen RouteTable.

    One instance is shared by every worker: it holds only read-only
    state (the table, the not-found route and the request size bound).

    Usage:
        protocol = ConnectionProtocol(table, "/404.html", max_route_length)
        protocol.serve(conn)     # always closes conn
    """

    def __init__(self, table: RouteTable, notfound_route: str, max_route_length: int):
        self.table = table
        self.notfound_route = notfound_route
        self.max_request_size = max_request_size(max_route_length)

    def serve(self, conn: Connection) -> HTTPResponse:
        """
        Run the full state machine on `conn`.

        Returns:
            The response that was sent.

        Raises:
            ConnectionFatalError: Anything that ended this connection early.
        """
        with conn:
            try:
                return self._serve(conn)
            except ConnectionFatalError:
                conn.state = ConnectionState.FATAL
                raise

    def _serve(self, conn: Connection) -> HTTPResponse:
        # ─────────────────────────────────────────────────────────────────
        # AWAIT_REQUEST
        # ─────────────────────────────────────────────────────────────────
        conn.state = ConnectionState.AWAIT_REQUEST
        raw = conn.receive(MIN_REQUEST_SIZE, self.max_request_size)

        # ─────────────────────────────────────────────────────────────────
        # PARSE
        # ─────────────────────────────────────────────────────────────────
        conn.state = ConnectionState.PARSE
        path = parse_request(raw)

        # ─────────────────────────────────────────────────────────────────
        # ROUTE_LOOKUP
        # ─────────────────────────────────────────────────────────────────
        conn.state = ConnectionState.ROUTE_LOOKUP
        status = ResponseStatus.OK
        entry: Optional[RouteEntry] = self.table.lookup(path)

        if entry is None:
            logger.info(f"[{conn.id}] NOT FOUND path: {path}")
            status = ResponseStatus.NOT_FOUND
            entry = self.table.lookup(self.notfound_route)

        if entry is None:
            # Misconfiguration: the not-found page itself is missing.
            conn.state = ConnectionState.RESPOND
            response = fallback_not_found()
            conn.send(response.to_bytes())
            raise NotFoundRouteMissingError(
                f"The not-found route {self.notfound_route} wasn't found."
            )

        logger.info(f"[{conn.id}] GET {path} -> {status}")

        # ─────────────────────────────────────────────────────────────────
        # RESPOND
        # ─────────────────────────────────────────────────────────────────
        conn.state = ConnectionState.RESPOND
        response = HTTPResponse.for_blob(status, entry.blob)
        conn.send(response.header_bytes())
        if response.content_length:
            conn.send(response.body)

        return response
