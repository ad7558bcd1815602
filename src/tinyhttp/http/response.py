"""
=============================================================================
RESPONSE COMPOSITION
=============================================================================

TinyHTTP sends exactly one shape of response:

    HTTP/1.1 200 OK\r\n                 ← Status line
    Content-Length: 1234\r\n            ← The only header
    \r\n                                ← Empty line (separator)
    <body bytes>                        ← Straight from the ContentBlob

No Date, no Server, no Content-Type: every byte we don't send is a byte
nobody has to audit. The client learns where the body ends from
Content-Length, and the connection is closed after it anyway.

=============================================================================
ZERO-COPY BODY
=============================================================================

The header is built fresh per response (it is tiny). The body is NOT
concatenated onto it: HTTPResponse keeps a read-only memoryview of the
blob and the protocol writes header and body with two separate
write_all() calls, so a 50 MB file is never duplicated per request.
=============================================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union

from ..content.blob import ContentBlob


class ResponseStatus(Enum):
    """The only two status lines TinyHTTP ever produces."""

    OK = (200, "OK")
    NOT_FOUND = (404, "NOT FOUND")

    @property
    def code(self) -> int:
        return self.value[0]

    @property
    def phrase(self) -> str:
        return self.value[1]

    def __str__(self) -> str:
        return f"{self.code} {self.phrase}"


FALLBACK_NOT_FOUND_BODY = b"404 NOT FOUND"


@dataclass
class HTTPResponse:
    """
    A status plus a borrowed body.

    `body` is a view into a blob owned by the RouteTable; the response
    must not outlive the table (it never does: it lives for one request).
    """

    status: ResponseStatus
    body: Union[memoryview, bytes]
    version: str = "HTTP/1.1"

    @classmethod
    def for_blob(cls, status: ResponseStatus, blob: ContentBlob) -> "HTTPResponse":
        return cls(status=status, body=blob.data)

    @property
    def content_length(self) -> int:
        return len(self.body)

    @property
    def status_line(self) -> str:
        return f"{self.version} {self.status}"

    def header_bytes(self) -> bytes:
        """Status line, Content-Length and the blank separator line."""
        return (
            f"{self.status_line}\r\n"
            f"Content-Length: {self.content_length}\r\n"
            f"\r\n"
        ).encode("ascii")

    def to_bytes(self) -> bytes:
        """Header and body in one buffer (copies the body; for small bodies/tests)."""
        return self.header_bytes() + bytes(self.body)


def fallback_not_found() -> HTTPResponse:
    """Built-in 404 used when the configured not-found route is missing too."""
    return HTTPResponse(status=ResponseStatus.NOT_FOUND, body=FALLBACK_NOT_FOUND_BODY)
