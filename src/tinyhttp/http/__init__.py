"""
Wire format for TinyHTTP responses.

There is no request module: requests are never parsed beyond the literal
"GET " prefix and one path token, which happens in core.protocol.
"""

from .response import (
    FALLBACK_NOT_FOUND_BODY,
    HTTPResponse,
    ResponseStatus,
    fallback_not_found,
)

__all__ = [
    "FALLBACK_NOT_FOUND_BODY",
    "HTTPResponse",
    "ResponseStatus",
    "fallback_not_found",
]
