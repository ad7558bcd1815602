"""
Unit tests for HTTP response framing.
"""

from tinyhttp.content import ContentBlob
from tinyhttp.http import (
    FALLBACK_NOT_FOUND_BODY,
    HTTPResponse,
    ResponseStatus,
    fallback_not_found,
)


class TestResponseStatus:
    def test_ok(self):
        assert ResponseStatus.OK.code == 200
        assert str(ResponseStatus.OK) == "200 OK"

    def test_not_found_phrase_is_upper_case(self):
        assert ResponseStatus.NOT_FOUND.code == 404
        assert str(ResponseStatus.NOT_FOUND) == "404 NOT FOUND"


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        response = HTTPResponse(status=ResponseStatus.OK, body=b"")
        assert response.status_line == "HTTP/1.1 200 OK"

        response = HTTPResponse(status=ResponseStatus.NOT_FOUND, body=b"")
        assert response.status_line == "HTTP/1.1 404 NOT FOUND"

    def test_header_bytes_exact(self):
        response = HTTPResponse(status=ResponseStatus.OK, body=b"hello")
        assert response.header_bytes() == b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\n\r\n"

    def test_only_content_length_header(self):
        header = HTTPResponse(status=ResponseStatus.OK, body=b"x").header_bytes()
        lines = header.split(b"\r\n")
        assert lines == [b"HTTP/1.1 200 OK", b"Content-Length: 1", b"", b""]

    def test_empty_body(self):
        response = HTTPResponse(status=ResponseStatus.OK, body=b"")
        assert response.to_bytes() == b"HTTP/1.1 200 OK\r\nContent-Length: 0\r\n\r\n"

    def test_for_blob_borrows_blob_contents(self):
        blob = ContentBlob.from_bytes(b"<h1>home</h1>")
        response = HTTPResponse.for_blob(ResponseStatus.OK, blob)

        assert response.content_length == 13
        assert isinstance(response.body, memoryview)
        assert response.to_bytes() == b"HTTP/1.1 200 OK\r\nContent-Length: 13\r\n\r\n<h1>home</h1>"

    def test_content_length_counts_bytes(self):
        body = "café".encode()
        response = HTTPResponse(status=ResponseStatus.OK, body=body)
        assert response.content_length == 5


class TestFallback:
    def test_fallback_exact_bytes(self):
        assert FALLBACK_NOT_FOUND_BODY == b"404 NOT FOUND"
        assert fallback_not_found().to_bytes() == (
            b"HTTP/1.1 404 NOT FOUND\r\nContent-Length: 13\r\n\r\n404 NOT FOUND"
        )
