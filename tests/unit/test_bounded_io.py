"""
Unit tests for looped, length-checked socket I/O.
"""

import socket

import pytest

from tinyhttp.core.bounded_io import read_exact_or_less, write_all
from tinyhttp.errors import (
    ExitCode,
    SocketReadError,
    SocketSendError,
    WeirdRxLengthError,
    WeirdTxLengthError,
)


class ChunkedSocket:
    """Fake socket that hands out data a few bytes at a time."""

    def __init__(self, data: bytes = b"", chunk: int = 1, accept: int = None, error: Exception = None):
        self.data = data
        self.chunk = chunk
        self.accept = accept
        self.error = error
        self.sent = b""
        self.recv_sizes = []

    def recv(self, size):
        self.recv_sizes.append(size)
        if self.error:
            raise self.error
        n = min(size, self.chunk)
        out, self.data = self.data[:n], self.data[n:]
        return out

    def send(self, data):
        if self.error:
            raise self.error
        n = min(len(data), self.chunk)
        if self.accept is not None:
            n = min(n, self.accept - len(self.sent))
        self.sent += bytes(data[:n])
        return n


class TestReadExactOrLess:
    """Tests for read_exact_or_less()."""

    def test_reads_until_eof(self):
        sock = ChunkedSocket(b"GET /index.html", chunk=3)
        assert read_exact_or_less(sock, 5, 100) == b"GET /index.html"

    def test_stops_at_max_without_overreading(self):
        sock = ChunkedSocket(b"GET /a HTTP/1.1\r\nHost: x\r\n\r\n", chunk=4)

        data = read_exact_or_less(sock, 5, 10)

        assert data == b"GET /a HTT"
        assert max(sock.recv_sizes) <= 10
        assert sum(min(s, 4) for s in sock.recv_sizes) == 10

    def test_never_asks_for_more_than_remaining(self):
        sock = ChunkedSocket(b"x" * 50, chunk=7)
        read_exact_or_less(sock, 5, 20)
        assert sock.recv_sizes == [20, 13, 6]

    def test_too_short(self):
        sock = ChunkedSocket(b"GET", chunk=10)
        with pytest.raises(WeirdRxLengthError) as exc_info:
            read_exact_or_less(sock, 5, 100)
        assert exc_info.value.received == 3
        assert exc_info.value.exit_code == ExitCode.SOCKET_WEIRD_RX_LENGTH

    def test_empty(self):
        with pytest.raises(WeirdRxLengthError):
            read_exact_or_less(ChunkedSocket(b""), 5, 100)

    def test_recv_error(self):
        sock = ChunkedSocket(error=ConnectionResetError(104, "Connection reset by peer"))
        with pytest.raises(SocketReadError) as exc_info:
            read_exact_or_less(sock, 5, 100)
        assert exc_info.value.exit_code == ExitCode.SOCKET_READ_FAILED
        assert "Connection reset by peer" in str(exc_info.value)

    def test_timeout_is_read_error(self, socket_pair):
        server_side, client_side = socket_pair
        server_side.settimeout(0.05)
        client_side.sendall(b"GE")

        with pytest.raises(SocketReadError):
            read_exact_or_less(server_side, 5, 100)

    def test_real_socket_half_close(self, socket_pair):
        server_side, client_side = socket_pair
        client_side.sendall(b"GET /docs/")
        client_side.shutdown(socket.SHUT_WR)
        server_side.settimeout(1.0)

        assert read_exact_or_less(server_side, 5, 100) == b"GET /docs/"


class TestWriteAll:
    """Tests for write_all()."""

    def test_partial_sends_are_continued(self):
        sock = ChunkedSocket(chunk=3)
        assert write_all(sock, b"hello world") == 11
        assert sock.sent == b"hello world"

    def test_accepts_memoryview(self):
        sock = ChunkedSocket(chunk=4)
        write_all(sock, memoryview(b"abcdefgh"))
        assert sock.sent == b"abcdefgh"

    def test_empty(self):
        assert write_all(ChunkedSocket(), b"") == 0

    def test_peer_stops_accepting(self):
        sock = ChunkedSocket(chunk=4, accept=6)
        with pytest.raises(WeirdTxLengthError) as exc_info:
            write_all(sock, b"0123456789")
        assert exc_info.value.sent == 6
        assert exc_info.value.exit_code == ExitCode.SOCKET_WEIRD_TX_LENGTH

    def test_peer_hung_up(self):
        sock = ChunkedSocket(error=BrokenPipeError(32, "Broken pipe"))
        with pytest.raises(WeirdTxLengthError):
            write_all(sock, b"data")

    def test_send_error(self):
        sock = ChunkedSocket(error=OSError(5, "Input/output error"))
        with pytest.raises(SocketSendError) as exc_info:
            write_all(sock, b"data")
        assert exc_info.value.exit_code == ExitCode.SOCKET_SEND_FAILED

    def test_timeout_is_send_error(self):
        sock = ChunkedSocket(error=socket.timeout("timed out"))
        with pytest.raises(SocketSendError):
            write_all(sock, b"data")
