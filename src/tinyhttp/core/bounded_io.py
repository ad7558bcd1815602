"""
=============================================================================
BOUNDED I/O
=============================================================================

TCP is a byte STREAM, not a message protocol. One recv() may return a
single byte of the request; one send() may accept only part of the
response. Both directions therefore loop.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      read_exact_or_less()                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   while received < max_size:                                         │
    │       chunk = recv(max_size - received)   ← never asks for more      │
    │       if chunk == b"": break              ← peer closed (EOF)        │
    │       received += len(chunk)                                         │
    │                                                                      │
    │   received < min_size  → WeirdRxLengthError  (short / empty request) │
    │   OSError or timeout   → SocketReadError     (transport failure)     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │                           write_all()                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   while sent < len(data):                                            │
    │       n = send(data[sent:])                                          │
    │       if n == 0: break                    ← peer gone                │
    │       sent += n                                                      │
    │                                                                      │
    │   peer closed early    → WeirdTxLengthError                          │
    │   OSError or timeout   → SocketSendError                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Deadlines are the socket's own timeouts (set once per connection with
settimeout()); a timeout is an ordinary transport error here.

Why not sendall()? sendall() hides how much was sent when it fails.
We want a peer that hung up mid-response to be told apart from a
network error in the logs.
=============================================================================
"""

import socket
from typing import Union

from ..errors import SocketReadError, SocketSendError, WeirdRxLengthError, WeirdTxLengthError


def read_exact_or_less(sock: socket.socket, min_size: int, max_size: int) -> bytes:
    """
    Receive until `max_size` bytes arrive or the peer closes.

    Args:
        sock: Connected socket (its timeout is the receive deadline).
        min_size: Fewest bytes that make a plausible request.
        max_size: Most bytes we will ever read.

    Returns:
        Between min_size and max_size bytes.

    Raises:
        SocketReadError: recv() failed or timed out.
        WeirdRxLengthError: Total length outside [min_size, max_size].
    """
    chunks = []
    received = 0

    while received < max_size:
        try:
            chunk = sock.recv(max_size - received)
        except OSError as e:
            raise SocketReadError(f"recv() failed after {received} bytes", os_error=e) from e
        if not chunk:
            break
        chunks.append(chunk)
        received += len(chunk)

    if received < min_size or received > max_size:
        raise WeirdRxLengthError(received, min_size, max_size)

    return b"".join(chunks)


def write_all(sock: socket.socket, data: Union[bytes, memoryview]) -> int:
    """
    Send every byte of `data`.

    Returns:
        Number of bytes sent (always len(data)).

    Raises:
        WeirdTxLengthError: The peer stopped accepting data before the end.
        SocketSendError: send() failed or timed out.
    """
    view = memoryview(data)
    total = len(view)
    sent = 0

    try:
        while sent < total:
            try:
                n = sock.send(view[sent:])
            except (BrokenPipeError, ConnectionResetError):
                break
            except OSError as e:
                raise SocketSendError(f"send() failed after {sent} of {total} bytes", os_error=e) from e
            if n == 0:
                break
            sent += n
    finally:
        view.release()

    if sent != total:
        raise WeirdTxLengthError(sent, total)
    return sent
