"""
pytest configuration and fixtures.
"""

import logging
import socket
import threading
from pathlib import Path
from typing import Dict, Generator, Optional, Tuple, Union

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tinyhttp import ServerConfig, TinyHTTPServer
from tinyhttp.content import ContentBlob, RouteTable
from tinyhttp.core import Connection


@pytest.fixture(autouse=True)
def reset_tinyhttp_logger():
    """setup_logging() detaches the package logger from root; undo it per test."""
    log = logging.getLogger("tinyhttp")
    yield
    for handler in list(log.handlers):
        log.removeHandler(handler)
    log.setLevel(logging.NOTSET)
    log.propagate = True


def build_tree(root: Path, files: Dict[str, Union[str, bytes]]) -> Path:
    """Create `files` ({"docs/index.html": "<h1>docs</h1>", ...}) under root."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            content = content.encode()
        path.write_bytes(content)
    return root


@pytest.fixture
def make_web_root(tmp_path: Path):
    """Factory fixture: make_web_root({"index.html": "hi"}) -> Path."""
    def factory(files: Dict[str, Union[str, bytes]], name: str = "public_html") -> Path:
        return build_tree(tmp_path / name, files)
    return factory


@pytest.fixture
def site_files() -> Dict[str, str]:
    """A small but realistic site."""
    return {
        "index.html": "<h1>home</h1>",
        "404.html": "Not Found",
        "css/site.css": "body { margin: 0 }",
        "docs/index.html": "<h1>docs</h1>",
        "docs/intro.html": "<p>intro</p>",
        ".git/config": "[core]",
        ".env": "SECRET=1",
    }


@pytest.fixture
def web_root(make_web_root, site_files) -> Path:
    return make_web_root(site_files)


@pytest.fixture
def route_table() -> RouteTable:
    """Frozen table with a home page and a not-found page."""
    table = RouteTable(capacity=3)
    table.insert("/", ContentBlob.from_bytes(b"<h1>home</h1>"))
    table.insert("/404.html", ContentBlob.from_bytes(b"Not Found"))
    table.insert("/empty.txt", ContentBlob.from_bytes(b""))
    return table.freeze()


@pytest.fixture
def socket_pair() -> Generator[Tuple[socket.socket, socket.socket], None, None]:
    """(server_side, client_side) connected sockets."""
    # TCP loopback, like production: closing an AF_UNIX socket with unread
    # request bytes resets the peer before it can read the reply.
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    client_side = socket.create_connection(listener.getsockname())
    server_side, _ = listener.accept()
    listener.close()
    yield server_side, client_side
    for s in (server_side, client_side):
        try:
            s.close()
        except OSError:
            pass


@pytest.fixture
def connection(socket_pair) -> Connection:
    server_side, _ = socket_pair
    return Connection(socket=server_side, address=("127.0.0.1", 50000), rx_timeout=1.0, tx_timeout=1.0)


def recv_all(sock: socket.socket, timeout: float = 5.0) -> bytes:
    """Read until the peer closes."""
    sock.settimeout(timeout)
    chunks = []
    while True:
        chunk = sock.recv(65536)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False

    def __init__(self, server: TinyHTTPServer):
        self.server = server
        self.error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def _run(self):
        try:
            self.server.run()
        except BaseException as e:
            self.error = e

    def start(self):
        """Start server in background thread and wait until it accepts."""
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError(f"Server failed to start: {self.error!r}")

    def request(self, raw: bytes, half_close: bool = True) -> bytes:
        """Send `raw`, optionally shut down our write side, return the full reply."""
        with socket.create_connection(("127.0.0.1", self.port), timeout=5.0) as s:
            s.sendall(raw)
            if half_close:
                s.shutdown(socket.SHUT_WR)
            return recv_all(s)

    def stop(self):
        """Stop the server."""
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)


def server_config(web_root: Path, **overrides) -> ServerConfig:
    """Config for an in-process server: loopback, ephemeral port, no sandbox."""
    settings = dict(
        host="127.0.0.1",
        port=0,
        web_root=str(web_root),
        min_workers=2,
        rx_timeout=1.0,
        tx_timeout=1.0,
        sandbox=False,
    )
    settings.update(overrides)
    return ServerConfig(**settings)


@pytest.fixture
def start_server():
    """Factory fixture: start_server(web_root, **config) -> running TestServer."""
    started = []

    def factory(root: Path, **overrides) -> TestServer:
        test_srv = TestServer(TinyHTTPServer(server_config(root, **overrides)))
        test_srv.start()
        started.append(test_srv)
        return test_srv

    yield factory

    for test_srv in started:
        test_srv.stop()


@pytest.fixture
def test_server(start_server, web_root: Path) -> TestServer:
    """A running server over the `web_root` site."""
    return start_server(web_root)
