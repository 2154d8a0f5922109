"""
pytest configuration and fixtures.
"""

import socket
import threading
from typing import Generator, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from redirector import RedirectServer, ServerConfig


REDIRECTS = {
    "REDIRECT_A_FROM": "^example.com/old$",
    "REDIRECT_A_TO": "example.com/new",
    "REDIRECT_B_FROM": "^(.*)/docs/(.*)$",
    "REDIRECT_B_TO": "$1/help/$2",
}


@pytest.fixture
def redirects() -> dict:
    """Two working redirect rules."""
    return dict(REDIRECTS)


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /docs/intro?lang=en HTTP/1.1\r\n"
        b"Host: site.io\r\n"
        b"User-Agent: pytest\r\n"
        b"X-Forwarded-For: 203.0.113.7\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a body."""
    body = b"name=value"
    return (
        b"POST /form HTTP/1.1\r\n"
        b"Host: example.com\r\n"
        b"Content-Type: application/x-www-form-urlencoded\r\n"
        b"Content-Length: %d\r\n"
        b"Connection: close\r\n"
        b"\r\n" % len(body)
    ) + body


@pytest.fixture
def config(redirects: dict) -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        log_level="WARNING",
        redirects=redirects,
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False

    def __init__(self, server: RedirectServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        """Start server in background thread."""
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        """Stop the server."""
        self.server.stop()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=15.0)

    def request(self, raw: bytes) -> bytes:
        """Send raw request bytes, return everything the server sends back."""
        with socket.create_connection(("127.0.0.1", self.port), timeout=5.0) as s:
            s.sendall(raw)
            chunks = []
            while True:
                chunk = s.recv(4096)
                if not chunk:
                    break
                chunks.append(chunk)
        return b"".join(chunks)

    def get(self, target: str, host: str = "", headers: Optional[dict] = None) -> bytes:
        """One GET with Connection: close."""
        lines = [f"GET {target} HTTP/1.1"]
        if host:
            lines.append(f"Host: {host}")
        for name, value in (headers or {}).items():
            lines.append(f"{name}: {value}")
        lines.append("Connection: close")
        return self.request(("\r\n".join(lines) + "\r\n\r\n").encode("latin-1"))


@pytest.fixture
def test_server(config: ServerConfig) -> Generator[TestServer, None, None]:
    """Create a running test server with the default redirects."""
    test_srv = TestServer(RedirectServer(config))
    test_srv.start()

    yield test_srv

    test_srv.stop()


@pytest.fixture
def server_factory() -> Generator:
    """Start servers with custom configuration; all are stopped afterwards."""
    started = []

    def factory(config: ServerConfig) -> TestServer:
        test_srv = TestServer(RedirectServer(config))
        test_srv.start()
        started.append(test_srv)
        return test_srv

    yield factory

    for test_srv in started:
        test_srv.stop()
