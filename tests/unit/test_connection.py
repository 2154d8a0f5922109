"""
Unit tests for request framing on a client connection.
"""

import socket
import threading
import time

import pytest

from redirector.core.connection import DRAIN_TIMEOUT, Connection, ConnectionState, FramingError


@pytest.fixture
def pair():
    """A connected (server side, client side) socket pair."""
    server_side, client_side = socket.socketpair()
    yield server_side, client_side
    server_side.close()
    client_side.close()


def make_connection(sock, **kwargs) -> Connection:
    kwargs.setdefault("timeout", 2.0)
    kwargs.setdefault("keep_alive_timeout", 0.2)
    return Connection(socket=sock, address=("10.0.0.5", 40000), **kwargs)


class TestReadRequest:
    """Tests for Connection.read_request()."""

    def test_single_request(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)
        client_side.sendall(b"GET / HTTP/1.1\r\nHost: a\r\n\r\n")

        assert conn.read_request() == b"GET / HTTP/1.1\r\nHost: a\r\n\r\n"
        assert conn.requests_handled == 1

    def test_split_across_packets(self, pair):
        """Test that a head arriving in pieces is reassembled."""
        server_side, client_side = pair
        conn = make_connection(server_side, buffer_size=4)
        client_side.sendall(b"GET /x HTTP/1.1\r\n")
        client_side.sendall(b"\r\n")

        assert conn.read_request() == b"GET /x HTTP/1.1\r\n\r\n"

    def test_body_by_content_length(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)
        client_side.sendall(b"POST / HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello")

        assert conn.read_request().endswith(b"\r\n\r\nhello")

    def test_pipelined_requests(self, pair):
        """Test that bytes of the next request are kept for the next call."""
        server_side, client_side = pair
        conn = make_connection(server_side)
        client_side.sendall(b"GET /1 HTTP/1.1\r\n\r\nGET /2 HTTP/1.1\r\n\r\n")

        assert conn.read_request() == b"GET /1 HTTP/1.1\r\n\r\n"
        assert conn.read_request() == b"GET /2 HTTP/1.1\r\n\r\n"

    def test_client_closed(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)
        client_side.close()

        assert conn.read_request() is None

    def test_first_request_timeout(self, pair):
        """Test that a silent client on a new connection raises TimeoutError."""
        server_side, _ = pair
        conn = make_connection(server_side, timeout=0.1)

        with pytest.raises(TimeoutError):
            conn.read_request()

    def test_keep_alive_idle_returns_none(self, pair):
        """Test that an idle kept-alive connection just ends."""
        server_side, client_side = pair
        conn = make_connection(server_side)
        client_side.sendall(b"GET / HTTP/1.1\r\n\r\n")
        conn.read_request()

        assert conn.read_request() is None

    def test_too_large(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side, max_request_size=64)
        client_side.sendall(b"POST / HTTP/1.1\r\nContent-Length: 1000\r\n\r\n")

        with pytest.raises(ValueError):
            conn.read_request()

    def test_chunked_then_pipelined(self, pair):
        """Test that a chunked body ends at its zero chunk, not at the head."""
        server_side, client_side = pair
        conn = make_connection(server_side)
        chunked = (
            b"POST /old HTTP/1.1\r\n"
            b"Transfer-Encoding: chunked\r\n"
            b"\r\n"
            b"5;ext=1\r\nhello\r\n"
            b"A\r\n0123456789\r\n"
            b"0\r\n"
            b"X-Trailer: yes\r\n"
            b"\r\n"
        )
        client_side.sendall(chunked + b"GET /next HTTP/1.1\r\n\r\n")

        assert conn.read_request() == chunked
        assert conn.read_request() == b"GET /next HTTP/1.1\r\n\r\n"

    def test_chunked_split_across_packets(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side, buffer_size=3)
        client_side.sendall(b"POST / HTTP/1.1\r\nTransfer-Encoding: gzip, chunked\r\n\r\n")
        client_side.sendall(b"3\r\nabc\r\n")
        client_side.sendall(b"0\r\n\r\n")

        assert conn.read_request().endswith(b"3\r\nabc\r\n0\r\n\r\n")

    @pytest.mark.parametrize("body", [
        b"zz\r\nhello\r\n0\r\n\r\n",
        b"\r\n\r\n",
        b"2\r\nhello\r\n0\r\n\r\n",
    ])
    def test_malformed_chunks(self, pair, body: bytes):
        """Test that chunks that don't line up raise FramingError."""
        server_side, client_side = pair
        conn = make_connection(server_side)
        client_side.sendall(b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n" + body)

        with pytest.raises(FramingError):
            conn.read_request()

    def test_chunked_too_large(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side, max_request_size=128)
        client_side.sendall(b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\nFFFF\r\n")

        with pytest.raises(ValueError):
            conn.read_request()


class TestSendAndClose:
    """Tests for writing and closing."""

    def test_send_response(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)

        assert conn.send_response(b"HTTP/1.1 404 Not Found\r\n\r\n") is True
        assert client_side.recv(1024) == b"HTTP/1.1 404 Not Found\r\n\r\n"

    def test_close_is_idempotent(self, pair):
        server_side, client_side = pair
        conn = make_connection(server_side)

        conn.close()
        conn.close()

        assert conn.state is ConnectionState.CLOSED
        assert client_side.recv(1024) == b""

    def test_drain_is_bounded(self, pair):
        """Test that a client trickling bytes can't hold close() open."""
        server_side, client_side = pair
        conn = make_connection(server_side)
        stop = threading.Event()

        def trickle():
            while not stop.is_set():
                try:
                    client_side.send(b"x")
                except OSError:
                    return
                time.sleep(0.05)

        thread = threading.Thread(target=trickle, daemon=True)
        thread.start()
        try:
            started = time.monotonic()
            conn.close()
            elapsed = time.monotonic() - started
        finally:
            stop.set()
            thread.join(timeout=1.0)

        assert conn.state is ConnectionState.CLOSED
        assert elapsed < DRAIN_TIMEOUT + 1.0

    def test_close_without_drain(self, pair):
        """Test that drain=False closes at once even with unread input."""
        server_side, client_side = pair
        conn = make_connection(server_side)
        client_side.sendall(b"unread")

        started = time.monotonic()
        conn.close(drain=False)

        assert time.monotonic() - started < 0.2
        assert conn.state is ConnectionState.CLOSED

    def test_context_manager_closes(self, pair):
        server_side, _ = pair

        with make_connection(server_side) as conn:
            pass

        assert conn.state is ConnectionState.CLOSED
