"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

Owns the listening socket: create, bind, listen, then accept connections
until told to stop.

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. socket()    socket.create_server() does 1-3 in one call
    2. bind()      Reserve host:port          ← the only FATAL startup error
    3. listen()    Start queueing connections (backlog)
    4. accept()    Loop: one new socket per client
    5. close()     On shutdown

=============================================================================
DUAL-STACK LISTENING
=============================================================================

The default host "::" is the IPv6 wildcard. With IPV6_V6ONLY switched off,
the same socket also accepts IPv4 clients, which show up with mapped
addresses like "::ffff:203.0.113.7". An IPv4 host ("0.0.0.0",
"127.0.0.1") gets a plain IPv4 socket.

=============================================================================
SIGNAL HANDLING
=============================================================================

SIGINT (Ctrl+C) and SIGTERM (docker stop, systemd) stop the accept loop;
the server then drains its worker pool and exits cleanly. Signal handlers
can only be installed from the main thread, so when the server runs in a
background thread (as in the tests) they are skipped.

=============================================================================
"""

import contextlib
import logging
import signal
import socket
import threading
from typing import Callable, Iterator, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)

ConnectionHandler = Callable[[Connection], None]


class SocketServer:
    """
    Accepts TCP connections and hands each one to a callback.

        server = SocketServer(config)
        server.bind()                  # raises OSError if the port is taken
        server.start(handle)           # blocks until shutdown()

    `handle` runs on the accepting thread, so it must return quickly
    (RedirectServer just queues the connection for a worker).
    """

    # accept() wakes up this often to notice shutdown()
    POLL_INTERVAL = 1.0

    def __init__(self, config: ServerConfig):
        self.config = config

        self._listener: Optional[socket.socket] = None
        self._ready = threading.Event()
        self._stop = threading.Event()

    @property
    def address(self) -> Tuple[str, int]:
        """Where we listen; the real port once bound (even with port 0)."""
        if self._listener is None:
            return (self.config.host, self.config.port)
        host, port = self._listener.getsockname()[:2]
        return (host, port)

    def bind(self) -> None:
        """
        Open the listening socket.

        Raises:
            OSError: Address in use, permission denied, unknown host...
        """
        host, port = self.config.host, self.config.port
        ipv6 = ":" in host

        try:
            self._listener = socket.create_server(
                (host, port),
                family=socket.AF_INET6 if ipv6 else socket.AF_INET,
                backlog=self.config.backlog,
                dualstack_ipv6=ipv6 and socket.has_dualstack_ipv6(),
            )
        except OSError as e:
            logger.error(f"Failed to bind to {host}:{port}: {e}")
            raise

        self._listener.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        self._listener.settimeout(self.POLL_INTERVAL)

        bound_host, bound_port = self.address
        shown = f"[{bound_host}]" if ipv6 else bound_host
        logger.info(f"Listening on http://{shown}:{bound_port}")

    def start(self, handler: ConnectionHandler):
        """Accept until shutdown() (or SIGINT/SIGTERM). Binds if needed."""
        if self._listener is None:
            self.bind()

        self._stop.clear()
        with self._signals_trigger_shutdown():
            self._ready.set()
            try:
                self._serve(handler)
            finally:
                self._close()

    def _serve(self, handler: ConnectionHandler):
        while not self._stop.is_set():
            try:
                client, peer = self._listener.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._stop.is_set():
                    logger.error(f"accept() failed: {e}")
                return

            logger.debug(f"Connection from {peer[0]}:{peer[1]}")
            handler(Connection(
                socket=client,
                address=peer,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            ))

    @contextlib.contextmanager
    def _signals_trigger_shutdown(self) -> Iterator[None]:
        """Route SIGINT/SIGTERM to shutdown() while serving (main thread only)."""
        if threading.current_thread() is not threading.main_thread():
            yield
            return

        def on_signal(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, shutting down")
            self.shutdown()

        previous = {sig: signal.signal(sig, on_signal) for sig in (signal.SIGINT, signal.SIGTERM)}
        try:
            yield
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until connections are being accepted."""
        return self._ready.wait(timeout)

    def shutdown(self):
        """Ask the accept loop to stop. Any thread, any number of times."""
        self._stop.set()

    def _close(self):
        self._ready.clear()
        if self._listener is not None:
            self._listener.close()
            self._listener = None
        logger.info("Stopped accepting connections")
