"""
=============================================================================
REDIRECT SERVER
=============================================================================

Ties the pieces together into a running server.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    REDIRECT SERVER ARCHITECTURE                     │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ServerConfig ──► compile_rules() ──► RuleSet (frozen tuple)       │
    │                                            │                         │
    │                                            ▼                         │
    │    ┌──────────────┐    ┌──────────────┐    ┌────────────────┐       │
    │    │ SocketServer │──► │  WorkerPool  │──► │ RedirectRouter │       │
    │    │ (accept)     │    │ (workers)    │    │ (shared, R/O)  │       │
    │    └──────────────┘    └──────────────┘    └────────────────┘       │
    │                                                                      │
    │           Middleware: AccessLogMiddleware → router.handle           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STARTUP ORDER
=============================================================================

    1. Configure logging
    2. Compile rules          bad rules are logged and dropped, never fatal
    3. Bind + listen          failure raises OSError → exit status 1
    4. Start worker threads
    5. Accept loop            runs until SIGINT / SIGTERM / shutdown()

The rules exist before the first connection is accepted and nothing writes
to them afterwards, so every worker reads them without locking.

=============================================================================
REQUEST LIFECYCLE (per worker)
=============================================================================

    read bytes ─► parse ─► middleware ─► router ─► 302 / 404 ─► send
        ▲                                                         │
        └───────────────── keep-alive ◄───────────────────────────┘

Errors only ever affect their own connection:

    HTTPParseError     → 400 / 413 / 505, close
    bad chunk framing  → 400, close
    read timeout       → 408, close
    request too large  → 413, close
    queue full         → 503, close without draining
    handler exception  → 500 for that request
    anything else      → log, close

=============================================================================
"""

import logging
from typing import Callable, Optional

from .config import ServerConfig
from .core import SocketServer, Connection, ConnectionState, FramingError, WorkerPool
from .http import (
    HTTPRequest, HTTPResponse, RequestParser, HTTPParseError,
    HTTPStatus, RedirectRouter, error_response,
)
from .middleware import MiddlewarePipeline, AccessLogMiddleware
from .rules import RuleSet, compile_rules


logger = logging.getLogger(__name__)


class RedirectServer:
    """
    HTTP/1.1 server that answers every request with a redirect or a 404.

    Usage:
        config = ServerConfig.from_env()
        server = RedirectServer(config)
        server.run()   # blocks

    Rules are compiled from config.redirects unless a RuleSet is passed in
    explicitly (handy in tests).
    """

    def __init__(self, config: Optional[ServerConfig] = None, rules: Optional[RuleSet] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        # ─────────────────────────────────────────────────────────────────
        # CORE COMPONENTS
        # ─────────────────────────────────────────────────────────────────
        self._socket_server = SocketServer(self.config)
        self._workers = WorkerPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        # ─────────────────────────────────────────────────────────────────
        # APPLICATION COMPONENTS
        # ─────────────────────────────────────────────────────────────────
        self._rules = rules
        self._router: Optional[RedirectRouter] = None
        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None

        self._running = False

    @property
    def address(self):
        """The (host, port) the server is bound to."""
        return self._socket_server.address

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Start the server and block until it is stopped.

        Raises:
            OSError: If the listening socket can't be bound.
        """
        self._setup_logging()

        if self._rules is None:
            self._rules = compile_rules(self.config.redirects)
        self._router = RedirectRouter(self._rules)
        logger.info(f"Loaded {len(self._router)} redirect rule(s)")

        pipeline = MiddlewarePipeline()
        pipeline.add(AccessLogMiddleware(log_format=self.config.log_format))
        self._handler = pipeline.wrap(self._router.handle)

        # Fatal if it fails; nothing else has been started yet
        self._socket_server.bind()

        self._running = True
        self._workers.start()

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def stop(self):
        """Ask a running server to stop (from another thread)."""
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("redirector").setLevel(level)

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        self._workers.shutdown(wait=True, timeout=10.0)
        logger.info(f"Server stopped: {self._workers.stats}")

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Queue a new connection for a worker (accept thread)."""
        submitted = self._workers.submit(
            self._process_connection,
            conn,
            max_wait=self.config.timeout,
            on_expired=conn.close,
        )

        if not submitted:
            logger.warning(f"[{conn.id}] Worker queue full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE)
            # No drain here: a slow client must not stall the accept loop
            conn.close(drain=False)

    def _process_connection(self, conn: Connection):
        """
        Serve every request on one connection (worker thread).

        Loops for keep-alive until the client closes, asks to close, or an
        error ends the connection.
        """
        with conn:
            while self._running:
                try:
                    raw_request = conn.read_request()
                    if raw_request is None:
                        break

                    try:
                        request = self._parser.parse(raw_request, conn.address)
                    except HTTPParseError as e:
                        logger.debug(f"[{conn.id}] Bad request: {e}")
                        self._send_error(conn, HTTPStatus(e.status_code))
                        break

                    conn.state = ConnectionState.PROCESSING
                    response = self._dispatch(conn, request)

                    keep_alive = request.is_keep_alive and self.config.keep_alive
                    if keep_alive:
                        response.headers.setdefault("Connection", "keep-alive")
                        response.headers.setdefault(
                            "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
                        )
                    else:
                        response.headers["Connection"] = "close"

                    if not conn.send_response(response.to_bytes(self.config.server_name)):
                        break

                    if not keep_alive:
                        break

                    conn.set_keep_alive()

                except FramingError as e:
                    logger.debug(f"[{conn.id}] Bad framing: {e}")
                    self._send_error(conn, HTTPStatus.BAD_REQUEST)
                    break

                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT)
                    break

                except ValueError as e:
                    logger.warning(f"[{conn.id}] {e}")
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE)
                    break

                except OSError as e:
                    logger.debug(f"[{conn.id}] Connection error: {e}")
                    break

    def _dispatch(self, conn: Connection, request: HTTPRequest) -> HTTPResponse:
        """Run middleware + router; an exception becomes a 500."""
        try:
            return self._handler(request)
        except Exception as e:
            logger.exception(f"[{conn.id}] Handler error: {e}")
            return error_response(HTTPStatus.INTERNAL_SERVER_ERROR)

    def _send_error(self, conn: Connection, status: HTTPStatus):
        response = error_response(status)
        conn.send_response(response.to_bytes(self.config.server_name))
