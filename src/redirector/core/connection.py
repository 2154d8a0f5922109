"""
=============================================================================
CLIENT CONNECTIONS
=============================================================================

A Connection wraps one accepted socket for as long as the client keeps it
open. It only knows about bytes: where one request ends and the next begins.
Parsing is left to http.request.

=============================================================================
FRAMING
=============================================================================

    GET /docs/intro HTTP/1.1\\r\\n        ┐
    Host: site.io\\r\\n                   │ head, up to the blank line
    Content-Length: 5\\r\\n               │
    \\r\\n                                ┘
    hello                               ← Content-Length bytes of body
    GET /next HTTP/1.1\\r\\n ...          ← pipelined, stays buffered

A head whose Transfer-Encoding ends in "chunked" is followed by chunks
instead, and the body runs to the zero-size chunk and its trailers:

    5\\r\\n hello\\r\\n 0\\r\\n \\r\\n

Bytes after the current request stay in the buffer for the next call.

=============================================================================
TIMEOUTS
=============================================================================

    first request       `timeout`             expiry raises TimeoutError (408)
    later requests      `keep_alive_timeout`  expiry just ends the connection
    close()             DRAIN_TIMEOUT         total, however slowly the peer sends

=============================================================================
"""

import itertools
import logging
import re
import socket
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


logger = logging.getLogger(__name__)

HEAD_END = b"\r\n\r\n"
CRLF = b"\r\n"
DRAIN_TIMEOUT = 0.5
DRAIN_LIMIT = 64 * 1024

_CONTENT_LENGTH = re.compile(rb"\r\ncontent-length[ \t]*:[ \t]*(\d+)[ \t]*(?=\r\n|$)", re.IGNORECASE)
_TRANSFER_ENCODING = re.compile(rb"\r\ntransfer-encoding[ \t]*:([^\r\n]*)", re.IGNORECASE)
_CHUNK_SIZE = re.compile(rb"[ \t]*([0-9A-Fa-f]+)[ \t]*(?:;[^\r\n]*)?")
_ids = itertools.count(1)


class FramingError(Exception):
    """The bytes on the wire can't be split into requests (answered with 400)."""


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    IDLE = "idle"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    An accepted client socket plus its read buffer.

    Attributes:
        socket: The accepted socket.
        address: Peer address as returned by accept().
        id: Short id used to tag log lines.
        requests_handled: Complete requests read so far.
    """

    socket: socket.socket
    address: Tuple
    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024

    id: str = field(default_factory=lambda: f"c{next(_ids)}")
    state: ConnectionState = ConnectionState.NEW
    requests_handled: int = 0
    opened_at: float = field(default_factory=time.monotonic)
    _pending: bytearray = field(default_factory=bytearray, repr=False)

    def __post_init__(self):
        self.socket.settimeout(self.timeout)

    def read_request(self) -> Optional[bytes]:
        """
        Return the bytes of the next complete request.

        Returns:
            Request bytes, or None when the client closed the connection
            or stayed idle past keep_alive_timeout.

        Raises:
            TimeoutError: The first request didn't arrive within `timeout`.
            ValueError: The request is larger than max_request_size.
            FramingError: A chunked body is malformed.
        """
        self.state = ConnectionState.READING
        first = self.requests_handled == 0
        self.socket.settimeout(self.timeout if first else self.keep_alive_timeout)

        try:
            head_len = self._fill_until_head()
            if head_len is None:
                return None

            if self._is_chunked(head_len):
                total = self._fill_chunked(head_len)
                if total is None:
                    return None
            else:
                total = head_len + self._content_length(head_len)
                self._check_size(total)
                if not self._fill_to(total):
                    return None
        except socket.timeout:
            if first:
                raise TimeoutError("Timed out waiting for request") from None
            logger.debug(f"[{self.id}] Idle, closing")
            return None
        finally:
            self.socket.settimeout(self.timeout)

        request = bytes(self._pending[:total])
        del self._pending[:total]
        self.requests_handled += 1
        return request

    def _check_size(self, size: int):
        if size > self.max_request_size:
            raise ValueError(f"Request too large: {size} bytes")

    def _fill_until_head(self) -> Optional[int]:
        """Read until the blank line; return the head length including it."""
        while True:
            end = self._pending.find(HEAD_END)
            if end != -1:
                return end + len(HEAD_END)
            if len(self._pending) > self.max_request_size:
                raise ValueError(f"Request head exceeds {self.max_request_size} bytes")
            if not self._read_more():
                return None

    def _fill_to(self, size: int) -> bool:
        while len(self._pending) < size:
            if not self._read_more():
                return False
        return True

    def _fill_line(self, start: int) -> Optional[int]:
        """Read until a CRLF at or after `start`; return the offset of the CR."""
        while True:
            end = self._pending.find(CRLF, start)
            if end != -1:
                return end
            self._check_size(len(self._pending))
            if not self._read_more():
                return None

    def _fill_chunked(self, head_len: int) -> Optional[int]:
        """Read a chunked body; return the request length up to its last CRLF."""
        pos = head_len
        while True:
            line_end = self._fill_line(pos)
            if line_end is None:
                return None
            match = _CHUNK_SIZE.fullmatch(self._pending, pos, line_end)
            if match is None:
                raise FramingError("Invalid chunk size line")
            size = int(match.group(1), 16)
            pos = line_end + len(CRLF)

            if size == 0:
                break

            end = pos + size + len(CRLF)
            self._check_size(end)
            if not self._fill_to(end):
                return None
            if self._pending[end - len(CRLF):end] != CRLF:
                raise FramingError("Chunk data not followed by CRLF")
            pos = end

        # Trailer fields, then the empty line
        while True:
            line_end = self._fill_line(pos)
            if line_end is None:
                return None
            self._check_size(line_end + len(CRLF))
            if line_end == pos:
                return pos + len(CRLF)
            pos = line_end + len(CRLF)

    def _read_more(self) -> bool:
        """Append one recv() to the buffer. False once the peer is gone."""
        try:
            chunk = self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            chunk = b""
        self._pending += chunk
        return bool(chunk)

    def _content_length(self, head_len: int) -> int:
        """Declared body size; 0 if missing or not a plain number."""
        match = _CONTENT_LENGTH.search(self._pending, 0, head_len - 2)
        return int(match.group(1)) if match else 0

    def _is_chunked(self, head_len: int) -> bool:
        """True when the last Transfer-Encoding coding is chunked."""
        values = _TRANSFER_ENCODING.findall(self._pending, 0, head_len - 2)
        if not values:
            return False
        codings = values[-1].split(b",")
        return codings[-1].strip().lower() == b"chunked"

    def send_response(self, data: bytes) -> bool:
        """Write a whole response. False if the client has gone away."""
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False
        return True

    def set_keep_alive(self):
        self.state = ConnectionState.IDLE

    def close(self, drain: bool = True):
        """
        Half-close, drain what the client still sends, then close.

        Closing with unread input makes the kernel send RST, which can
        destroy a response the client hasn't read yet. The drain stops
        after DRAIN_TIMEOUT seconds or DRAIN_LIMIT bytes, whichever comes
        first. With drain=False the socket is closed straight away.
        """
        if self.state is ConnectionState.CLOSED:
            return

        try:
            self.socket.shutdown(socket.SHUT_WR)
            if drain:
                self._drain()
        except OSError:
            pass
        finally:
            self.socket.close()
            self.state = ConnectionState.CLOSED

        lifetime = time.monotonic() - self.opened_at
        logger.debug(f"[{self.id}] Closed after {self.requests_handled} request(s), {lifetime:.2f}s")

    def _drain(self):
        deadline = time.monotonic() + DRAIN_TIMEOUT
        drained = 0
        while drained < DRAIN_LIMIT:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            self.socket.settimeout(remaining)
            chunk = self.socket.recv(self.buffer_size)
            if not chunk:
                break
            drained += len(chunk)

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
