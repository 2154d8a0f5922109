"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw bytes read from a client socket into an HTTPRequest.

A redirector needs very little from a request: the Host header, the
request target EXACTLY as the client sent it (path and query, still
percent-encoded), the X-Forwarded-For header and the peer address. The
parser still validates the message properly so that garbage gets a 400
instead of a redirect.

=============================================================================
HTTP REQUEST FORMAT (RFC 7230)
=============================================================================

    GET /docs/intro?lang=en HTTP/1.1\\r\\n       ← Request line
    Host: site.io\\r\\n                          ← Headers
    X-Forwarded-For: 203.0.113.7\\r\\n
    \\r\\n                                       ← Blank line
    (optional body, Content-Length bytes or chunked)

=============================================================================
HEADER DECODING
=============================================================================

Header bytes are decoded as ISO-8859-1, which maps every byte to exactly
one character and therefore can't fail. Whether a value is usable TEXT is
decided later by the router: a Host or X-Forwarded-For value containing
non-ASCII bytes is treated as if the header were missing.

=============================================================================
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the HTTP status code that should be sent back to the client:

        400 Bad Request                - Malformed request syntax
        413 Payload Too Large          - Request exceeds size limit
        505 HTTP Version Not Supported - Unknown HTTP version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method: Request method token (GET, POST, PURGE, ...).
        target: Request target as received, e.g. "/docs/intro?lang=en".
        version: "HTTP/1.1" or "HTTP/1.0".
        headers: Header name → value, names lowercased.
        body: Request body bytes as framed on the wire (ignored by the router).
        client_address: Peer (ip, port) of the TCP connection.
    """

    method: str
    target: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    client_address: tuple = ("", 0)

    @property
    def host(self) -> Optional[str]:
        """The Host header, or None if the client didn't send one."""
        return self.headers.get("host")

    @property
    def forwarded_for(self) -> Optional[str]:
        """The X-Forwarded-For header, or None."""
        return self.headers.get("x-forwarded-for")

    @property
    def client_ip(self) -> Optional[str]:
        """The peer IP address, or None if unknown."""
        ip = self.client_address[0] if self.client_address else ""
        return ip or None

    @property
    def is_keep_alive(self) -> bool:
        """
        Check if the connection should stay open after the response.

        HTTP/1.1 keeps alive unless "Connection: close".
        HTTP/1.0 closes unless "Connection: keep-alive".
        """
        connection = self.headers.get("connection", "").lower()

        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

        1. Size check                 → 413 if too large
        2. Find \\r\\n\\r\\n             → 400 if missing
        3. Parse request line         → 400 / 505
        4. Parse headers              → lowercase names
        5. Body: chunked as framed, else sliced by Content-Length
    """

    # METHOD SP TARGET SP HTTP/X.Y, method is any RFC 7230 token
    REQUEST_LINE_PATTERN = re.compile(
        r"^([!#$%&'*+.^_`|~0-9A-Za-z-]+) (\S+) (HTTP/\d\.\d)$"
    )
    HEADER_PATTERN = re.compile(r"^([^:\s]+):\s*(.*)$")

    SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")
    FIRST_VALUE_WINS = frozenset({"x-forwarded-for"})

    def __init__(self, max_request_size: int = 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(self, data: bytes, client_address: tuple = ("", 0)) -> HTTPRequest:
        """
        Parse raw HTTP request data.

        Args:
            data: Raw request bytes (headers and body).
            client_address: Peer (ip, port) tuple.

        Returns:
            Parsed HTTPRequest.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("iso-8859-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, target, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        body = self._frame_body(headers, body)

        return HTTPRequest(
            method=method,
            target=target,
            version=version,
            headers=headers,
            body=body,
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> tuple:
        """
        Split "METHOD TARGET VERSION" into its three parts.

        The target is kept verbatim. It is never URL-decoded or normalized,
        because redirect patterns are written against what the client sent.
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()

        if version not in self.SUPPORTED_VERSIONS:
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        return method, target, version

    def _frame_body(self, headers: Dict[str, str], body: bytes) -> bytes:
        """
        Return the request body.

        A chunked body is kept as it arrived; the connection has already
        found where it ends. Otherwise Content-Length decides.
        """
        transfer_encoding = headers.get("transfer-encoding")
        if transfer_encoding is not None:
            if "content-length" in headers:
                raise HTTPParseError("Both Transfer-Encoding and Content-Length sent")
            if transfer_encoding.split(",")[-1].strip().lower() != "chunked":
                raise HTTPParseError(f"Unsupported Transfer-Encoding: {transfer_encoding}")
            return body

        content_length = headers.get("content-length", "0")
        if not (content_length.isascii() and content_length.isdigit()):
            raise HTTPParseError("Invalid Content-Length header")
        content_length = int(content_length)
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )
        return body[:content_length]

    def _parse_headers(self, lines: list) -> Dict[str, str]:
        """
        Parse "Name: Value" lines into a dict with lowercase names.

        Lines starting with whitespace continue the previous header
        (obsolete line folding). Malformed lines are skipped.

        Repeats of a header:

            Host               → 400, the subject would be ambiguous
            X-Forwarded-For    first line wins, the rest are ignored
            anything else      joined with ", "
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                # current_name is None after an ignored repeat
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.lower()
            value = value.strip()

            if name not in headers:
                headers[name] = value
                current_name = name
            elif name == "host":
                raise HTTPParseError("Multiple Host headers")
            elif name in self.FIRST_VALUE_WINS:
                current_name = None
            else:
                headers[name] += ", " + value
                current_name = name

        return headers


def parse_request(data: bytes, client_address: tuple = ("", 0)) -> HTTPRequest:
    """Parse a request with a default RequestParser."""
    return RequestParser().parse(data, client_address)
