"""
=============================================================================
HTTP RESPONSE BUILDING
=============================================================================

HTTPResponse holds a status, headers and body and knows how to serialize
itself; ResponseBuilder is the fluent way to make one.

The redirector only ever sends two kinds of answer to a valid request:

    HTTP/1.1 302 Found                  HTTP/1.1 404 Not Found
    Location: site.io/help/intro        Content-Type: text/plain; charset=utf-8
    Content-Length: 0                   Content-Length: 9
    ...                                 ...

                                        Not Found

Everything else (400, 408, 503, ...) is an error produced by the server
itself before the router is reached.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict

from .status_codes import HTTPStatus


DEFAULT_SERVER_NAME = "redirector"


@dataclass
class HTTPResponse:
    """
    An HTTP response to be sent to the client.

    Attributes:
        status: Status code (HTTPStatus).
        headers: Header name → value, names as they should be sent.
        body: Body bytes.
        version: HTTP version for the status line.
    """

    status: HTTPStatus = HTTPStatus.NOT_FOUND
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """E.g. "HTTP/1.1 302 Found"."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def location(self):
        """The Location header, or None."""
        return self.headers.get("Location")

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """
        Serialize the response for socket.sendall().

        Content-Length, Date and Server are filled in unless already set.

            HTTP/1.1 302 Found\\r\\n
            Location: site.io/help/intro\\r\\n
            Content-Length: 0\\r\\n
            Date: Sun, 18 Oct 2026 12:00:00 GMT\\r\\n
            Server: redirector\\r\\n
            \\r\\n
        """
        response_headers = dict(self.headers)

        response_headers.setdefault("Content-Length", str(len(self.body)))
        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)

        lines = [self.status_line.encode("ascii")]
        for name, value in response_headers.items():
            lines.append(f"{name}: ".encode("ascii") + _encode_header_value(value))
        lines.append(b"")

        return b"\r\n".join(lines) + b"\r\n" + self.body


class ResponseBuilder:
    """
    Fluent builder for HTTP responses.

        response = (ResponseBuilder()
            .redirect("https://example.com/new")
            .build())

        response = (ResponseBuilder()
            .status(HTTPStatus.BAD_REQUEST)
            .text("Bad Request")
            .close_connection()
            .build())
    """

    def __init__(self):
        self._status = HTTPStatus.NOT_FOUND
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        """Set the status code."""
        self._status = status
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        """Set a plain text body and its Content-Type."""
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def redirect(self, location: str) -> "ResponseBuilder":
        """Turn this into a 302 Found with an empty body."""
        self._status = HTTPStatus.FOUND
        self._headers["Location"] = location
        self._body = b""
        return self

    def close_connection(self) -> "ResponseBuilder":
        """Tell the client the connection closes after this response."""
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        """Build the HTTPResponse."""
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
        )


def _encode_header_value(value: str) -> bytes:
    """
    Encode a header value for the wire.

    Text that came from the request was decoded as ISO-8859-1, so encoding
    it the same way gives back the client's original bytes. Values that
    can't be Latin-1 (a template with non-Latin characters) go out as
    UTF-8. CR and LF are dropped so a value can never start a new header.
    """
    value = value.replace("\r", "").replace("\n", "")
    try:
        return value.encode("iso-8859-1")
    except UnicodeEncodeError:
        return value.encode("utf-8")


def format_http_date(dt: datetime) -> str:
    """
    Format a UTC datetime as an HTTP-date (RFC 7231).

    Example: Sun, 18 Oct 2026 12:00:00 GMT
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def redirect(location: str) -> HTTPResponse:
    """302 Found pointing at `location`, empty body."""
    return ResponseBuilder().redirect(location).build()


def not_found() -> HTTPResponse:
    """404 with the plain text body "Not Found"."""
    return ResponseBuilder().status(HTTPStatus.NOT_FOUND).text("Not Found").build()


def error_response(status: HTTPStatus) -> HTTPResponse:
    """
    A plain text error that also closes the connection.

    Used for failures that happen before routing (parse errors, timeouts,
    overload), where the connection state can't be trusted any more.
    """
    return (ResponseBuilder()
        .status(status)
        .text(status.phrase)
        .close_connection()
        .build())
