"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server can send. A redirector only needs a handful:

    302 Found                       A rule matched, see Location
    400 Bad Request                 Malformed request line or headers
    404 Not Found                   No rule matched
    408 Request Timeout             Client was too slow sending the request
    413 Payload Too Large           Request exceeded max_request_size
    500 Internal Server Error       Unexpected failure while handling
    503 Service Unavailable         Thread pool queue is full
    505 HTTP Version Not Supported  Anything other than HTTP/1.0 or 1.1

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    Extends IntEnum, so members compare equal to plain integers:

        >>> HTTPStatus.FOUND == 302
        True
        >>> HTTPStatus.FOUND.phrase
        'Found'
    """

    # 3xx REDIRECTION
    FOUND = 302                 # Resource temporarily at different URL

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400           # Malformed request syntax
    NOT_FOUND = 404             # No redirect configured for this URL
    REQUEST_TIMEOUT = 408       # Client took too long to send request
    PAYLOAD_TOO_LARGE = 413     # Request too large

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500         # Unexpected server error
    SERVICE_UNAVAILABLE = 503           # Server overloaded
    HTTP_VERSION_NOT_SUPPORTED = 505    # HTTP version not supported

    @property
    def phrase(self) -> str:
        """
        Get the reason phrase for this status code.

            HTTP/1.1 302 Found
                     ─── ─────
                      │    └── Reason phrase
                      └─────── Status code
        """
        return _STATUS_PHRASES.get(self, "Unknown")



_STATUS_PHRASES = {
    HTTPStatus.FOUND: "Found",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
