"""
=============================================================================
HTTP PROTOCOL COMPONENTS
=============================================================================

    request.py       Raw bytes → HTTPRequest (RequestParser)
    response.py      HTTPResponse / ResponseBuilder → raw bytes
    router.py        HTTPRequest → RouteDecision → HTTPResponse
    status_codes.py  HTTPStatus enum with reason phrases

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    redirect,
    not_found,
    error_response,
)
from .router import (
    RedirectRouter,
    RouteDecision,
    DecisionKind,
    route,
    resolve_client_identity,
)
from .status_codes import HTTPStatus

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "redirect",
    "not_found",
    "error_response",

    # Routing
    "RedirectRouter",
    "RouteDecision",
    "DecisionKind",
    "route",
    "resolve_client_identity",

    # Status codes
    "HTTPStatus",
]
