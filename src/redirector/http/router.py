"""
=============================================================================
REDIRECT ROUTER
=============================================================================

Decides what to answer for a request: a redirect, or a 404.

=============================================================================
THE MATCH SUBJECT
=============================================================================

Rules are matched against the Host header glued directly to the request
target, with nothing inserted between them:

    Host: site.io
    GET /docs/intro?lang=en HTTP/1.1

    subject = "site.io/docs/intro?lang=en"

So a pattern can key off the host, the path, the query string or any
combination. With no Host header the subject is just the target.

=============================================================================
FIRST MATCH WINS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       route() Flow                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   for rule in rules:              (fixed order, see rules.py)       │
    │       │                                                              │
    │       ├── pattern.search(subject)?                                  │
    │       │       │                                                      │
    │       │       └── yes → pattern.sub(template, subject)              │
    │       │                 return REDIRECT(location)   ◄── STOP        │
    │       │                                                              │
    │       └── no → next rule                                            │
    │                                                                      │
    │   return NOT_FOUND                                                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The search is UNANCHORED: "docs" matches anywhere in the subject. Anchor
with ^ and $ to match the whole thing. Substitution replaces EVERY match
of the winning pattern, each using its own capture groups.

There is no specificity ranking. If two rules both match, the earlier one
is used and the later one is never looked at.

=============================================================================
CLIENT IDENTITY
=============================================================================

For the access log only:

    X-Forwarded-For header  →  peer IP of the connection  →  "unknown"

The first one that is present and non-empty wins.

=============================================================================
THREAD SAFETY
=============================================================================

The RuleSet is a tuple of frozen dataclasses and route() keeps no state,
so any number of worker threads can call it at once without locks.

=============================================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..rules import RuleSet
from .request import HTTPRequest
from .response import HTTPResponse, redirect, not_found


UNKNOWN_CLIENT = "unknown"


class DecisionKind(Enum):
    """What the router decided to do with a request."""
    REDIRECT = "redirect"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class RouteDecision:
    """
    Result of routing one request.

    Attributes:
        kind: REDIRECT or NOT_FOUND.
        client_identity: Who made the request, for logging.
        subject: The host + target string that was matched.
        location: Redirect target (None for NOT_FOUND).
    """

    kind: DecisionKind
    client_identity: str
    subject: str = ""
    location: Optional[str] = None

    @property
    def is_redirect(self) -> bool:
        return self.kind is DecisionKind.REDIRECT


def header_text(value: Optional[str]) -> Optional[str]:
    """
    Return `value` if it is usable header text, else None.

    Usable means visible ASCII, spaces and tabs only. Anything carrying
    raw high bytes or control characters is treated as if the header were
    never sent.
    """
    if value is None:
        return None
    for char in value:
        if not (" " <= char <= "~" or char == "\t"):
            return None
    return value


def resolve_client_identity(
    forwarded_for: Optional[str] = None,
    peer_address: Optional[str] = None,
) -> str:
    """
    Pick the string identifying the client in the access log.

    Precedence: forwarded_for, then peer_address, then "unknown".
    Empty strings count as absent.
    """
    return header_text(forwarded_for) or peer_address or UNKNOWN_CLIENT


def build_subject(host: Optional[str], uri: str) -> str:
    """Concatenate host and uri; a missing or unreadable host is ""."""
    return (header_text(host) or "") + uri


def route(
    rules: RuleSet,
    host: Optional[str],
    uri: str,
    forwarded_for: Optional[str] = None,
    peer_address: Optional[str] = None,
) -> RouteDecision:
    """
    Route one request against the rule set.

    Never raises for request data: a request that matches nothing is
    simply NOT_FOUND.

    Args:
        rules: The compiled RuleSet, in matching order.
        host: Host header value (None if absent).
        uri: Request target as received (path + query).
        forwarded_for: X-Forwarded-For header value (None if absent).
        peer_address: IP address of the TCP peer (None if unknown).

    Returns:
        RouteDecision with the redirect location or NOT_FOUND.

    Example:
        >>> from redirector.rules import compile_rules
        >>> rules = compile_rules({
        ...     "REDIRECT_B_FROM": "^(.*)/docs/(.*)$",
        ...     "REDIRECT_B_TO": "$1/help/$2",
        ... })
        >>> route(rules, "site.io", "/docs/intro").location
        'site.io/help/intro'
    """
    subject = build_subject(host, uri)
    identity = resolve_client_identity(forwarded_for, peer_address)

    for rule in rules:
        if rule.matches(subject):
            return RouteDecision(
                kind=DecisionKind.REDIRECT,
                client_identity=identity,
                subject=subject,
                location=rule.apply(subject),
            )

    return RouteDecision(
        kind=DecisionKind.NOT_FOUND,
        client_identity=identity,
        subject=subject,
    )


class RedirectRouter:
    """
    Binds a RuleSet to HTTP requests and responses.

    One instance is created at startup and shared by all worker threads.

        router = RedirectRouter(compile_rules(config.redirects))
        response = router.handle(request)
    """

    def __init__(self, rules: RuleSet):
        self._rules = tuple(rules)

    @property
    def rules(self) -> RuleSet:
        return self._rules

    def route(self, request: HTTPRequest) -> RouteDecision:
        """Route a parsed request."""
        return route(
            self._rules,
            host=request.host,
            uri=request.target,
            forwarded_for=request.forwarded_for,
            peer_address=request.client_ip,
        )

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Answer a request: 302 to the substituted location, or 404.

        This is the innermost handler of the middleware pipeline.
        """
        decision = self.route(request)
        if decision.is_redirect:
            return redirect(decision.location)
        return not_found()

    def __len__(self) -> int:
        return len(self._rules)
