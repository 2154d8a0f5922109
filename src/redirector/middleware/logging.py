"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

Writes exactly one line per request to the "redirector.access" logger.

TEXT FORMAT (default):
──────────────────────

    [203.0.113.7] site.io/docs/intro -> site.io/help/intro
    [::ffff:10.0.0.5] other.com/x -> 404

    [<client identity>] <host><target> -> <location, or status code>

The client identity is X-Forwarded-For if present, else the peer IP, else
"unknown" (see http.router.resolve_client_identity).

JSON FORMAT:
────────────

    {"client": "203.0.113.7", "method": "GET", "subject": "site.io/docs/intro",
     "status": 302, "location": "site.io/help/intro", "duration_ms": 0.12}

One object per line, for log shippers.

=============================================================================
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse
from ..http.router import build_subject, resolve_client_identity


logger = logging.getLogger("redirector.access")


@dataclass
class AccessLogEntry:
    """One access log record."""

    client: str
    method: str
    subject: str
    status: int
    location: Optional[str]
    duration_ms: float

    @property
    def outcome(self) -> str:
        """Redirect target, or the status code for anything else."""
        return self.location if self.location is not None else str(self.status)

    def to_text(self) -> str:
        return f"[{self.client}] {self.subject} -> {self.outcome}"

    def to_dict(self) -> dict:
        return {
            "client": self.client,
            "method": self.method,
            "subject": self.subject,
            "status": self.status,
            "location": self.location,
            "duration_ms": round(self.duration_ms, 2),
        }


class AccessLogMiddleware(Middleware):
    """
    Request logging middleware. Add it FIRST so it also sees requests that
    fail further down the chain.

        pipeline.add(AccessLogMiddleware())                 # text
        pipeline.add(AccessLogMiddleware(log_format="json"))
    """

    def __init__(self, log_format: str = "text", log_level: int = logging.INFO):
        self.log_format = log_format
        self.log_level = log_level

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        start_time = time.perf_counter()
        subject = build_subject(request.host, request.target)
        client = resolve_client_identity(request.forwarded_for, request.client_ip)

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"[{client}] {subject} failed: {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        entry = AccessLogEntry(
            client=client,
            method=request.method,
            subject=subject,
            status=int(response.status),
            location=response.location,
            duration_ms=(time.perf_counter() - start_time) * 1000,
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())

        return response
