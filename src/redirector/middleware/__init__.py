"""
=============================================================================
MIDDLEWARE
=============================================================================

Cross-cutting request processing, chained around the router
(Chain of Responsibility):

    base.py     Middleware ABC and MiddlewarePipeline
    logging.py  AccessLogMiddleware, one access log line per request

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import AccessLogMiddleware, AccessLogEntry

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "AccessLogMiddleware",
    "AccessLogEntry",
]
