"""
=============================================================================
MIDDLEWARE BASE
=============================================================================

Middleware wraps the router. Each one gets the request and a `next`
callable for the rest of the chain:

    AccessLogMiddleware ─► YourMiddleware ─► RedirectRouter.handle
            ▲                                        │
            └──────────── response ◄─────────────────┘

A middleware may change the request, change the response, or answer on
its own without calling `next` at all.

=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from functools import partial, reduce
from typing import Callable, List

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


Handler = Callable[[HTTPRequest], HTTPResponse]
NextHandler = Handler


class Middleware(ABC):
    """
    One link in the chain.

        class StampMiddleware(Middleware):
            def __call__(self, request, next):
                response = next(request)
                response.headers["X-Redirector"] = "1"
                return response
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        ...

    @property
    def name(self) -> str:
        return type(self).__name__


class MiddlewarePipeline:
    """Ordered middleware; the first added is the outermost."""

    def __init__(self):
        self._chain: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._chain.append(middleware)
        logger.debug(f"Middleware #{len(self._chain)}: {middleware.name}")
        return self

    def wrap(self, handler: Handler) -> Handler:
        """
        Return one callable running the whole chain around `handler`.

        Folds from the innermost middleware outwards, binding each one's
        `next` argument to everything inside it.
        """
        return reduce(
            lambda inner, middleware: partial(_call_with_next, middleware, inner),
            reversed(self._chain),
            handler,
        )


def _call_with_next(middleware: Middleware, inner: Handler, request: HTTPRequest) -> HTTPResponse:
    return middleware(request, inner)
