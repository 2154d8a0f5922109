"""
=============================================================================
REDIRECTOR - Regex-Driven HTTP Redirect Server
=============================================================================

A small HTTP/1.1 server, built on raw sockets and a thread pool, that
answers every request with either a 302 redirect or a 404.

Rules come from the environment, one pair of variables each:

    REDIRECT_DOCS_FROM='^(.*)/docs/(.*)$'
    REDIRECT_DOCS_TO='$1/help/$2'

A request for http://site.io/docs/intro is matched as the string
"site.io/docs/intro" and answered with:

    HTTP/1.1 302 Found
    Location: site.io/help/intro

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    redirector/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m redirector)
    ├── server.py            # RedirectServer orchestrator
    ├── config.py            # ServerConfig dataclass, environment loading
    ├── rules.py             # RedirectRule, RuleSet, compile_rules()
    ├── template.py          # $1 / ${name} replacement templates
    ├── core/                # Low-level networking
    │   ├── socket_server.py # Listening socket, accept loop
    │   ├── connection.py    # Buffered client connection
    │   └── thread_pool.py   # WorkerPool, bounded job queue
    ├── http/                # HTTP protocol
    │   ├── request.py       # Request parsing
    │   ├── response.py      # Response building
    │   ├── router.py        # Rule matching → redirect / 404
    │   └── status_codes.py  # HTTPStatus enum
    └── middleware/
        ├── base.py          # Middleware, MiddlewarePipeline
        └── logging.py       # Access log

=============================================================================
QUICK START
=============================================================================

    from redirector import RedirectServer, ServerConfig

    config = ServerConfig(port=8080, redirects={
        "REDIRECT_OLD_FROM": "^example.com/old$",
        "REDIRECT_OLD_TO": "example.com/new",
    })
    RedirectServer(config).run()

Or from a shell:

    PORT=8080 REDIRECT_OLD_FROM='^example.com/old$' \\
        REDIRECT_OLD_TO='example.com/new' python -m redirector

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .rules import RedirectRule, RuleSet, compile_rules
from .http.router import RouteDecision, DecisionKind, route
from .server import RedirectServer

__all__ = [
    "RedirectServer",
    "ServerConfig",
    "RedirectRule",
    "RuleSet",
    "compile_rules",
    "RouteDecision",
    "DecisionKind",
    "route",
    "__version__",
]
