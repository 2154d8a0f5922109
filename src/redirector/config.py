"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

All settings live in one ServerConfig dataclass, loaded ONCE at startup.
Nothing after startup reads os.environ: the redirect entries are copied
into the config and handed to the rule compiler from there.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── redirector --port 8080                                    │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── PORT=8080 REDIRECT_A_FROM=... redirector                  │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Redirect rules can ONLY come from the environment (or an equivalent
mapping passed to from_env), one pair of variables per rule:

    REDIRECT_<NAME>_FROM    Regex matched against host + path
    REDIRECT_<NAME>_TO      Replacement template

=============================================================================
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from .rules import RULE_PREFIX


DEFAULT_PORT = 3000
LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Configuration for the redirect server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size, timeout

    HTTP SETTINGS
    - keep_alive, keep_alive_timeout, max_request_size

    THREADING SETTINGS
    - min_workers, max_workers, queue_size

    LOGGING
    - log_level, log_format

    REDIRECTS
    - redirects (raw REDIRECT_* entries, compiled by rules.compile_rules)

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "::"
    """
    The address to bind to.
    - "::" - Every interface, IPv6 and (mapped) IPv4
    - "0.0.0.0" - Every IPv4 interface
    - "127.0.0.1" - Localhost only
    """

    port: int = DEFAULT_PORT
    """Port to listen on. 0 lets the OS pick a free one."""

    backlog: int = 1024
    """Maximum number of connections waiting to be accepted."""

    buffer_size: int = 8192
    """Size of each socket recv() in bytes."""

    timeout: Optional[float] = 30.0
    """Socket timeout for the first request on a connection, in seconds."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    """Allow several requests on one TCP connection."""

    keep_alive_timeout: float = 5.0
    """Idle time before a kept-alive connection is closed."""

    max_request_size: int = 1024 * 1024  # 1 MB
    """
    Maximum request size (headers + body). A redirector has no use for
    request bodies, so this is much smaller than a general server needs.
    """

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16
    queue_size: int = 128

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING or ERROR."""

    log_format: str = "text"
    """
    Access log format.
    text - [client] host/path -> target
    json - one JSON object per request
    """

    server_name: str = "redirector"
    """Value of the Server response header."""

    # ─────────────────────────────────────────────────────────────────────
    # REDIRECTS
    # ─────────────────────────────────────────────────────────────────────

    redirects: Dict[str, str] = field(default_factory=dict)
    """Every REDIRECT_* entry found in the environment, untouched."""

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        PORT            Listening port (default: 3000, also when unparseable)
        HOST            Bind address (default: ::)
        WORKERS         Max worker threads (default: 16)
        LOG_LEVEL       Logging level (default: INFO)
        LOG_FORMAT      Access log format, text or json (default: text)
        REDIRECT_*      Redirect rule pairs

        =====================================================================

        Args:
            environ: Mapping to read from. Defaults to os.environ.
        """
        if environ is None:
            environ = os.environ

        max_workers = _parse_int(environ.get("WORKERS"), 16)

        return cls(
            host=environ.get("HOST") or "::",
            port=parse_port(environ.get("PORT")),
            min_workers=min(4, max(max_workers, 1)),
            max_workers=max_workers,
            log_level=environ.get("LOG_LEVEL", "INFO"),
            log_format=environ.get("LOG_FORMAT", "text"),
            redirects={
                key: value
                for key, value in environ.items()
                if key.startswith(RULE_PREFIX)
            },
        )

    def validate(self) -> None:
        """
        Validate configuration values (fail-fast, at startup).

        Raises:
            ValueError: On the first invalid setting.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")


def parse_port(value: Optional[str], default: int = DEFAULT_PORT) -> int:
    """
    Parse a port number, falling back to `default`.

    Anything that isn't a plain run of ASCII digits in 0-65535 (missing,
    empty, "http", "-1", " 8080", "8_080", "70000") gives the default
    instead of an error.
    """
    port = _parse_int(value, default)
    if not 0 <= port < 65536:
        return default
    return port


def _parse_int(value: Optional[str], default: int) -> int:
    # int() would also take whitespace, underscores and non-ASCII digits
    if value is None or not (value.isascii() and value.isdigit()):
        return default
    return int(value)
