"""
=============================================================================
CORE NETWORKING COMPONENTS
=============================================================================

    socket_server.py  Listening socket, accept loop, signal handling
    connection.py     One client socket: buffered request reads, close
    thread_pool.py    Worker threads fed by a bounded queue

Thread-per-connection: each accepted connection is handed to one worker,
which reads, routes and answers its requests until the client goes away.

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState, FramingError
from .thread_pool import WorkerPool

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "FramingError",
    "WorkerPool",
]
