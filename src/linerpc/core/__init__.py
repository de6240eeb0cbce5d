"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing under the line RPC server:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Binds the listening socket (tcp, tcp6 or unix)                   │
    │  • Runs the accept() loop                                           │
    │  • Wraps every client socket in a Connection                        │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                         CLIENT REGISTRY                              │
    │  • id → Connection, guarded by a read/write lock                    │
    │  • broadcast() to every live connection                             │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Buffered newline framing                                         │
    │  • Thread-safe writes, response helpers for method handlers         │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState, LineTooLongError, format_peer
from .registry import ClientRegistry, ReadWriteLock

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "LineTooLongError",
    "format_peer",
    "ClientRegistry",
    "ReadWriteLock",
]
