"""
=============================================================================
LINERPC - Line-Delimited JSON RPC Over Raw Stream Sockets
=============================================================================

An embeddable request/response endpoint. The host process registers named
methods and starts the listener; linerpc handles connections, framing,
dispatch and multi-client bookkeeping.

=============================================================================
WIRE FORMAT
=============================================================================

One request or response per line, newline terminated:

    → {"method":"echo","payload":{"a":1}}
    ← {"status":"ok","data":{"a":1}}

    → {"method":"missing"}
    ← {"status":"error","error":"Method not found"}

    → help
    ← {"status":"ok","data":{"methods":["help","echo"]}}

    → quit
    (connection closed)

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    linerpc/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # Demo server (python -m linerpc)
    ├── server.py            # LineRPCServer, the host-facing API
    ├── config.py            # ServerConfig / ResolvedConfig
    ├── exceptions.py        # LineRPCError and friends
    ├── core/                # Networking
    │   ├── socket_server.py # Listening socket and accept loop
    │   ├── connection.py    # Line framing and response helpers
    │   └── registry.py      # Thread-safe live connection registry
    └── protocol/            # Pure text ↔ message code
        ├── envelope.py      # Request line decoding
        ├── response.py      # Response line encoding
        └── methods.py       # Method name → handler table

=============================================================================
QUICK START
=============================================================================

    from linerpc import LineRPCServer, ServerConfig

    server = LineRPCServer(ServerConfig(port=3333))

    @server.method("echo")
    def echo(envelope, conn):
        conn.send_success(envelope.payload)

    server.start()

=============================================================================
"""

__version__ = "1.0.0"

from .server import LineRPCServer
from .config import ResolvedConfig, ServerConfig
from .core import Connection, ConnectionState
from .exceptions import EnvelopeDecodeError, LineRPCError, ReservedMethodError
from .protocol import Envelope, Response, decode_envelope, encode_error, encode_success

__all__ = [
    "LineRPCServer",
    "ServerConfig",
    "ResolvedConfig",
    "Connection",
    "ConnectionState",
    "Envelope",
    "Response",
    "decode_envelope",
    "encode_success",
    "encode_error",
    "LineRPCError",
    "EnvelopeDecodeError",
    "ReservedMethodError",
    "__version__",
]
