"""
=============================================================================
LINE RPC SERVER
=============================================================================

The orchestrator that ties the components together into an embeddable RPC
endpoint. The host registers methods, calls start(), and the server takes
care of connections, framing, dispatch and client bookkeeping.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │  LineRPCServer  │                          │
    │                        │ (Orchestrator)  │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │            ┌────────────────────┼────────────────────┐              │
    │            │                    │                    │              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐        │
    │    │ SocketServer │    │ClientRegistry│    │MethodRegistry│        │
    │    │ (Networking) │    │ (Bookkeeping)│    │ (Dispatching)│        │
    │    └──────┬───────┘    └──────────────┘    └──────────────┘        │
    │           │                                                         │
    │           ▼                                                         │
    │    ┌──────────────┐   one thread per connection                     │
    │    │  Connection  │                                                 │
    │    └──────────────┘                                                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. CLIENT CONNECTS
       └── accepted, registered (id 1, 2, 3, ...), own thread started
    2. READ ONE LINE
       └── empty line → ignored
       └── help       → method list
       └── quit / bye / exit → connection closes
    3. DECODE ENVELOPE
       └── malformed  → error line, keep reading
       └── no method  → ignored
    4. DISPATCH
       └── "help"     → method list
       └── registered → handler(envelope, conn) writes its own response
       └── unknown    → {"status":"error","error":"Method not found"}
    5. REPEAT FROM 2 UNTIL EOF OR QUIT
    6. CLEANUP (always, exactly once)
       └── unregister, close socket, call disconnect_handler(peer)

=============================================================================
"""

import logging
import threading
from typing import Any, Callable, Optional, Union

from .config import ResolvedConfig, ServerConfig
from .core import ClientRegistry, Connection, ConnectionState, LineTooLongError, SocketServer
from .exceptions import EnvelopeDecodeError
from .protocol import HELP_METHOD, MethodHandler, MethodRegistry, decode_envelope


logger = logging.getLogger(__name__)

METHOD_NOT_FOUND = "Method not found"

# Recognized before JSON parsing, as the case-insensitive first word
HELP_WORD = "help"
QUIT_WORDS = ("quit", "bye", "exit")
CONTROL_WORDS = (HELP_WORD, *QUIT_WORDS)

LoggingHandler = Callable[[str], None]
DisconnectHandler = Callable[[str], None]


def match_control_word(line: str) -> Optional[str]:
    """
    Return the control word a line starts with, or None.

    The first whitespace-separated word must be the whole control word:

        "help"      → "help"
        "QUIT now"  → "quit"
        "helpdesk"  → None
        '{"method": "help"}' → None
    """
    words = line.lower().split(None, 1)
    if words and words[0] in CONTROL_WORDS:
        return words[0]
    return None


class LineRPCServer:
    """
    Line-delimited JSON RPC server.

    =========================================================================
    USAGE
    =========================================================================

        server = LineRPCServer(ServerConfig(port=3333))

        @server.method("echo")
        def echo(envelope, conn):
            conn.send_success(envelope.payload)

        server.broadcast("hello")   # from any thread, any time
        server.start()              # blocks

    =========================================================================
    HOOKS
    =========================================================================

    logging_handler(message)
        Receives every log event as one string, e.g.
        "[TCP] 127.0.0.1:51234 Connection open". Without it, events go to
        the "linerpc.server" logger.

    disconnect_handler(peer)
        Called once per connection after it closed, with the peer address.

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        logging_handler: Optional[LoggingHandler] = None,
        disconnect_handler: Optional[DisconnectHandler] = None,
    ):
        """
        Args:
            config: Server configuration. Unset host/port/transport fall back
                    to the defaults when the server first needs them.
            logging_handler: Optional sink for log events.
            disconnect_handler: Optional callback fired on every disconnect.
        """
        self.config = config or ServerConfig()
        self.config.validate()  # Fail fast on invalid config

        self.logging_handler = logging_handler
        self.disconnect_handler = disconnect_handler

        self._methods = MethodRegistry()
        self._clients = ClientRegistry()
        self._resolved: Optional[ResolvedConfig] = None
        self._socket_server: Optional[SocketServer] = None
        self._listening = threading.Event()
        self._running = False

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    @property
    def resolved_config(self) -> ResolvedConfig:
        """
        Effective configuration, resolved from self.config on first access
        and cached for the lifetime of the server.
        """
        if self._resolved is None:
            self._resolved = self.config.resolve()
        return self._resolved

    @property
    def host(self) -> str:
        return self.resolved_config.host

    @property
    def port(self) -> int:
        return self.resolved_config.port

    @property
    def transport(self) -> str:
        return self.resolved_config.transport

    @property
    def address(self) -> Any:
        """Bound address while listening (real port when port 0 was asked)."""
        if self._socket_server is None:
            return None
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # METHODS
    # =========================================================================

    def register_method(self, name: str, handler: MethodHandler) -> None:
        """
        Register a method handler.

        Call this before start(): the method table is read without a lock
        by every connection thread.

        Raises:
            ReservedMethodError: For "help".
            ValueError: For an empty name or a non-callable handler.
        """
        if self._running:
            logger.warning(f"Method {name!r} registered while the server is running")
        self._methods.register(name, handler)

    def method(self, name: str) -> Callable[[MethodHandler], MethodHandler]:
        """Decorator form of register_method()."""
        def decorator(handler: MethodHandler) -> MethodHandler:
            self.register_method(name, handler)
            return handler
        return decorator

    @property
    def methods(self) -> MethodRegistry:
        return self._methods

    # =========================================================================
    # LOGGING
    # =========================================================================

    def log(self, *parts: Any, level: int = logging.INFO) -> None:
        """Emit one log event made of space-joined parts."""
        message = " ".join(str(part) for part in parts)
        message = f"{self.config.log_prefix} {message}" if self.config.log_prefix else message

        if self.logging_handler is None:
            logger.log(level, message)
            return
        try:
            self.logging_handler(message)
        except Exception:
            logger.exception(f"Logging handler failed on: {message}")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """
        Bind the listener and serve clients (blocking).

        Returns when shutdown() is called or accept() fails.

        Raises:
            OSError: If the listener cannot be bound. Not retried.
        """
        resolved = self.resolved_config
        self._socket_server = SocketServer(resolved, handle_signals=self.config.handle_signals)
        self._running = True

        try:
            self._socket_server.start(self._handle_connection, on_listening=self._on_listening)
        except OSError as e:
            self.log("Error listening:", e, level=logging.ERROR)
            raise
        finally:
            self._running = False
            self._listening.clear()

    def _on_listening(self):
        address = self._socket_server.address
        if self.resolved_config.is_unix:
            where = self.resolved_config.host
        else:
            where = f"{self.resolved_config.host}:{address[1]}"
        self.log(f"Listening on {where} ({self.resolved_config.transport})")
        self._listening.set()

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        """Block until start() is accepting connections."""
        return self._listening.wait(timeout)

    def shutdown(self) -> None:
        """
        Stop accepting new connections.

        Open connections are left alone; they end on EOF or a quit word.
        """
        if self._socket_server is not None:
            self._socket_server.shutdown()

    # =========================================================================
    # CLIENTS
    # =========================================================================

    def get_num_clients(self) -> int:
        """Number of currently open connections."""
        return self._clients.count()

    def broadcast(self, message: Union[str, bytes]) -> int:
        """
        Send message + newline to every connected client.

        Returns:
            Number of clients the message was written to.
        """
        return self._clients.broadcast(message)

    @property
    def clients(self) -> ClientRegistry:
        return self._clients

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """
        Register a freshly accepted connection and give it a thread.

        Runs in the accept loop, so it must not block.
        """
        self.log(conn.peer, "Connection open")
        self._clients.add(conn)

        thread = threading.Thread(
            target=self._process_connection,
            args=(conn,),
            name=f"linerpc-conn-{conn.id}",
            daemon=True,
        )
        try:
            thread.start()
        except RuntimeError as e:
            self.log(conn.peer, "Cannot start connection thread:", e, level=logging.ERROR)
            self._clients.remove(conn.id)
            conn.close()

    def _process_connection(self, conn: Connection):
        """Connection thread: read loop plus guaranteed cleanup."""
        try:
            self._read_loop(conn)
        except Exception:
            logger.exception(f"[{conn.id}] Method handler failed, closing {conn.peer}")
        finally:
            self._close_client(conn)

    def _read_loop(self, conn: Connection):
        """
        =====================================================================
        READ / DISPATCH LOOP
        =====================================================================

            READING ──line──► control word?  ──quit──► return (CLOSING)
               ▲                   │
               │                   └─none──► DISPATCHING
               └───────────────────────────────────┘

        Lines are handled one at a time, in arrival order.
        =====================================================================
        """
        while True:
            try:
                line = conn.read_line()
            except LineTooLongError as e:
                self.log(conn.peer, str(e), level=logging.WARNING)
                conn.send_error(e)
                return

            if line is None:
                self.log(conn.peer, "Connection closed")
                return

            if not line.strip():
                continue

            self.log(conn.peer, "Message Received:", line, level=logging.DEBUG)

            word = match_control_word(line)
            if word == HELP_WORD:
                self._send_help(conn)
                continue
            if word in QUIT_WORDS:
                self.log(conn.peer, f"Client sent {word!r}")
                return

            self._dispatch(conn, line)

    def _dispatch(self, conn: Connection, line: str):
        conn.state = ConnectionState.DISPATCHING

        try:
            envelope = decode_envelope(line)
        except EnvelopeDecodeError as e:
            self.log(conn.peer, str(e), level=logging.WARNING)
            conn.send_error(e)
            return

        if not envelope.method:
            return  # Nothing to call; deliberately no response

        if envelope.method == HELP_METHOD:
            self._send_help(conn)
            return

        handler = self._methods.lookup(envelope.method)
        if handler is None:
            conn.send_error(METHOD_NOT_FOUND)
            return

        handler(envelope, conn)

    def _send_help(self, conn: Connection):
        conn.send_success({"methods": self._methods.names()})

    def _close_client(self, conn: Connection):
        """Unregister, close and notify. Runs exactly once per connection."""
        self._clients.remove(conn.id)
        conn.close()

        if self.disconnect_handler is not None:
            self.disconnect_handler(conn.peer)
