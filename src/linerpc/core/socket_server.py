"""
=============================================================================
LISTENING SOCKET AND ACCEPT LOOP
=============================================================================

This module owns the listening socket. It binds, listens, accepts, wraps
each client socket in a Connection and hands it to a callback. It knows
nothing about lines, JSON or methods.

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. socket()    Create the listening socket for the transport kind
    2. bind()      Reserve host:port (or the unix socket path)
    3. listen()    Let the OS queue incoming connections (backlog)
    4. accept()    Wait for a client, get a NEW socket just for it
    5. close()     Release the listening socket

=============================================================================
TRANSPORT KINDS
=============================================================================

    tcp    IPv4 stream socket (AF_INET)
    tcp4   Same as tcp
    tcp6   IPv6 stream socket (AF_INET6)
    unix   Unix domain stream socket; host is the socket path, port unused

=============================================================================
FAILURE MODES
=============================================================================

    bind()/listen() fails  → logged and re-raised, the server never starts
    accept() fails         → logged, the accept loop ends; clients that are
                             already connected keep being served

=============================================================================
"""

import os
import stat
import socket
import signal
import logging
import threading
from typing import Any, Callable, Optional

from ..config import ResolvedConfig
from .connection import Connection


logger = logging.getLogger(__name__)

_FAMILIES = {
    "tcp": socket.AF_INET,
    "tcp4": socket.AF_INET,
    "tcp6": socket.AF_INET6,
}


def _remove_stale_socket(path: str):
    """
    Remove a socket file left behind by a previous run.

    Anything else at the path is left alone, so bind() fails with
    "Address already in use" instead of deleting a regular file.
    """
    try:
        mode = os.stat(path).st_mode
    except FileNotFoundError:
        return
    if stat.S_ISSOCK(mode):
        os.unlink(path)


class SocketServer:
    """
    Low-level stream socket server.

    Usage:
        def on_accept(conn: Connection):
            ...

        server = SocketServer(config.resolve())
        server.start(on_accept)  # Blocks until shutdown() or accept error
    """

    def __init__(self, config: ResolvedConfig, handle_signals: bool = False):
        self.config = config
        self.handle_signals = handle_signals

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._bound_address: Any = None

        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Any:
        """
        The address actually bound, e.g. ("127.0.0.1", 51234).

        Differs from the configured one when port 0 was requested.
        None before the socket is bound.
        """
        return self._bound_address

    def _create_socket(self) -> socket.socket:
        """Create and configure the listening socket."""
        if self.config.is_unix:
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        else:
            sock = socket.socket(_FAMILIES[self.config.transport], socket.SOCK_STREAM)

            # Avoid "Address already in use" while old sockets sit in TIME_WAIT
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

            # Small request/response lines: send them immediately
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # Wake up once a second to notice shutdown()
        sock.settimeout(1.0)
        return sock

    def _bind_target(self) -> Any:
        if self.config.is_unix:
            return self.config.host
        return (self.config.host, self.config.port)

    def _setup_signals(self):
        """Stop the accept loop on SIGINT/SIGTERM (main thread only)."""
        if not self.handle_signals:
            return
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, skipping signal handlers")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(
        self,
        on_accept: Callable[[Connection], None],
        on_listening: Optional[Callable[[], None]] = None,
    ):
        """
        Bind, listen and run the accept loop.

        Blocks until shutdown() is called or accept() fails.

        Args:
            on_accept: Called in the accept thread with each new Connection.
                       It must not block; hand the connection to a thread.
            on_listening: Called once the socket is listening, before the
                          first accept().

        Raises:
            OSError: If the socket cannot be bound or put in listening mode.
        """
        self._socket = self._create_socket()

        try:
            if self.config.is_unix:
                _remove_stale_socket(self.config.host)
            self._socket.bind(self._bind_target())
            self._socket.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to listen on {self.config.display_address}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._bound_address = self._socket.getsockname()
        self._running = True
        self._setup_signals()

        try:
            if on_listening is not None:
                on_listening()
            self._accept_loop(on_accept)
        finally:
            self._cleanup()

    def _accept_loop(self, on_accept: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                max_line_size=self.config.max_line_size,
            )
            on_accept(conn)

    def shutdown(self):
        """
        Stop accepting new connections. Idempotent.

        Connections that are already open are not touched.
        """
        self._running = False

    def _cleanup(self):
        self._running = False
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        if self.config.is_unix:
            try:
                _remove_stale_socket(self.config.host)
            except OSError:
                pass

        logger.info("Socket server stopped")

