"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration management for the line RPC server.

=============================================================================
LAZY DEFAULTS, RESOLVED ONCE
=============================================================================

Host, port and transport may be left unset (None). They are filled in from
the built-in defaults the first time the server needs them, and the result
is frozen for the rest of the server's life:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION RESOLUTION                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ServerConfig (mutable, may hold None)                              │
    │        │                                                             │
    │        │  resolve()   ◄── called once, right before bind()           │
    │        ▼                                                             │
    │   ResolvedConfig (frozen, every field concrete)                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Changing a ServerConfig after the server started has no effect on the
running listener.

=============================================================================
ENVIRONMENT VARIABLES
=============================================================================

    LINERPC_HOST        Bind host (or socket path for the unix transport)
    LINERPC_PORT        Bind port
    LINERPC_TRANSPORT   tcp, tcp4, tcp6 or unix
    LINERPC_LOG_LEVEL   DEBUG, INFO, WARNING, ERROR

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3333
DEFAULT_TRANSPORT = "tcp"

TRANSPORTS = ("tcp", "tcp4", "tcp6", "unix")


@dataclass(frozen=True)
class ResolvedConfig:
    """
    The effective, immutable configuration of a running server.

    Produced by ServerConfig.resolve(). Every field is concrete.
    """

    host: str
    port: int
    transport: str
    backlog: int
    buffer_size: int
    max_line_size: int

    @property
    def is_unix(self) -> bool:
        return self.transport == "unix"

    @property
    def display_address(self) -> str:
        """Human readable listen address, as used in log lines."""
        if self.is_unix:
            return self.host
        return f"{self.host}:{self.port}"


@dataclass
class ServerConfig:
    """
    Configuration for the line RPC server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, transport, backlog, buffer_size

    PROTOCOL SETTINGS
    - max_line_size

    LOGGING
    - log_level, log_prefix

    PROCESS
    - handle_signals

    =========================================================================
    USAGE
    =========================================================================

        ServerConfig()                          # 127.0.0.1:3333 over tcp
        ServerConfig(port=0)                    # OS picks a free port
        ServerConfig(host="/tmp/rpc.sock", transport="unix")

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: Optional[str] = None
    """
    The address to bind to. None resolves to DEFAULT_HOST.
    For the unix transport this is the filesystem path of the socket.
    """

    port: Optional[int] = None
    """
    The port to listen on. None resolves to DEFAULT_PORT.
    0 asks the OS for a free ephemeral port.
    """

    transport: Optional[str] = None
    """
    Transport kind: tcp (IPv4), tcp4, tcp6 or unix.
    None resolves to DEFAULT_TRANSPORT.
    """

    backlog: int = 128
    """Maximum number of queued, not yet accepted connections."""

    buffer_size: int = 8192
    """Size of each recv() call in bytes."""

    # ─────────────────────────────────────────────────────────────────────
    # PROTOCOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    max_line_size: int = 1024 * 1024  # 1 MB
    """
    Longest accepted request line in bytes, excluding the newline.
    A client exceeding it gets an error line and is disconnected.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level used by the CLI (DEBUG, INFO, WARNING, ERROR)."""

    log_prefix: str = "[TCP]"
    """Prefix prepended to every log event the server emits."""

    # ─────────────────────────────────────────────────────────────────────
    # PROCESS
    # ─────────────────────────────────────────────────────────────────────

    handle_signals: bool = False
    """
    Install SIGINT/SIGTERM handlers that stop the accept loop.
    Only honoured when the server is started from the main thread.
    """

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from LINERPC_* environment variables.

        Unset variables leave the field unset, so the usual defaults apply.
        """
        port = os.getenv("LINERPC_PORT")
        return cls(
            host=os.getenv("LINERPC_HOST"),
            port=int(port) if port else None,
            transport=os.getenv("LINERPC_TRANSPORT"),
            log_level=os.getenv("LINERPC_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """Validate explicitly set values. Raises ValueError."""
        if self.port is not None and not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.transport is not None and self.transport not in TRANSPORTS:
            raise ValueError(
                f"Unsupported transport: {self.transport!r}. "
                f"Expected one of {', '.join(TRANSPORTS)}."
            )

        if self.host is not None and not self.host:
            raise ValueError("host must not be empty")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.max_line_size < 1:
            raise ValueError("max_line_size must be >= 1")

    def resolve(self) -> ResolvedConfig:
        """
        Fill unset fields with the built-in defaults.

        The server calls this exactly once, before binding.
        """
        return ResolvedConfig(
            host=self.host if self.host is not None else DEFAULT_HOST,
            port=self.port if self.port is not None else DEFAULT_PORT,
            transport=self.transport if self.transport is not None else DEFAULT_TRANSPORT,
            backlog=self.backlog,
            buffer_size=self.buffer_size,
            max_line_size=self.max_line_size,
        )
