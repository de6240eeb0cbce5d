"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one accepted client socket with line framing and the
write helpers method handlers use to answer requests.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does not preserve message boundaries. Two requests sent as

    send('{"method":"a"}\\n')
    send('{"method":"b"}\\n')

may arrive as one recv() chunk, or split in the middle of a line:

    recv() → '{"method":"a"}\\n{"met'
    recv() → 'hod":"b"}\\n'

So we buffer received bytes and cut them at every newline. Whatever comes
after the last newline stays in the buffer for the next read_line().

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► READING ──────► DISPATCHING ─────┐
                  │  ▲                           │
                  │  └───────────────────────────┘
                  │
                  ▼   (EOF, read error, quit/bye/exit)
               CLOSING ──────► CLOSED

=============================================================================
WRITES FROM SEVERAL THREADS
=============================================================================

The connection's own handler thread writes responses, while broadcast()
may write to the same socket from any other thread. A per-connection send
lock keeps every line whole on the wire.

=============================================================================
"""

import socket
import threading
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from ..protocol.response import encode_error, encode_success, encode_value


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states."""
    NEW = "new"                  # Accepted, nothing read yet
    READING = "reading"          # Waiting for the next line
    DISPATCHING = "dispatching"  # Line received, being decoded and handled
    CLOSING = "closing"          # Leaving the read loop
    CLOSED = "closed"            # Socket released


MISSING_PARAMS = "Missing required parameters"


class LineTooLongError(ValueError):
    """Raised when a client sends a line longer than max_line_size."""


def format_peer(address: Any) -> str:
    """
    Render a socket peer address as a string.

        ("10.0.0.5", 51234)            → "10.0.0.5:51234"
        ("::1", 51234, 0, 0)           → "[::1]:51234"
        "" (unnamed unix socket peer)  → "unix"
    """
    if isinstance(address, tuple) and len(address) >= 2:
        host, port = address[0], address[1]
        if ":" in str(host):
            return f"[{host}]:{port}"
        return f"{host}:{port}"
    if isinstance(address, bytes):
        address = address.decode("utf-8", errors="replace")
    return str(address) or "unix"


@dataclass
class Connection:
    """
    One client connection: the "sink" every method handler writes to.

    Attributes:
        socket: The client socket.
        address: Peer address as returned by accept().
        id: Identifier assigned by the client registry (0 until registered).
        state: Current connection state.
        requests_handled: Number of lines read so far.
    """

    socket: socket.socket
    address: Any

    id: int = 0
    state: ConnectionState = ConnectionState.NEW
    requests_handled: int = 0

    buffer_size: int = 8192
    max_line_size: int = 1024 * 1024
    drain_timeout: float = 0.5         # Max time close() waits for the peer

    _buffer: bytes = field(default=b"", repr=False)
    _send_lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def __post_init__(self):
        # No read timeout: a connection lives until EOF or a quit word
        self.socket.settimeout(None)

    @property
    def peer(self) -> str:
        """Peer address as a string, e.g. "127.0.0.1:51234"."""
        return format_peer(self.address)

    @property
    def closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # ─────────────────────────────────────────────────────────────────────
    # READING
    # ─────────────────────────────────────────────────────────────────────

    def read_line(self) -> Optional[str]:
        """
        Read the next newline-terminated line.

        The newline and an optional preceding carriage return are stripped.
        Invalid UTF-8 is replaced rather than rejected, the JSON decoder
        reports it later.

        Returns:
            The line, or None at end of stream (or when the socket fails).

        Raises:
            LineTooLongError: If no newline arrives within max_line_size bytes.
        """
        self.state = ConnectionState.READING

        while True:
            index = self._buffer.find(b"\n")
            if index >= 0:
                break

            if len(self._buffer) > self.max_line_size:
                raise LineTooLongError(f"Line too long: more than {self.max_line_size} bytes")

            chunk = self._recv()
            if not chunk:
                return None  # Peer closed; a trailing partial line is dropped

            self._buffer += chunk

        line = self._buffer[:index]
        self._buffer = self._buffer[index + 1:]

        if len(line) > self.max_line_size:
            raise LineTooLongError(f"Line too long: {len(line)} bytes")

        self.requests_handled += 1
        return line.rstrip(b"\r").decode("utf-8", errors="replace")

    def _recv(self) -> bytes:
        """recv() that reports any socket failure as end of stream."""
        try:
            return self.socket.recv(self.buffer_size)
        except OSError as e:
            logger.debug(f"[{self.id}] Read failed: {e}")
            return b""

    # ─────────────────────────────────────────────────────────────────────
    # WRITING
    # ─────────────────────────────────────────────────────────────────────

    def write(self, data: Union[str, bytes]) -> None:
        """
        Send data as-is, holding the send lock.

        Raises:
            OSError: If the peer is gone or the socket is closed.
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        with self._send_lock:
            self.socket.sendall(data)

    def send(self, data: Union[str, bytes]) -> bool:
        """
        Send data, logging instead of raising on failure.

        Returns:
            True if the data was sent, False if the connection is lost.
        """
        try:
            self.write(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def send_success(self, data: Any, raw: bool = False) -> bool:
        """
        Send {"status":"ok","data":...}.

        With raw=True, data is already-serialized JSON and is sent verbatim.
        Otherwise a value JSON cannot represent (a set, NaN, ...) is
        answered with an error line instead.
        """
        if raw:
            return self.send(encode_success(data, raw=True))
        return self.send(encode_value(data))

    def send_error(self, err: Union[BaseException, str]) -> bool:
        """Send {"status":"error","error":"..."}."""
        return self.send(encode_error(err))

    def send_missing_params(self) -> bool:
        """Tell the client its payload lacks fields the method needs."""
        return self.send_error(MISSING_PARAMS)

    # ─────────────────────────────────────────────────────────────────────
    # CLOSING
    # ─────────────────────────────────────────────────────────────────────

    def close(self):
        """
        Close the connection. Safe to call more than once.

        TCP close sequence:

        1. shutdown(SHUT_WR): send FIN, the peer sees EOF right away
        2. Drain whatever the peer still sends, for at most drain_timeout
           seconds. Closing with unread data would send RST instead of FIN
           and could destroy responses the peer has not read yet.
        3. close(): release the file descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        self._drain()

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} lines")

    def _drain(self):
        deadline = time.monotonic() + self.drain_timeout
        try:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                if not self.socket.recv(self.buffer_size):
                    break
        except OSError:
            pass  # Timeout or reset, we are closing anyway

