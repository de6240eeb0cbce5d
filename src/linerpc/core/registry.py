"""
=============================================================================
CLIENT REGISTRY
=============================================================================

Thread-safe bookkeeping of live connections:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ClientRegistry                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   id   connection                                                    │
    │   ──   ─────────────────────                                         │
    │    1   Connection(127.0.0.1:51000)                                   │
    │    3   Connection(127.0.0.1:51004)     (2 already disconnected)      │
    │    4   Connection(127.0.0.1:51010)                                   │
    │                                                                      │
    │   add()        exclusive lock   next id, never reused               │
    │   remove()     exclusive lock   idempotent                          │
    │   broadcast()  shared lock      many broadcasts may run at once     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHY A READ/WRITE LOCK?
=============================================================================

Iterating a dict while another thread inserts into it raises
"RuntimeError: dictionary changed size during iteration". A plain Lock
would fix that but would also serialize concurrent broadcasts. The
ReadWriteLock lets any number of broadcasts iterate together, while
add()/remove() wait until they are done (and vice versa).

Broadcast writes straight to the sockets while holding the shared lock, so
a slow peer delays connects and disconnects until its write completes.

=============================================================================
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Union

from .connection import Connection


logger = logging.getLogger(__name__)


class ReadWriteLock:
    """
    Many readers or one writer.

    Writers wait for active readers to finish. New readers wait while a
    writer is waiting, so a steady stream of broadcasts cannot starve
    add()/remove().
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self):
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self):
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self):
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class ClientRegistry:
    """
    Identifier → Connection map guarded by a ReadWriteLock.

    The underlying dict is never handed out. Callers only get ids, counts
    and copies.
    """

    def __init__(self):
        self._lock = ReadWriteLock()
        self._clients: Dict[int, Connection] = {}
        self._last_id = 0  # 0 is never handed out

    def add(self, conn: Connection) -> int:
        """
        Register a connection and return its new identifier.

        Identifiers start at 1 and are never reused, even after removal.
        The identifier is also stored on conn.id.
        """
        with self._lock.write_locked():
            self._last_id += 1
            client_id = self._last_id
            self._clients[client_id] = conn
        conn.id = client_id
        return client_id

    def remove(self, client_id: int) -> Optional[Connection]:
        """
        Forget a connection. Removing an unknown id is a no-op.

        Returns:
            The removed connection, or None if it was not registered.
        """
        with self._lock.write_locked():
            return self._clients.pop(client_id, None)

    def count(self) -> int:
        """Number of live connections."""
        with self._lock.read_locked():
            return len(self._clients)

    def ids(self) -> List[int]:
        """Snapshot of the registered identifiers, in ascending order."""
        with self._lock.read_locked():
            return sorted(self._clients)

    def broadcast(self, message: Union[str, bytes]) -> int:
        """
        Send message plus a newline to every registered connection.

        A connection that fails to take the write (peer gone, socket being
        closed by its handler) is skipped; the broadcast continues with
        the others.

        Returns:
            Number of connections the message was written to.
        """
        if isinstance(message, str):
            message = message.encode("utf-8")
        line = message + b"\n"

        delivered = 0
        with self._lock.read_locked():
            for client_id, conn in self._clients.items():
                try:
                    conn.write(line)
                except OSError as e:
                    logger.debug(f"[{client_id}] Broadcast write skipped: {e}")
                    continue
                delivered += 1
        return delivered

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, client_id: object) -> bool:
        with self._lock.read_locked():
            return client_id in self._clients
