"""
=============================================================================
METHOD REGISTRY
=============================================================================

Maps method names to host-supplied handlers:

    Incoming envelope → MethodRegistry → Handler

        {"method": "ping"}   → ping(envelope, conn)
        {"method": "echo"}   → echo(envelope, conn)
        {"method": "help"}   → built in, lists every name
        {"method": "nope"}   → None ("Method not found")

A handler receives the decoded Envelope and the Connection it came from,
and is responsible for writing its own response:

    def echo(envelope, conn):
        conn.send_success(envelope.payload)

=============================================================================
THREAD SAFETY
=============================================================================

The registry is read on every request by every connection thread, so it
carries no lock. Register everything BEFORE starting the server. Writes
after start are not guarded against concurrent lookups.

=============================================================================
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from ..exceptions import ReservedMethodError


logger = logging.getLogger(__name__)

# Handler(envelope, connection) -> None. Typed loosely to avoid an import
# cycle with core.connection.
MethodHandler = Callable[[Any, Any], None]

HELP_METHOD = "help"
RESERVED_METHODS = frozenset({HELP_METHOD})


class MethodRegistry:
    """Name → handler table with the reserved "help" entry."""

    def __init__(self):
        self._handlers: Dict[str, MethodHandler] = {}

    def register(self, name: str, handler: MethodHandler) -> None:
        """
        Register a handler under a method name.

        Registering an existing name replaces its handler. There is no way
        to unregister.

        Raises:
            ReservedMethodError: If name is reserved ("help").
            ValueError: If name is empty or handler is not callable.
        """
        if name in RESERVED_METHODS:
            raise ReservedMethodError(name)
        if not name:
            raise ValueError("Method name must not be empty")
        if not callable(handler):
            raise ValueError(f"Handler for {name!r} is not callable")

        if name in self._handlers:
            logger.debug(f"Replacing handler for method {name!r}")
        self._handlers[name] = handler

    def method(self, name: str) -> Callable[[MethodHandler], MethodHandler]:
        """
        Decorator form of register().

            @registry.method("ping")
            def ping(envelope, conn):
                conn.send_success("pong")
        """
        def decorator(handler: MethodHandler) -> MethodHandler:
            self.register(name, handler)
            return handler
        return decorator

    def lookup(self, name: str) -> Optional[MethodHandler]:
        """Return the handler for name, or None if it is not registered."""
        return self._handlers.get(name)

    def names(self) -> List[str]:
        """"help" followed by every registered name, in registration order."""
        return [HELP_METHOD, *self._handlers]

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)
