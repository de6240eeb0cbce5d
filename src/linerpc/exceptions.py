"""Exceptions raised by linerpc."""


class LineRPCError(Exception):
    """Base class for all linerpc errors."""


class EnvelopeDecodeError(LineRPCError):
    """
    Raised when a request line is not a well-formed envelope.

    The message is sent back to the client verbatim, so it should
    describe the problem without leaking internals.
    """

    def __init__(self, message: str, line: str = ""):
        super().__init__(message)
        self.line = line  # Offending input, for logging


class ReservedMethodError(LineRPCError):
    """Raised when a host tries to register a reserved method name."""

    def __init__(self, name: str):
        super().__init__(f"Method not allowed: {name!r} is reserved")
        self.name = name
