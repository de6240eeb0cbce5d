"""
=============================================================================
WIRE PROTOCOL
=============================================================================

Everything that turns text lines into requests and back:

    envelope.py   Request line → Envelope (method + opaque payload)
    response.py   Value / error → response line
    methods.py    Method name → handler

None of these modules touch sockets.
=============================================================================
"""

from .envelope import Envelope, decode_envelope
from .methods import HELP_METHOD, MethodHandler, MethodRegistry
from .response import (
    Response,
    STATUS_ERROR,
    STATUS_OK,
    encode_error,
    encode_success,
    encode_value,
)

__all__ = [
    "Envelope",
    "decode_envelope",
    "MethodRegistry",
    "MethodHandler",
    "HELP_METHOD",
    "Response",
    "STATUS_OK",
    "STATUS_ERROR",
    "encode_success",
    "encode_error",
    "encode_value",
]
