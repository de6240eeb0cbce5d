"""
=============================================================================
REQUEST ENVELOPES
=============================================================================

Every request is a single line of JSON text:

    {"method": "ping", "payload": {"a": 1}}\n
     └──────────────┘  └────────────────┘
      Method selector    Opaque payload

The core only looks at "method". The payload is handed to the method
handler untouched; the handler decides what it means.

For compatibility with older clients, the payload may also travel in a
"data" field. "payload" wins when both are present.

=============================================================================
WHAT COUNTS AS MALFORMED?
=============================================================================

    not-json                    → EnvelopeDecodeError (not JSON)
    [1, 2, 3]                   → EnvelopeDecodeError (not an object)
    {"method": 42}              → EnvelopeDecodeError (method not a string)
    {"payload": 1}              → Envelope(method="")  (ignored by the server)

A decode error never closes the connection. The server reports it as an
error line and keeps reading.

=============================================================================
"""

import json
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import EnvelopeDecodeError


@dataclass
class Envelope:
    """
    A decoded request line.

    Attributes:
        method: Method selector. Empty string if the client sent none.
        payload: Decoded JSON value of the payload field, or None.
        raw: The original line, without the trailing newline.
    """

    method: str
    payload: Any = None
    raw: str = field(default="", repr=False)

    @property
    def has_payload(self) -> bool:
        return self.payload is not None

    @property
    def data(self) -> Any:
        """Alias for payload, matching the legacy field name."""
        return self.payload


def decode_envelope(line: str) -> Envelope:
    """
    Parse one request line into an Envelope.

    Args:
        line: A single line of text, newline already stripped.

    Returns:
        The decoded Envelope.

    Raises:
        EnvelopeDecodeError: If the line is not a JSON object or the
            method field is not a string.
    """
    try:
        document = json.loads(line)
    except json.JSONDecodeError as e:
        raise EnvelopeDecodeError(f"Invalid JSON: {e}", line) from e

    if not isinstance(document, dict):
        raise EnvelopeDecodeError("Envelope must be a JSON object", line)

    method = document.get("method", "")
    if method is None:
        method = ""
    if not isinstance(method, str):
        raise EnvelopeDecodeError("Field 'method' must be a string", line)

    if "payload" in document:
        payload = document["payload"]
    else:
        payload = document.get("data")

    return Envelope(method=method, payload=payload, raw=line)
