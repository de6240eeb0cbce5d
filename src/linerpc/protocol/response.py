"""
=============================================================================
RESPONSE LINES
=============================================================================

Every reply the server sends is one line of compact JSON:

    Success:  {"status":"ok","data":<value>}\n
    Failure:  {"status":"error","error":"<message>"}\n

The helpers in this module are pure: they build strings and never touch a
socket. Connection.send_success() and friends do the writing.

=============================================================================
RAW DATA
=============================================================================

Sometimes a handler already has serialized JSON (from a cache, another
service, ...). encode_success(text, raw=True) inserts it verbatim instead of
serializing it a second time:

    encode_success('{"a":1}', raw=True)  → {"status":"ok","data":{"a":1}}\n
    encode_success('{"a":1}')            → {"status":"ok","data":"{\\"a\\":1}"}\n

=============================================================================
"""

import json
from dataclasses import dataclass
from typing import Any, Optional, Union


STATUS_OK = "ok"
STATUS_ERROR = "error"

# Compact separators keep one response on one short line
_SEPARATORS = (",", ":")


def dumps(value: Any) -> str:
    """
    Serialize a value the way every response line does.

    Raises:
        TypeError: For values JSON has no type for.
        ValueError: For NaN and infinities, which are not valid JSON.
    """
    return json.dumps(value, separators=_SEPARATORS, allow_nan=False)


@dataclass
class Response:
    """
    A response to a single request.

    Exactly one of data / error is meaningful, depending on status.
    """

    status: str = STATUS_OK
    data: Any = None
    error: Optional[str] = None

    @property
    def is_ok(self) -> bool:
        return self.status == STATUS_OK

    def to_dict(self) -> dict:
        if self.is_ok:
            return {"status": self.status, "data": self.data}
        return {"status": self.status, "error": self.error}

    def to_line(self) -> str:
        """Serialize to a newline-terminated JSON line."""
        return dumps(self.to_dict()) + "\n"

    def to_bytes(self) -> bytes:
        return self.to_line().encode("utf-8")

    @classmethod
    def from_line(cls, line: Union[str, bytes]) -> "Response":
        """
        Parse a response line. Used by clients and tests.

        Raises:
            ValueError: If the line is not a response object.
        """
        if isinstance(line, bytes):
            line = line.decode("utf-8")
        document = json.loads(line)
        if not isinstance(document, dict) or "status" not in document:
            raise ValueError(f"Not a response line: {line!r}")
        if document["status"] == STATUS_OK:
            return cls(status=STATUS_OK, data=document.get("data"))
        return cls(status=document["status"], error=document.get("error"))


def encode_success(data: Any, raw: bool = False) -> str:
    """
    Build a success line.

    Args:
        data: Value to send. Serialized as JSON unless raw is True.
        raw: Treat data as already-serialized JSON text.

    Returns:
        '{"status":"ok","data":<data>}\\n'
    """
    if raw:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return '{"status":"ok","data":' + data + "}\n"
    return Response(status=STATUS_OK, data=data).to_line()


def encode_error(err: Union[BaseException, str]) -> str:
    """
    Build an error line from an exception or a message.

    Returns:
        '{"status":"error","error":"<message>"}\\n'
    """
    return Response(status=STATUS_ERROR, error=str(err)).to_line()


def encode_value(value: Any) -> str:
    """
    Serialize an arbitrary value as a success line.

    Values that JSON cannot represent produce an error line describing
    the failure instead of raising.
    """
    try:
        text = dumps(value)
    except (TypeError, ValueError) as e:
        return encode_error(e)
    return encode_success(text, raw=True)
