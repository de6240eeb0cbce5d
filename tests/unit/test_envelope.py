"""
Unit tests for request envelope decoding.
"""

import pytest

from linerpc.exceptions import EnvelopeDecodeError, LineRPCError
from linerpc.protocol.envelope import Envelope, decode_envelope


class TestDecodeEnvelope:
    """Tests for decode_envelope()."""

    def test_method_and_payload(self):
        """Test decoding a complete envelope."""
        envelope = decode_envelope('{"method": "x", "payload": {"a": 1}}')

        assert envelope.method == "x"
        assert envelope.payload == {"a": 1}
        assert envelope.has_payload is True

    def test_payload_is_not_inspected(self):
        """Any JSON value is accepted as payload."""
        for payload in ('[1, 2, 3]', '"text"', '42', 'null', '{"nested": {"deep": [true]}}'):
            envelope = decode_envelope('{"method": "m", "payload": ' + payload + '}')
            assert envelope.method == "m"

    def test_legacy_data_field(self):
        """Payload falls back to the "data" field."""
        envelope = decode_envelope('{"method": "x", "data": [1, 2]}')

        assert envelope.payload == [1, 2]
        assert envelope.data == [1, 2]

    def test_payload_wins_over_data(self):
        envelope = decode_envelope('{"method": "x", "payload": 1, "data": 2}')
        assert envelope.payload == 1

    def test_missing_method_is_empty(self):
        """A missing method is not an error, just empty."""
        envelope = decode_envelope('{"payload": 1}')

        assert envelope.method == ""
        assert envelope.payload == 1

    def test_null_method_is_empty(self):
        assert decode_envelope('{"method": null}').method == ""

    def test_missing_payload(self):
        envelope = decode_envelope('{"method": "ping"}')

        assert envelope.payload is None
        assert envelope.has_payload is False

    def test_raw_line_is_kept(self):
        line = '{"method": "ping"}'
        assert decode_envelope(line).raw == line

    def test_invalid_json(self):
        """Test that malformed text is rejected."""
        with pytest.raises(EnvelopeDecodeError) as exc_info:
            decode_envelope("not-json")

        assert "Invalid JSON" in str(exc_info.value)
        assert exc_info.value.line == "not-json"

    def test_non_object_document(self):
        """Test that valid JSON which is not an object is rejected."""
        for line in ("[1, 2]", "42", '"method"', "null"):
            with pytest.raises(EnvelopeDecodeError):
                decode_envelope(line)

    def test_non_string_method(self):
        with pytest.raises(EnvelopeDecodeError) as exc_info:
            decode_envelope('{"method": 42}')

        assert "method" in str(exc_info.value)

    def test_decode_error_is_linerpc_error(self):
        with pytest.raises(LineRPCError):
            decode_envelope("{")


class TestEnvelope:
    """Tests for the Envelope dataclass."""

    def test_defaults(self):
        envelope = Envelope(method="ping")

        assert envelope.payload is None
        assert envelope.raw == ""
