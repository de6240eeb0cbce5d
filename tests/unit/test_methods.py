"""
Unit tests for the method registry.
"""

import pytest

from linerpc.exceptions import ReservedMethodError
from linerpc.protocol.methods import HELP_METHOD, MethodRegistry


def dummy_handler(envelope, conn):
    """Dummy handler for testing."""
    conn.send_success(envelope.payload)


def other_handler(envelope, conn):
    conn.send_success("other")


class TestMethodRegistry:
    """Tests for MethodRegistry class."""

    def test_register_and_lookup(self):
        registry = MethodRegistry()
        registry.register("echo", dummy_handler)

        assert registry.lookup("echo") is dummy_handler
        assert "echo" in registry
        assert len(registry) == 1

    def test_lookup_missing(self):
        assert MethodRegistry().lookup("missing") is None

    def test_help_is_reserved(self):
        """Registering "help" fails and leaves existing entries alone."""
        registry = MethodRegistry()
        registry.register("echo", dummy_handler)

        with pytest.raises(ReservedMethodError) as exc_info:
            registry.register(HELP_METHOD, other_handler)

        assert exc_info.value.name == "help"
        assert registry.lookup("echo") is dummy_handler
        assert registry.lookup("help") is None
        assert len(registry) == 1
        assert registry.names() == ["help", "echo"]

    def test_names_start_with_help(self):
        registry = MethodRegistry()
        registry.register("ping", dummy_handler)
        registry.register("echo", dummy_handler)

        assert registry.names() == ["help", "ping", "echo"]

    def test_names_of_empty_registry(self):
        assert MethodRegistry().names() == ["help"]

    def test_reregister_replaces(self):
        registry = MethodRegistry()
        registry.register("echo", dummy_handler)
        registry.register("echo", other_handler)

        assert registry.lookup("echo") is other_handler
        assert registry.names() == ["help", "echo"]

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            MethodRegistry().register("", dummy_handler)

    def test_non_callable_rejected(self):
        with pytest.raises(ValueError):
            MethodRegistry().register("echo", "not a function")

    def test_decorator(self):
        registry = MethodRegistry()

        @registry.method("ping")
        def ping(envelope, conn):
            conn.send_success("pong")

        assert registry.lookup("ping") is ping

    def test_len_and_contains(self):
        registry = MethodRegistry()
        registry.register("a", dummy_handler)
        registry.register("b", dummy_handler)

        assert len(registry) == 2
        assert "a" in registry
        assert "help" not in registry
