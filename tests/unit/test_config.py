"""
Unit tests for server configuration.
"""

import dataclasses

import pytest

from linerpc import LineRPCServer
from linerpc.config import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_TRANSPORT,
    ServerConfig,
)


class TestServerConfig:
    """Tests for ServerConfig class."""

    def test_unset_fields_resolve_to_defaults(self):
        resolved = ServerConfig().resolve()

        assert resolved.host == DEFAULT_HOST
        assert resolved.port == DEFAULT_PORT
        assert resolved.transport == DEFAULT_TRANSPORT

    def test_explicit_fields_win(self):
        resolved = ServerConfig(host="0.0.0.0", port=9000, transport="tcp6").resolve()

        assert resolved.host == "0.0.0.0"
        assert resolved.port == 9000
        assert resolved.transport == "tcp6"

    def test_port_zero_is_kept(self):
        """Port 0 means "any free port", not "unset"."""
        assert ServerConfig(port=0).resolve().port == 0

    def test_resolved_is_frozen(self):
        resolved = ServerConfig().resolve()

        with pytest.raises(dataclasses.FrozenInstanceError):
            resolved.port = 1

    def test_display_address(self):
        assert ServerConfig(host="127.0.0.1", port=80).resolve().display_address == "127.0.0.1:80"
        unix = ServerConfig(host="/tmp/rpc.sock", transport="unix").resolve()
        assert unix.is_unix is True
        assert unix.display_address == "/tmp/rpc.sock"

    def test_validate_port(self):
        with pytest.raises(ValueError):
            ServerConfig(port=70000).validate()
        with pytest.raises(ValueError):
            ServerConfig(port=-1).validate()

    def test_validate_transport(self):
        with pytest.raises(ValueError) as exc_info:
            ServerConfig(transport="udp").validate()

        assert "udp" in str(exc_info.value)

    def test_validate_sizes(self):
        with pytest.raises(ValueError):
            ServerConfig(buffer_size=10).validate()
        with pytest.raises(ValueError):
            ServerConfig(max_line_size=0).validate()
        with pytest.raises(ValueError):
            ServerConfig(backlog=0).validate()

    def test_defaults_are_valid(self):
        ServerConfig().validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("LINERPC_HOST", "0.0.0.0")
        monkeypatch.setenv("LINERPC_PORT", "4444")
        monkeypatch.setenv("LINERPC_TRANSPORT", "tcp4")
        monkeypatch.setenv("LINERPC_LOG_LEVEL", "DEBUG")

        config = ServerConfig.from_env()

        assert config.host == "0.0.0.0"
        assert config.port == 4444
        assert config.transport == "tcp4"
        assert config.log_level == "DEBUG"

    def test_from_env_leaves_unset(self, monkeypatch):
        for name in ("LINERPC_HOST", "LINERPC_PORT", "LINERPC_TRANSPORT", "LINERPC_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        config = ServerConfig.from_env()

        assert config.host is None
        assert config.port is None
        assert config.transport is None


class TestServerConfigResolution:
    """The server resolves its configuration once and caches it."""

    def test_server_validates_on_construction(self):
        with pytest.raises(ValueError):
            LineRPCServer(ServerConfig(transport="carrier-pigeon"))

    def test_first_read_is_cached(self):
        config = ServerConfig()
        server = LineRPCServer(config)

        assert server.port == DEFAULT_PORT

        config.port = 9999
        config.host = "10.0.0.1"

        assert server.port == DEFAULT_PORT
        assert server.host == DEFAULT_HOST
        assert server.resolved_config is server.resolved_config
