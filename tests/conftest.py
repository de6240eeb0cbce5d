"""
pytest configuration and fixtures.
"""

import json
import socket
import threading
import time
from typing import Callable, Generator, List
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from linerpc import LineRPCServer, ServerConfig


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll predicate until it is true or timeout expires."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class LineClient:
    """Minimal blocking client speaking the line protocol."""

    def __init__(self, address, timeout: float = 5.0):
        self.sock = socket.create_connection(address, timeout=timeout)
        self._file = self.sock.makefile("rb")

    @property
    def peer(self) -> str:
        """This client's address as the server sees it."""
        host, port = self.sock.getsockname()[:2]
        return f"{host}:{port}"

    def send_line(self, line: str):
        self.sock.sendall(line.encode("utf-8") + b"\n")

    def send_raw(self, data: bytes):
        self.sock.sendall(data)

    def send_json(self, document: dict):
        self.send_line(json.dumps(document))

    def recv_line(self) -> str:
        """Next line including its newline; "" once the server closed."""
        try:
            return self._file.readline().decode("utf-8")
        except ConnectionResetError:
            return ""

    def recv_json(self):
        line = self.recv_line()
        assert line, "connection closed while waiting for a response"
        return json.loads(line)

    def call(self, method: str, payload=None):
        self.send_json({"method": method, "payload": payload})
        return self.recv_json()

    def close(self):
        try:
            self._file.close()
        finally:
            self.sock.close()


class RunningServer:
    """Runs a LineRPCServer in a background thread."""

    def __init__(self, server: LineRPCServer):
        self.server = server
        self._thread: threading.Thread = None
        self._clients: List[LineClient] = []

    @property
    def address(self):
        return self.server.address[:2]

    def start(self):
        self._thread = threading.Thread(target=self.server.start, daemon=True)
        self._thread.start()
        if not self.server.wait_until_listening(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def connect(self) -> LineClient:
        client = LineClient(self.address)
        self._clients.append(client)
        return client

    def stop(self):
        for client in self._clients:
            client.close()
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def config() -> ServerConfig:
    """Test configuration: loopback, OS-assigned port."""
    return ServerConfig(host="127.0.0.1", port=0)


@pytest.fixture
def server(config: ServerConfig) -> LineRPCServer:
    """A server with an "echo" and a "ping" method."""
    srv = LineRPCServer(config)

    @srv.method("ping")
    def ping(envelope, conn):
        conn.send_success("pong")

    @srv.method("echo")
    def echo(envelope, conn):
        conn.send_success(envelope.payload)

    return srv


@pytest.fixture
def serve() -> Generator[Callable[[LineRPCServer], RunningServer], None, None]:
    """Start any server in the background; stopped at teardown."""
    started: List[RunningServer] = []

    def _serve(srv: LineRPCServer) -> RunningServer:
        running_server = RunningServer(srv)
        running_server.start()
        started.append(running_server)
        return running_server

    yield _serve

    for running_server in started:
        running_server.stop()


@pytest.fixture
def running(server: LineRPCServer, serve) -> RunningServer:
    """The server fixture, started and listening."""
    return serve(server)


@pytest.fixture
def socket_pair() -> Generator[tuple, None, None]:
    """Connected (server side, client side) sockets."""
    left, right = socket.socketpair()
    right.settimeout(5.0)

    yield left, right

    left.close()
    right.close()


@pytest.fixture(name="wait_for")
def wait_for_fixture() -> Callable[..., bool]:
    """The wait_for() polling helper."""
    return wait_for
