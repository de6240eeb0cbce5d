"""
=============================================================================
DEMO SERVER ENTRY POINT
=============================================================================

Runs a linerpc server with a few sample methods, handy for poking at the
protocol with netcat:

    python -m linerpc --port 3333
    printf 'help\\n{"method":"echo","payload":[1,2]}\\nquit\\n' | nc 127.0.0.1 3333

Sample methods:

    echo       Replies with the request payload
    ping       Replies with "pong"
    clients    Replies with the number of connected clients
    broadcast  Sends payload["message"] to every connected client

Unset options fall back to LINERPC_* environment variables, then to the
built-in defaults.
=============================================================================
"""

import argparse
import logging
import sys

from . import __version__
from .config import TRANSPORTS, ServerConfig
from .server import LineRPCServer


def build_server(config: ServerConfig) -> LineRPCServer:
    """Create a server with the sample methods registered."""
    server = LineRPCServer(config)

    @server.method("echo")
    def echo(envelope, conn):
        conn.send_success(envelope.payload)

    @server.method("ping")
    def ping(envelope, conn):
        conn.send_success("pong")

    @server.method("clients")
    def clients(envelope, conn):
        conn.send_success({"clients": server.get_num_clients()})

    @server.method("broadcast")
    def broadcast(envelope, conn):
        payload = envelope.payload
        if not isinstance(payload, dict) or not isinstance(payload.get("message"), str):
            conn.send_missing_params()
            return
        delivered = server.broadcast(payload["message"])
        conn.send_success({"delivered": delivered})

    return server


def setup_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("linerpc").setLevel(level)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="linerpc",
        description="Line-delimited JSON RPC demo server",
    )
    parser.add_argument("--host", "-H", default=None, help="Host to bind to, or socket path for unix")
    parser.add_argument("--port", "-p", type=int, default=None, help="Port to listen on")
    parser.add_argument("--transport", "-t", choices=TRANSPORTS, default=None)
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
    )
    parser.add_argument("--version", "-v", action="version", version=f"linerpc {__version__}")
    args = parser.parse_args(argv)

    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Error: invalid environment: {e}", file=sys.stderr)
        return 1

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.transport is not None:
        config.transport = args.transport
    if args.log_level is not None:
        config.log_level = args.log_level
    config.handle_signals = True

    setup_logging(config.log_level)

    try:
        server = build_server(config)
        server.start()
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
