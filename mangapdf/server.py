"""Command-line entry point that runs the conversion HTTP service."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from socketserver import ThreadingMixIn
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from .api import create_app

logger = logging.getLogger(__name__)


@dataclass
class ServerConfig:
    """Settings for the HTTP server."""

    listen_address: str = ":8080"
    verbose_logging: bool = False


def load_config(environ: Mapping[str, str] | None = None) -> ServerConfig:
    """Build the server settings from LISTEN_ADDRESS and VERBOSE_LOGGING."""
    env = os.environ if environ is None else environ
    config = ServerConfig()
    address = env.get("LISTEN_ADDRESS", "")
    if address:
        config.listen_address = address
    if env.get("VERBOSE_LOGGING") in ("true", "1"):
        config.verbose_logging = True
    return config


class _ThreadingServer(ThreadingMixIn, WSGIServer):
    daemon_threads = False
    block_on_close = True


class _LoggingHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: object) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {address!r}")
    host = host.strip("[]")
    try:
        number = int(port)
    except ValueError:
        raise ValueError(f"invalid port {port!r} in address {address!r}") from None
    if not 0 <= number <= 65535:
        raise ValueError(f"port out of range in address {address!r}")
    return host or "0.0.0.0", number


def main(argv: list[str] | None = None) -> int:
    """Run the HTTP service until SIGINT or SIGTERM; return the exit status."""
    parser = argparse.ArgumentParser(
        prog="mangapdf",
        description="Serve an HTTP API that converts images into a PDF. "
        "Configured with LISTEN_ADDRESS and VERBOSE_LOGGING.",
    )
    parser.parse_args(argv)

    config = load_config()
    logging.basicConfig(
        level=logging.DEBUG if config.verbose_logging else logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )
    logger.info(
        "Starting API server on %s (verbose logging: %s)",
        config.listen_address,
        config.verbose_logging,
    )

    try:
        host, port = _split_address(config.listen_address)
        server = make_server(
            host,
            port,
            create_app(),
            server_class=_ThreadingServer,
            handler_class=_LoggingHandler,
        )
    except (OSError, ValueError) as exc:
        logger.error("Failed to start HTTP server: %s", exc)
        return 1

    def stop(signum: int, frame: object) -> None:
        logger.info("Received signal %s, shutting down gracefully...", signal.Signals(signum).name)
        threading.Thread(target=server.shutdown, daemon=True).start()

    previous = {}
    if threading.current_thread() is threading.main_thread():
        for sig in (signal.SIGINT, signal.SIGTERM):
            previous[sig] = signal.signal(sig, stop)

    logger.info("Server is listening on %s", config.listen_address)
    try:
        server.serve_forever()
    finally:
        server.server_close()
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        logger.info("HTTP server shutdown complete.")

    logger.info("Application shut down successfully.")
    return 0


if __name__ == "__main__":
    sys.exit(main())