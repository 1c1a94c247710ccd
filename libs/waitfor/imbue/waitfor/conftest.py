"""Shared fixtures for waitfor tests: local TCP and HTTP endpoints, config isolation, log capture."""

import socket
import threading
from collections.abc import Generator
from http.server import BaseHTTPRequestHandler
from http.server import ThreadingHTTPServer
from pathlib import Path
from typing import Any

import pytest
from loguru import logger

from imbue.waitfor.config.loader import WAITFOR_HOME_ENV_VAR


class _StatusHandler(BaseHTTPRequestHandler):
    """Answers GET /status/<code> with that status, /redirect with a 302 to /status/200, anything else with 200."""

    def do_GET(self) -> None:
        if self.path == "/redirect":
            self.send_response(302)
            self.send_header("Location", "/status/200")
            self.send_header("Content-Length", "0")
            self.end_headers()
            return
        parts = self.path.strip("/").split("/")
        status = int(parts[1]) if len(parts) == 2 and parts[0] == "status" and parts[1].isdigit() else 200
        body = f"status {status}".encode()
        self.send_response(status)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        pass


@pytest.fixture
def http_server_url() -> Generator[str, None, None]:
    """Base URL (no trailing slash) of an HTTP server running on an ephemeral localhost port."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _StatusHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


@pytest.fixture
def listening_tcp_port() -> Generator[int, None, None]:
    """A localhost port with a socket listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server_socket:
        server_socket.bind(("127.0.0.1", 0))
        server_socket.listen(16)
        yield server_socket.getsockname()[1]


@pytest.fixture
def closed_tcp_port() -> int:
    """A localhost port that nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe_socket:
        probe_socket.bind(("127.0.0.1", 0))
        return probe_socket.getsockname()[1]


@pytest.fixture(autouse=True)
def isolated_waitfor_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the user config at an empty temp dir and clear WAITFOR_* overrides."""
    home_dir = tmp_path / "waitfor_home"
    home_dir.mkdir()
    monkeypatch.setenv(WAITFOR_HOME_ENV_VAR, str(home_dir))
    for env_var in ("WAITFOR_INTERVAL", "WAITFOR_TCP_TIMEOUT", "WAITFOR_HTTP_TIMEOUT", "WAITFOR_LOG_LEVEL"):
        monkeypatch.delenv(env_var, raising=False)
    return home_dir


@pytest.fixture
def captured_logs() -> Generator[list[tuple[str, str]], None, None]:
    """Collect (level name, message) pairs for everything logged at TRACE and above."""
    records: list[tuple[str, str]] = []

    def sink(message: Any) -> None:
        record = message.record
        records.append((record["level"].name, record["message"]))

    handler_id = logger.add(sink, level="TRACE", format="{message}")
    try:
        yield records
    finally:
        logger.remove(handler_id)
