"""HTTP API of the host agent on a Unix socket: data type, client and server."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import socketserver
import threading
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler
from typing import Any, Protocol
from urllib.parse import urlsplit

from lima.httpclient import UnixSocketClient

_log = logging.getLogger(__name__)

_INFO_PATH = "/v1/info"


@dataclass
class HostInfo:
    """Information about the host agent."""

    ssh_local_port: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"sshLocalPort": self.ssh_local_port} if self.ssh_local_port else {}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HostInfo":
        return cls(ssh_local_port=int(data.get("sshLocalPort", 0)))


class HostAgentClient:
    """Talks to the host agent listening at *socket_path*."""

    def __init__(self, socket_path: str) -> None:
        self.http_client = UnixSocketClient(socket_path)
        self._base = "http://lima-hostagent/v1"

    def info(self) -> HostInfo:
        """Fetch the host agent information."""
        with self.http_client.get(f"{self._base}/info") as response:
            return HostInfo.from_dict(json.load(response))


class _Agent(Protocol):
    def info(self) -> HostInfo: ...


class _Server(socketserver.ThreadingUnixStreamServer):
    daemon_threads = True

    def __init__(self, socket_path: str, agent: _Agent) -> None:
        self.agent = agent
        super().__init__(socket_path, _Handler)


class _Handler(BaseHTTPRequestHandler):
    server: _Server

    def log_message(self, format: str, *args: object) -> None:
        _log.debug("host agent API: " + format, *args)

    def _send(self, code: int, content_type: str | None, body: bytes) -> None:
        self.send_response(code)
        if content_type is not None:
            self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if body and self.command != "HEAD":
            self.wfile.write(body)

    def do_GET(self) -> None:
        if urlsplit(self.path).path != _INFO_PATH:
            self._send(404, "text/plain; charset=utf-8", b"404 page not found\n")
            return
        try:
            body = json.dumps(self.server.agent.info().to_dict()).encode()
        except Exception as err:
            message = (json.dumps({"message": str(err)}) + "\n").encode()
            self._send(500, "application/json", message)
            return
        self._send(200, "application/json", body)

    def _reject(self) -> None:
        if urlsplit(self.path).path == _INFO_PATH:
            self._send(405, None, b"")
        else:
            self._send(404, "text/plain; charset=utf-8", b"404 page not found\n")

    do_POST = do_PUT = do_DELETE = do_PATCH = do_HEAD = _reject


class HostAgentServer:
    """Serves GET /v1/info for *agent* on a Unix socket."""

    def __init__(self, socket_path: str, agent: _Agent) -> None:
        self.socket_path = os.fspath(socket_path)
        with contextlib.suppress(FileNotFoundError):
            os.remove(self.socket_path)
        self._server = _Server(self.socket_path, agent)
        self._started = threading.Event()
        self._closed = False
        self._lock = threading.Lock()

    def serve_forever(self) -> None:
        """Handle requests until shutdown() is called from another thread."""
        self._started.set()
        self._server.serve_forever()

    def shutdown(self) -> None:
        """Stop serving and remove the socket."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self._started.is_set():
            self._server.shutdown()
        self._server.server_close()
        with contextlib.suppress(FileNotFoundError):
            os.remove(self.socket_path)