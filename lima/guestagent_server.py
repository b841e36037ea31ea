"""HTTP API of the guest agent, served on a Unix socket."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import socketserver
import threading
from http.server import BaseHTTPRequestHandler
from typing import Iterator, Protocol
from urllib.parse import urlsplit

from lima.guestapi import Event, Info

_log = logging.getLogger(__name__)

_INFO_PATH = "/v1/info"
_EVENTS_PATH = "/v1/events"
_ROUTES = (_INFO_PATH, _EVENTS_PATH)


class _Agent(Protocol):
    def info(self) -> Info: ...

    def events(self, stop: threading.Event) -> Iterator[Event]: ...


class _UnixHTTPServer(socketserver.ThreadingUnixStreamServer):
    daemon_threads = True

    def __init__(self, socket_path: str, agent: _Agent) -> None:
        self.agent = agent
        self._streams: set[threading.Event] = set()
        self._streams_lock = threading.Lock()
        super().__init__(socket_path, _Handler)

    def register(self, stop: threading.Event) -> None:
        with self._streams_lock:
            self._streams.add(stop)

    def unregister(self, stop: threading.Event) -> None:
        with self._streams_lock:
            self._streams.discard(stop)

    def stop_streams(self) -> None:
        with self._streams_lock:
            for stop in self._streams:
                stop.set()


class _Handler(BaseHTTPRequestHandler):
    server: _UnixHTTPServer

    def log_message(self, format: str, *args: object) -> None:
        _log.debug("guest agent API: " + format, *args)

    def _route(self) -> str:
        return urlsplit(self.path).path

    def do_GET(self) -> None:
        route = self._route()
        if route == _INFO_PATH:
            self._get_info()
        elif route == _EVENTS_PATH:
            self._get_events()
        else:
            self._send(404, "text/plain; charset=utf-8", b"404 page not found\n")

    def _reject(self) -> None:
        if self._route() in _ROUTES:
            self._send(405, None, b"")
        else:
            self._send(404, "text/plain; charset=utf-8", b"404 page not found\n")

    do_POST = do_PUT = do_DELETE = do_PATCH = do_HEAD = _reject

    def _send(self, code: int, content_type: str | None, body: bytes) -> None:
        self.send_response(code)
        if content_type is not None:
            self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if body and self.command != "HEAD":
            self.wfile.write(body)

    def _on_error(self, err: Exception, code: int) -> None:
        body = (json.dumps({"message": str(err)}) + "\n").encode()
        self._send(code, "application/json", body)

    def _get_info(self) -> None:
        try:
            body = json.dumps(self.server.agent.info().to_dict()).encode()
        except Exception as err:
            self._on_error(err, 500)
            return
        self._send(200, "application/json", body)

    def _get_events(self) -> None:
        self.send_response(200)
        self.send_header("Content-Type", "application/x-ndjson")
        self.end_headers()
        self.wfile.flush()

        stop = threading.Event()
        self.server.register(stop)
        events = self.server.agent.events(stop)
        try:
            for event in events:
                try:
                    self.wfile.write((json.dumps(event.to_dict()) + "\n").encode())
                    self.wfile.flush()
                except OSError as err:
                    _log.warning("%s", err)
                    return
        finally:
            stop.set()
            close = getattr(events, "close", None)
            if close is not None:
                close()
            self.server.unregister(stop)


class GuestAgentServer:
    """Serves GET /v1/info and GET /v1/events for *agent* on a Unix socket."""

    def __init__(self, socket_path: str, agent: _Agent) -> None:
        self.socket_path = os.fspath(socket_path)
        with contextlib.suppress(FileNotFoundError):
            os.remove(self.socket_path)
        self._server = _UnixHTTPServer(self.socket_path, agent)
        self._started = threading.Event()
        self._closed = False
        self._close_lock = threading.Lock()

    def serve_forever(self) -> None:
        """Handle requests until shutdown() is called from another thread."""
        self._started.set()
        self._server.serve_forever()

    def shutdown(self) -> None:
        """Stop serving, end open event streams and remove the socket."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._server.stop_streams()
        if self._started.is_set():
            self._server.shutdown()
        self._server.server_close()
        with contextlib.suppress(FileNotFoundError):
            os.remove(self.socket_path)