"""HTTP over Unix domain sockets, with checking of the response status."""

from __future__ import annotations

import http
import http.client
import json
import os
import socket
from typing import BinaryIO, Optional
from urllib.parse import urlsplit

HTTP_STATUS_ERROR_BODY_MAX_LENGTH = 64 * 1024


class BodyTooLargeError(ValueError):
    """Raised when a body reaches the read limit; carries what was read."""

    def __init__(self, max_bytes: int, data: bytes) -> None:
        super().__init__(f"expected at most {max_bytes} bytes, got more")
        self.data = data


class HTTPStatusError(Exception):
    """A non-2XX HTTP response."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(status_code, body)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        if self.body and len(self.body) < HTTP_STATUS_ERROR_BODY_MAX_LENGTH:
            try:
                parsed = json.loads(self.body)
            except ValueError:
                parsed = ...
            if parsed is None:
                return ""
            if isinstance(parsed, dict):
                message = parsed.get("message")
                if message is None:
                    return ""
                if isinstance(message, str):
                    return message
        try:
            phrase = http.HTTPStatus(self.status_code).phrase
        except ValueError:
            phrase = ""
        return f"unexpected HTTP status {phrase}, body={json.dumps(self.body)}"


def read_at_most(stream: BinaryIO, max_bytes: int) -> bytes:
    """Read up to *max_bytes*; raise BodyTooLargeError if the limit is reached."""
    data = stream.read(max_bytes) or b""
    if len(data) >= max_bytes:
        raise BodyTooLargeError(max_bytes, data)
    return data


def check_successful(status: Optional[int], body_stream: BinaryIO) -> None:
    """Raise HTTPStatusError unless *status* is 2XX."""
    if status is None:
        raise ValueError("nil response")
    if status // 100 == 2:
        return
    try:
        data = read_at_most(body_stream, HTTP_STATUS_ERROR_BODY_MAX_LENGTH)
    except BodyTooLargeError as err:
        data = err.data
    except OSError:
        data = b""
    raise HTTPStatusError(status, data.decode("utf-8", errors="replace"))


class _UnixHTTPConnection(http.client.HTTPConnection):
    def __init__(self, socket_path: str, host: str, timeout: Optional[float]) -> None:
        super().__init__(host)
        self._socket_path = socket_path
        self._unix_timeout = timeout

    def connect(self) -> None:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            if self._unix_timeout is not None:
                sock.settimeout(self._unix_timeout)
            sock.connect(self._socket_path)
        except BaseException:
            sock.close()
            raise
        self.sock = sock


class UnixSocketClient:
    """An HTTP client that talks to a server listening on a Unix socket."""

    def __init__(self, socket_path: str, timeout: Optional[float] = None) -> None:
        os.stat(socket_path)
        self.socket_path = os.fspath(socket_path)
        self.timeout = timeout

    def get(self, path: str) -> http.client.HTTPResponse:
        """GET *path* (a path or an http URL whose host is only sent as Host).

        The response must be closed by the caller.
        """
        parts = urlsplit(path)
        host = parts.netloc or "localhost"
        target = parts.path or "/"
        if parts.query:
            target += "?" + parts.query
        conn = _UnixHTTPConnection(self.socket_path, host, self.timeout)
        response: Optional[http.client.HTTPResponse] = None
        try:
            conn.request("GET", target, headers={"Connection": "close"})
            response = conn.getresponse()
            check_successful(response.status, response)
        except BaseException:
            if response is not None:
                response.close()
            conn.close()
            raise
        return response