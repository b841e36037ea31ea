import io
import json
import os
import socketserver
import tempfile
import threading
from http.server import BaseHTTPRequestHandler

import pytest

from lima.httpclient import (
    HTTP_STATUS_ERROR_BODY_MAX_LENGTH,
    BodyTooLargeError,
    HTTPStatusError,
    UnixSocketClient,
    check_successful,
    read_at_most,
)


class _Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        if self.path == "/ok":
            self._reply(200, b"hello")
        elif self.path == "/host":
            self._reply(200, self.headers["Host"].encode())
        elif self.path == "/json-error":
            self._reply(500, json.dumps({"message": "boom"}).encode())
        else:
            self._reply(404, b"missing")

    def _reply(self, code, body):
        self.send_response(code)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def socket_path():
    with tempfile.TemporaryDirectory() as directory:
        path = os.path.join(directory, "api.sock")
        server = socketserver.ThreadingUnixStreamServer(path, _Handler)
        server.daemon_threads = True
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        yield path
        server.shutdown()
        server.server_close()


def test_read_at_most_under_limit():
    assert read_at_most(io.BytesIO(b"abc"), 10) == b"abc"


def test_read_at_most_at_limit_raises_with_data():
    with pytest.raises(BodyTooLargeError) as info:
        read_at_most(io.BytesIO(b"abcdef"), 3)
    assert info.value.data == b"abc"


def test_check_successful_accepts_2xx():
    assert check_successful(204, io.BytesIO(b"")) is None


def test_check_successful_nil_response():
    with pytest.raises(ValueError):
        check_successful(None, io.BytesIO(b""))


def test_check_successful_raises_status_error():
    with pytest.raises(HTTPStatusError) as info:
        check_successful(404, io.BytesIO(b"oops"))
    assert info.value.status_code == 404
    assert info.value.body == "oops"
    assert str(info.value) == 'unexpected HTTP status Not Found, body="oops"'


def test_check_successful_truncates_large_body():
    body = b"x" * (HTTP_STATUS_ERROR_BODY_MAX_LENGTH + 10)
    with pytest.raises(HTTPStatusError) as info:
        check_successful(500, io.BytesIO(body))
    assert len(info.value.body) == HTTP_STATUS_ERROR_BODY_MAX_LENGTH


def test_status_error_uses_json_message():
    err = HTTPStatusError(500, json.dumps({"message": "disk full"}))
    assert str(err) == "disk full"


def test_client_requires_existing_socket(tmp_path):
    with pytest.raises(FileNotFoundError):
        UnixSocketClient(str(tmp_path / "absent.sock"))


def test_client_get_ok(socket_path):
    client = UnixSocketClient(socket_path, timeout=5)
    with client.get("/ok") as response:
        assert response.status == 200
        assert response.read() == b"hello"


def test_client_sends_url_host(socket_path):
    client = UnixSocketClient(socket_path, timeout=5)
    with client.get("http://lima-guestagent/host") as response:
        assert response.read() == b"lima-guestagent"


def test_client_get_json_error(socket_path):
    client = UnixSocketClient(socket_path, timeout=5)
    with pytest.raises(HTTPStatusError) as info:
        client.get("http://lima-guestagent/json-error")
    assert info.value.status_code == 500
    assert str(info.value) == "boom"


def test_client_get_not_found(socket_path):
    client = UnixSocketClient(socket_path, timeout=5)
    with pytest.raises(HTTPStatusError) as info:
        client.get("/nothing")
    assert info.value.status_code == 404
    assert info.value.body == "missing"