import ipaddress
import json
import os
import socket
import tempfile
import threading

import pytest

from lima.guestagent_server import GuestAgentServer
from lima.guestapi import Event, Info, IPPort
from lima.httpclient import HTTPStatusError, UnixSocketClient


class FakeAgent:
    def __init__(self, info=None, events=(), error=None):
        self._info = info or Info()
        self._events = list(events)
        self._error = error

    def info(self):
        if self._error is not None:
            raise self._error
        return self._info

    def events(self, stop):
        yield from self._events


@pytest.fixture
def workdir():
    with tempfile.TemporaryDirectory() as directory:
        yield directory


def _start(path, agent):
    server = GuestAgentServer(path, agent)
    threading.Thread(target=server.serve_forever, daemon=True).start()
    return server


def _raw(path, request):
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
        sock.settimeout(5)
        sock.connect(path)
        sock.sendall(request)
        chunks = []
        while True:
            chunk = sock.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


def test_info_json(workdir):
    path = os.path.join(workdir, "ga.sock")
    info = Info(local_ports=[IPPort(ip=ipaddress.ip_address("127.0.0.1"), port=22)])
    server = _start(path, FakeAgent(info=info))
    try:
        with UnixSocketClient(path, timeout=5).get("/v1/info") as response:
            assert response.getheader("Content-Type") == "application/json"
            assert json.load(response) == info.to_dict()
    finally:
        server.shutdown()


def test_info_error_is_500_json(workdir):
    path = os.path.join(workdir, "ga.sock")
    server = _start(path, FakeAgent(error=ValueError("bad state")))
    try:
        with pytest.raises(HTTPStatusError) as err:
            UnixSocketClient(path, timeout=5).get("/v1/info")
        assert err.value.status_code == 500
        assert json.loads(err.value.body) == {"message": "bad state"}
    finally:
        server.shutdown()


def test_events_ndjson(workdir):
    path = os.path.join(workdir, "ga.sock")
    sent = [Event(errors=["first"]), Event(errors=["second"])]
    server = _start(path, FakeAgent(events=sent))
    try:
        with UnixSocketClient(path, timeout=5).get("/v1/events") as response:
            assert response.getheader("Content-Type") == "application/x-ndjson"
            lines = [json.loads(line) for line in response if line.strip()]
        assert [Event.from_dict(line) for line in lines] == sent
    finally:
        server.shutdown()


def test_unknown_path_is_404(workdir):
    path = os.path.join(workdir, "ga.sock")
    server = _start(path, FakeAgent())
    try:
        with pytest.raises(HTTPStatusError) as err:
            UnixSocketClient(path, timeout=5).get("/v2/info")
        assert err.value.status_code == 404
    finally:
        server.shutdown()


def test_wrong_method_is_405(workdir):
    path = os.path.join(workdir, "ga.sock")
    server = _start(path, FakeAgent())
    try:
        reply = _raw(path, b"POST /v1/info HTTP/1.0\r\nContent-Length: 0\r\n\r\n")
        assert reply.split()[1] == b"405"
    finally:
        server.shutdown()


def test_stale_socket_replaced_and_removed_on_shutdown(workdir):
    path = os.path.join(workdir, "ga.sock")
    with open(path, "w") as stale:
        stale.write("stale")
    server = _start(path, FakeAgent())
    with UnixSocketClient(path, timeout=5).get("/v1/info") as response:
        assert response.status == 200
    server.shutdown()
    assert not os.path.exists(path)
    server.shutdown()
    assert not os.path.exists(path)