import ipaddress
import os
import tempfile
import threading
from datetime import datetime, timezone

import pytest

from lima.guestagent_client import GuestAgentClient
from lima.guestagent_server import GuestAgentServer
from lima.guestapi import Event, Info, IPPort
from lima.httpclient import HTTPStatusError


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


def _serve(agent):
    directory = tempfile.TemporaryDirectory()
    path = os.path.join(directory.name, "ga.sock")
    server = GuestAgentServer(path, agent)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return directory, path, server


@pytest.fixture
def serve():
    started = []

    def start(agent):
        directory, path, server = _serve(agent)
        started.append((directory, server))
        return path

    yield start
    for directory, server in started:
        server.shutdown()
        directory.cleanup()


def test_info_round_trip(serve):
    info = Info(local_ports=[IPPort(ip=ipaddress.ip_address("127.0.0.1"), port=8080)])
    client = GuestAgentClient(serve(FakeAgent(info=info)))
    assert client.info() == info


def test_info_error_message(serve):
    client = GuestAgentClient(serve(FakeAgent(error=RuntimeError("boom"))))
    with pytest.raises(HTTPStatusError) as err:
        client.info()
    assert err.value.status_code == 500
    assert str(err.value) == "boom"


def test_events_stream(serve):
    when = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    sent = [
        Event(time=when, local_ports_added=[IPPort(ip=ipaddress.ip_address("0.0.0.0"), port=80)]),
        Event(time=when, errors=["failure"]),
    ]
    client = GuestAgentClient(serve(FakeAgent(events=sent)))
    received = []
    client.events(received.append)
    assert received == sent


def test_missing_socket(tmp_path):
    with pytest.raises(FileNotFoundError):
        GuestAgentClient(str(tmp_path / "none.sock"))