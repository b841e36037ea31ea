"""Client for the guest agent's HTTP API on a Unix socket."""

from __future__ import annotations

import json
from typing import Callable

from lima.guestapi import Event, Info
from lima.httpclient import UnixSocketClient

_VERSION = "v1"
_DUMMY_HOST = "lima-guestagent"


class GuestAgentClient:
    """Talks to the guest agent listening at *socket_path*."""

    def __init__(self, socket_path: str) -> None:
        self.http_client = UnixSocketClient(socket_path)
        self._base = f"http://{_DUMMY_HOST}/{_VERSION}"

    def info(self) -> Info:
        """Fetch the guest information."""
        with self.http_client.get(f"{self._base}/info") as response:
            return Info.from_dict(json.load(response))

    def events(self, on_event: Callable[[Event], None]) -> None:
        """Stream events to *on_event* until the server closes the stream."""
        with self.http_client.get(f"{self._base}/events") as response:
            for line in response:
                line = line.strip()
                if not line:
                    continue
                on_event(Event.from_dict(json.loads(line)))