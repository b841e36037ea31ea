"""Events emitted by the host agent as JSON lines, and a watcher for them."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from lima.guestapi import _format_time, _parse_time

_log = logging.getLogger(__name__)

_POLL_INTERVAL = 0.05
_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
}


@dataclass
class Status:
    """State of the host agent.

    degraded implies running; exiting implies not running.
    """

    running: bool = False
    degraded: bool = False
    exiting: bool = False
    errors: list[str] = field(default_factory=list)
    ssh_local_port: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.running:
            data["running"] = True
        if self.degraded:
            data["degraded"] = True
        if self.exiting:
            data["exiting"] = True
        if self.errors:
            data["errors"] = list(self.errors)
        if self.ssh_local_port:
            data["sshLocalPort"] = self.ssh_local_port
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Status":
        return cls(
            running=bool(data.get("running", False)),
            degraded=bool(data.get("degraded", False)),
            exiting=bool(data.get("exiting", False)),
            errors=list(data.get("errors") or []),
            ssh_local_port=int(data.get("sshLocalPort", 0)),
        )


@dataclass
class Event:
    """A host agent event."""

    time: Optional[datetime] = None
    status: Status = field(default_factory=Status)

    def to_dict(self) -> dict[str, Any]:
        return {"time": _format_time(self.time), "status": self.status.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Event":
        return cls(
            time=_parse_time(data.get("time")),
            status=Status.from_dict(data.get("status") or {}),
        )


class _Tail:
    """Follows a file from its start, yielding complete lines as they appear."""

    def __init__(self, path: str) -> None:
        self._file = open(path, encoding="utf-8", errors="replace")
        self._pending = ""

    def lines(self) -> list[str]:
        chunk = self._file.read()
        if not chunk:
            return []
        self._pending += chunk
        *complete, self._pending = self._pending.split("\n")
        return complete

    def close(self) -> None:
        self._file.close()


def _propagate_log(line: str, begin: datetime) -> None:
    try:
        record = json.loads(line)
    except ValueError:
        if line:
            _log.info("[hostagent] %s", line)
        return
    if not isinstance(record, dict):
        return
    try:
        stamp = _parse_time(record.get("time"))
    except ValueError:
        stamp = None
    if stamp is not None and begin.tzinfo is not None and stamp < begin:
        return
    level = _LEVELS.get(str(record.get("level", "info")), logging.INFO)
    _log.log(level, "[hostagent] %s", record.get("msg", ""))


def watch(
    stdout_path: str,
    stderr_path: str,
    begin: datetime,
    on_event: Callable[[Event], bool],
    timeout: Optional[float] = None,
) -> bool:
    """Follow the host agent's logs, passing events to *on_event*.

    Returns True once *on_event* returns True, False when *timeout* seconds
    pass first. Both files must exist.
    """
    deadline = None if timeout is None else time.monotonic() + timeout
    stdout_tail = _Tail(stdout_path)
    try:
        stderr_tail = _Tail(stderr_path)
    except BaseException:
        stdout_tail.close()
        raise
    try:
        while deadline is None or time.monotonic() < deadline:
            progressed = False
            for line in stdout_tail.lines():
                progressed = True
                if not line:
                    continue
                event = Event.from_dict(json.loads(line))
                _log.debug("received an event: %s", event)
                if on_event(event):
                    return True
            for line in stderr_tail.lines():
                progressed = True
                _propagate_log(line, begin)
            if not progressed:
                time.sleep(_POLL_INTERVAL)
        return False
    finally:
        stdout_tail.close()
        stderr_tail.close()