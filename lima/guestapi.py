"""Data types exchanged with the guest agent over its HTTP API."""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

IPV4_LOOPBACK1 = ipaddress.IPv4Address("127.0.0.1")

_ZERO_TIME = "0001-01-01T00:00:00Z"
_RFC3339 = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})",
    re.ASCII,
)


def _format_time(value: Optional[datetime]) -> str:
    if value is None:
        return _ZERO_TIME
    if value.tzinfo is None:
        value = value.astimezone()
    text = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    offset = value.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return text + "Z"
    sign = "-" if offset < timedelta(0) else "+"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def _parse_time(text: Optional[str]) -> Optional[datetime]:
    if text is None or text == _ZERO_TIME:
        return None
    match = _RFC3339.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid RFC 3339 time {text!r}")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    microsecond = int((fraction or "").ljust(6, "0")[:6])
    if zone in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    return datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second), microsecond, tzinfo=tz
    )


def _parse_ip(text: Optional[str]) -> Optional[IPAddress]:
    if not text:
        return None
    return ipaddress.ip_address(text)


@dataclass(frozen=True)
class IPPort:
    """An IP address and TCP port; an absent IP stands for a Unix socket."""

    ip: Optional[IPAddress] = None
    port: int = 0

    def __str__(self) -> str:
        host = "" if self.ip is None else str(self.ip)
        if ":" in host:
            host = f"[{host}]"
        return f"{host}:{self.port}"

    def to_dict(self) -> dict[str, Any]:
        return {"ip": "" if self.ip is None else str(self.ip), "port": self.port}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IPPort":
        return cls(ip=_parse_ip(data.get("ip")), port=int(data.get("port", 0)))


@dataclass
class Info:
    """Guest information.

    local_ports holds listeners on 127.0.0.1 and 0.0.0.0, not addresses such
    as 127.0.0.53 or the guest's LAN address.
    """

    local_ports: list[IPPort] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"localPorts": [p.to_dict() for p in self.local_ports]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Info":
        return cls(local_ports=[IPPort.from_dict(p) for p in data.get("localPorts") or []])


@dataclass
class Event:
    """A change in the guest; the first event lists every port as added."""

    time: Optional[datetime] = None
    local_ports_added: list[IPPort] = field(default_factory=list)
    local_ports_removed: list[IPPort] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"time": _format_time(self.time)}
        if self.local_ports_added:
            data["localPortsAdded"] = [p.to_dict() for p in self.local_ports_added]
        if self.local_ports_removed:
            data["localPortsRemoved"] = [p.to_dict() for p in self.local_ports_removed]
        if self.errors:
            data["errors"] = list(self.errors)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Event":
        return cls(
            time=_parse_time(data.get("time")),
            local_ports_added=[IPPort.from_dict(p) for p in data.get("localPortsAdded") or []],
            local_ports_removed=[IPPort.from_dict(p) for p in data.get("localPortsRemoved") or []],
            errors=list(data.get("errors") or []),
        )