"""Parsing of the kernel's /proc/net/tcp and /proc/net/tcp6 tables."""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Iterable, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

PROC_NET_TCP_FILES: tuple[tuple[str, str], ...] = (
    ("/proc/net/tcp", "tcp"),
    ("/proc/net/tcp6", "tcp6"),
)

_HEX = re.compile(r"[0-9A-Fa-f]+")


class Kind(str, Enum):
    """Socket table kind."""

    TCP = "tcp"
    TCP6 = "tcp6"


class State(IntEnum):
    """TCP socket states of interest, as numbered by the kernel."""

    ESTABLISHED = 0x1
    LISTEN = 0xA


@dataclass(frozen=True)
class Entry:
    """One socket row of a /proc/net/tcp{,6} table."""

    kind: Kind
    ip: IPAddress
    port: int
    state: int


def _parse_hex_uint(text: str, bits: int) -> int:
    if not _HEX.fullmatch(text):
        raise ValueError(f"invalid hexadecimal number {text!r}")
    value = int(text, 16)
    if value >= 1 << bits:
        raise ValueError(f"value {text!r} out of range for {bits} bits")
    return value


def parse_address(s: str) -> tuple[IPAddress, int]:
    """Parse an address such as "0100007F:0050" into (127.0.0.1, 80).

    The address part is stored as little-endian 32-bit words, as found on
    little-endian hosts.
    """
    host, sep, port_text = s.partition(":")
    if not sep:
        raise ValueError(f"unparsable address {s!r}")
    if len(host) not in (8, 32):
        raise ValueError(
            f"unparsable address {s!r}, expected length of {host!r} to be 8 or 32, got {len(host)}"
        )
    raw = bytearray()
    for start in range(0, len(host), 8):
        quartet = host[start:start + 8]
        if not _HEX.fullmatch(quartet):
            raise ValueError(f"unparsable address {s!r}: unparsable quartet {quartet!r}")
        raw.extend(reversed(bytes.fromhex(quartet)))
    try:
        port = _parse_hex_uint(port_text, 16)
    except ValueError:
        raise ValueError(f"unparsable address {s!r}: unparsable port {port_text!r}") from None
    return ipaddress.ip_address(bytes(raw)), port


def parse(stream: Iterable[str], kind: Union[Kind, str]) -> list[Entry]:
    """Parse the lines of a /proc/net/tcp or /proc/net/tcp6 table."""
    try:
        kind = Kind(kind)
    except ValueError:
        raise ValueError(f"unexpected kind {kind!r}") from None

    entries: list[Entry] = []
    columns: dict[str, int] | None = None
    for index, raw_line in enumerate(stream):
        line = raw_line.strip()
        if not line:
            continue
        fields = line.split()
        if index == 0:
            columns = {name: position for position, name in enumerate(fields)}
            for required in ("local_address", "st"):
                if required not in columns:
                    raise ValueError(f"field {required!r} not found")
            continue
        if columns is None:
            raise ValueError("header line not found")
        try:
            local_address = fields[columns["local_address"]]
            state_text = fields[columns["st"]]
        except IndexError:
            raise ValueError(f"too few fields in line {line!r}") from None
        ip, port = parse_address(local_address)
        state = _parse_hex_uint(state_text, 8)
        entries.append(Entry(kind=kind, ip=ip, port=port, state=state))
    return entries


def parse_files() -> list[Entry]:
    """Parse /proc/net/tcp and /proc/net/tcp6, skipping tables that do not exist."""
    result: list[Entry] = []
    for path, kind in PROC_NET_TCP_FILES:
        try:
            with open(path, encoding="ascii") as stream:
                result.extend(parse(stream, kind))
        except FileNotFoundError:
            continue
    return result