"""Helpers for listing instances."""

from __future__ import annotations

from typing import Iterable, Union

_BINARY_ABBRS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB", "ZiB", "YiB")


def instance_matches(arg: str, instances: Iterable[str]) -> list[str]:
    """Return the instance names equal to *arg*."""
    return [instance for instance in instances if instance == arg]


def bytes_size(size: Union[int, float]) -> str:
    """Format a byte count with binary units and four significant digits, e.g. "4GiB"."""
    value = float(size)
    unit = 0
    while value >= 1024.0 and unit < len(_BINARY_ABBRS) - 1:
        value /= 1024.0
        unit += 1
    return f"{value:.4g}{_BINARY_ABBRS[unit]}"