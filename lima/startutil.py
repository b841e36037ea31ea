"""Interpretation of the argument given to `limactl start`."""

from __future__ import annotations

import posixpath
import re
from typing import BinaryIO
from urllib.parse import urlsplit

IDENTIFIER_MAX_LENGTH = 76
_IDENTIFIER = re.compile(r"[A-Za-z0-9]+(?:[._-][A-Za-z0-9]+)*")


def validate_identifier(s: str) -> None:
    """Raise ValueError unless *s* is a valid instance identifier."""
    if not s:
        raise ValueError("identifier must not be empty")
    if len(s) > IDENTIFIER_MAX_LENGTH:
        raise ValueError(
            f"identifier {s!r} greater than maximum length ({IDENTIFIER_MAX_LENGTH} characters)"
        )
    if not _IDENTIFIER.fullmatch(s):
        raise ValueError(f"identifier {s!r} must match {_IDENTIFIER.pattern}")


def _scheme(arg: str) -> str:
    try:
        return urlsplit(arg).scheme
    except ValueError:
        return ""


def arg_seems_http_url(arg: str) -> bool:
    """True when *arg* is an http or https URL."""
    return _scheme(arg) in ("http", "https")


def arg_seems_file_url(arg: str) -> bool:
    """True when *arg* is a file URL."""
    return _scheme(arg) == "file"


def arg_seems_yaml_path(arg: str) -> bool:
    """True when *arg* contains a slash or ends with .yml or .yaml."""
    if "/" in arg:
        return True
    lower = arg.lower()
    return lower.endswith(".yml") or lower.endswith(".yaml")


def _base(path: str) -> str:
    if not path:
        return "."
    stripped = path.rstrip("/")
    if not stripped:
        return "/"
    return posixpath.basename(stripped)


def inst_name_from_url(url: str) -> str:
    """Derive an instance name from the last path element of *url*."""
    return inst_name_from_yaml_path(_base(urlsplit(url).path))


def inst_name_from_yaml_path(yaml_path: str) -> str:
    """Derive an instance name from a YAML file name, e.g. "docker.yaml" -> "docker"."""
    name = _base(yaml_path).lower()
    name = name.removesuffix(".yml").removesuffix(".yaml")
    name = name.replace(".", "-")
    try:
        validate_identifier(name)
    except ValueError as err:
        raise ValueError(f"filename {yaml_path!r} is invalid: {err}") from err
    return name


def read_at_maximum(stream: BinaryIO, limit: int) -> bytes:
    """Read at most *limit* bytes from *stream*; anything beyond is left unread."""
    chunks: list[bytes] = []
    remaining = limit
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)