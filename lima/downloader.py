"""Download of remote files into local paths, with caching and digest checks."""

from __future__ import annotations

import hashlib
import ipaddress
import logging
import os
import re
import shutil
import sys
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Optional, TextIO
from urllib.parse import urlsplit

from lima.listutil import bytes_size

_log = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
# Hex length of the encoded part of each supported digest algorithm.
_ALGORITHMS = {"sha256": 64, "sha384": 96, "sha512": 128}
_ENCODED = re.compile(r"[a-f0-9]+")


class Status(str, Enum):
    """Outcome of a download."""

    UNKNOWN = ""
    DOWNLOADED = "downloaded"
    SKIPPED = "skipped"
    USED_CACHE = "used-cache"


@dataclass(frozen=True)
class Result:
    """What download() did; cache_path is the cached data file, if any."""

    status: Status
    cache_path: str = ""
    validated_digest: bool = False


def _user_cache_dir() -> str:
    if sys.platform == "darwin":
        home = os.environ.get("HOME", "")
        if not home:
            raise OSError("$HOME is not defined")
        return os.path.join(home, "Library", "Caches")
    if os.name == "nt":
        local = os.environ.get("LocalAppData", "")
        if not local:
            raise OSError("%LocalAppData% is not defined")
        return local
    xdg = os.environ.get("XDG_CACHE_HOME", "")
    if xdg:
        return xdg
    home = os.environ.get("HOME", "")
    if not home:
        raise OSError("neither $XDG_CACHE_HOME nor $HOME are defined")
    return os.path.join(home, ".cache")


def default_cache_dir() -> str:
    """Return the user cache directory joined with "lima"."""
    return os.path.join(_user_cache_dir(), "lima")


def _digest_algorithm(digest: str) -> str:
    """Validate *digest* ("algo:hex") and return its algorithm."""
    algo, sep, encoded = digest.partition(":")
    if not sep or not algo or not encoded:
        raise ValueError(f"invalid checksum digest format: {digest!r}")
    if algo not in _ALGORITHMS:
        raise ValueError(f"expected digest algorithm {algo!r} is not available")
    if len(encoded) != _ALGORITHMS[algo]:
        raise ValueError(f"invalid checksum digest length: {digest!r}")
    if not _ENCODED.fullmatch(encoded):
        raise ValueError(f"invalid checksum digest format: {digest!r}")
    return algo


def is_local(s: str) -> bool:
    """True for a path without a scheme or with the file:// scheme."""
    return "://" not in s or s.startswith("file://")


def canonical_local_path(s: str) -> str:
    """Strip a file:// scheme (which requires an absolute path), or expand ~ and make absolute."""
    if not s:
        raise ValueError("got empty path")
    if not is_local(s):
        raise ValueError(f"got non-local path: {s!r}")
    if s.startswith("file://"):
        path = s[len("file://"):]
        if not os.path.isabs(path):
            raise ValueError(f"got non-absolute path {path!r}")
        return path
    return os.path.abspath(os.path.expanduser(s))


def _file_digest(path: str, algo: str) -> str:
    hasher = hashlib.new(algo)
    with open(path, "rb") as stream:
        while chunk := stream.read(_CHUNK_SIZE):
            hasher.update(chunk)
    return f"{algo}:{hasher.hexdigest()}"


def _validate_local_file_digest(path: str, expected_digest: str) -> None:
    if not path:
        raise ValueError("validate_local_file_digest: got empty local path")
    if not expected_digest:
        return
    _log.debug("verifying digest of local file %r (%s)", path, expected_digest)
    actual = _file_digest(path, _digest_algorithm(expected_digest))
    if actual != expected_digest:
        raise ValueError(f"expected digest {expected_digest!r}, got {actual!r}")


def _copy_local(dst: str, src: str, expected_digest: str) -> None:
    src_path = canonical_local_path(src)
    _validate_local_file_digest(src_path, expected_digest)
    if not dst:
        # caching-only mode
        return
    shutil.copyfile(src_path, canonical_local_path(dst))


def _remove_all(path: str) -> None:
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    elif os.path.lexists(path):
        os.remove(path)


def _is_loopback_host(host: Optional[str]) -> bool:
    if not host:
        return False
    if host.lower() == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def _open_url(url: str):
    handlers = []
    if _is_loopback_host(urlsplit(url).hostname):
        handlers.append(urllib.request.ProxyHandler({}))
    opener = urllib.request.build_opener(*handlers)
    try:
        response = opener.open(url)
    except urllib.error.HTTPError as err:
        err.close()
        raise RuntimeError(f"expected HTTP status 200, got {err.code} {err.reason}") from None
    if response.status != 200:
        status, reason = response.status, response.reason
        response.close()
        raise RuntimeError(f"expected HTTP status 200, got {status} {reason}")
    return response


class _Progress:
    """Reports download progress on a stream, more often on a terminal."""

    def __init__(self, total: int, stream: TextIO) -> None:
        self._total = total
        self._stream = stream
        self._tty = stream.isatty()
        self._interval = 0.2 if self._tty else 5.0
        self._start = time.monotonic()
        self._last = self._start
        self._done = 0

    def _line(self) -> str:
        elapsed = max(time.monotonic() - self._start, 1e-9)
        speed = f"{bytes_size(self._done / elapsed)}/s"
        if self._total > 0:
            percent = f"{100.0 * self._done / self._total:.2f}%"
            return f"{bytes_size(self._done)} / {bytes_size(self._total)} ({percent}) {speed}"
        return f"{bytes_size(self._done)} {speed}"

    def _emit(self) -> None:
        end = "\r" if self._tty else "\n"
        self._stream.write(self._line() + end)
        self._stream.flush()

    def update(self, count: int) -> None:
        self._done += count
        now = time.monotonic()
        if now - self._last >= self._interval:
            self._last = now
            self._emit()

    def finish(self) -> None:
        self._stream.write(self._line() + "\n")
        self._stream.flush()


def _copy_stream(source: BinaryIO, target: BinaryIO, hasher, progress: _Progress) -> None:
    while chunk := source.read(_CHUNK_SIZE):
        target.write(chunk)
        if hasher is not None:
            hasher.update(chunk)
        progress.update(len(chunk))


def _download_http(local_path: str, url: str, expected_digest: str) -> None:
    if not local_path:
        raise ValueError("download_http: got empty local path")
    _log.debug("downloading %r into %r", url, local_path)
    algo = _digest_algorithm(expected_digest) if expected_digest else ""
    hasher = hashlib.new(algo) if algo else None
    tmp_path = local_path + ".tmp"
    _remove_all(tmp_path)
    try:
        with open(tmp_path, "wb") as target, _open_url(url) as response:
            length = response.headers.get("Content-Length")
            total = int(length) if length and length.isdigit() else -1
            progress = _Progress(total, sys.stderr)
            _copy_stream(response, target, hasher, progress)
            progress.finish()
            if hasher is not None:
                actual = f"{algo}:{hasher.hexdigest()}"
                if actual != expected_digest:
                    raise ValueError(f"expected digest {expected_digest!r}, got {actual!r}")
            target.flush()
            os.fsync(target.fileno())
    except BaseException:
        if os.path.lexists(tmp_path):
            os.remove(tmp_path)
        raise
    _remove_all(local_path)
    os.replace(tmp_path, local_path)


def download(
    local: str,
    remote: str,
    cache_dir: Optional[str] = None,
    expected_digest: str = "",
) -> Result:
    """Download *remote* into *local*.

    An existing *local* is left untouched (SKIPPED). Remote files are cached
    under *cache_dir* when given; local sources are never cached. *local* may
    be empty for caching-only mode, which requires *cache_dir*.
    """
    if expected_digest:
        _digest_algorithm(expected_digest)
    validated = bool(expected_digest)

    local_path = ""
    if not local:
        if not cache_dir:
            raise ValueError("caching-only mode requires the cache directory to be specified")
    else:
        local_path = canonical_local_path(local)
        if os.path.lexists(local_path):
            _log.debug(
                "file %r already exists, skipping downloading from %r (and skipping digest validation)",
                local_path, remote,
            )
            return Result(status=Status.SKIPPED, validated_digest=False)
        os.makedirs(os.path.dirname(local_path), mode=0o755, exist_ok=True)

    if is_local(remote):
        _copy_local(local_path, remote, expected_digest)
        return Result(status=Status.DOWNLOADED, validated_digest=validated)

    if not cache_dir:
        _download_http(local_path, remote, expected_digest)
        return Result(status=Status.DOWNLOADED, validated_digest=validated)

    shad = os.path.join(
        cache_dir, "download", "by-url-sha256", hashlib.sha256(remote.encode()).hexdigest()
    )
    shad_data = os.path.join(shad, "data")
    shad_digest = ""
    if expected_digest:
        algo = _digest_algorithm(expected_digest)
        if "/" in algo or "\\" in algo:
            raise ValueError(f"invalid digest algorithm {algo!r}")
        shad_digest = os.path.join(shad, algo + ".digest")

    if os.path.exists(shad_data):
        _log.debug("file %r is cached as %r", local_path, shad_data)
        cached_digest: Optional[str] = None
        if shad_digest:
            try:
                with open(shad_digest, encoding="utf-8") as stream:
                    cached_digest = stream.read().strip()
            except OSError:
                cached_digest = None
        if cached_digest is not None:
            if expected_digest != cached_digest:
                raise ValueError(
                    f"expected digest {expected_digest!r} does not match the cached digest {cached_digest!r}"
                )
            _copy_local(local_path, shad_data, "")
        else:
            _copy_local(local_path, shad_data, expected_digest)
        return Result(status=Status.USED_CACHE, cache_path=shad_data, validated_digest=validated)

    _remove_all(shad)
    os.makedirs(shad, mode=0o700)
    with open(os.path.join(shad, "url"), "w", encoding="utf-8") as stream:
        stream.write(remote)
    _download_http(shad_data, remote, expected_digest)
    # The digest was verified while downloading.
    _copy_local(local_path, shad_data, "")
    if shad_digest:
        with open(shad_digest, "w", encoding="utf-8") as stream:
            stream.write(expected_digest)
    return Result(status=Status.DOWNLOADED, cache_path=shad_data, validated_digest=validated)