import socket
import time
from pathlib import Path
from typing import Final
from typing import assert_never

import httpx
from loguru import logger

from imbue.waitfor.primitives import FileMetric
from imbue.waitfor.primitives import FrozenModel

DEFAULT_TCP_CONNECT_TIMEOUT_SECONDS: Final[float] = 3.0

DEFAULT_HTTP_REQUEST_TIMEOUT_SECONDS: Final[float] = 5.0


def monotonic_now() -> float:
    """Return the current reading of the clock that elapsed-time conditions are measured against."""
    return time.monotonic()


def is_deadline_reached(start: float, duration_seconds: float) -> bool:
    return monotonic_now() - start >= duration_seconds


def path_exists(path: Path) -> bool:
    """Return True if something exists at path.

    Any error while reading metadata (permission denied, a dangling symlink, ...)
    counts as the path being absent.
    """
    try:
        path.stat()
    except OSError as e:
        logger.trace("Treating {} as absent: {}", path, e)
        return False
    return True


class FileSnapshot(FrozenModel):
    """The metadata of a file at one point in time. Both fields are None when the file is absent."""

    mtime_ns: int | None = None
    size_bytes: int | None = None

    @property
    def is_missing(self) -> bool:
        return self.mtime_ns is None and self.size_bytes is None


def take_file_snapshot(path: Path) -> FileSnapshot:
    try:
        stat_result = path.stat()
    except OSError as e:
        logger.trace("No metadata for {}: {}", path, e)
        return FileSnapshot()
    return FileSnapshot(mtime_ns=stat_result.st_mtime_ns, size_bytes=stat_result.st_size)


def has_file_changed(baseline: FileSnapshot, current: FileSnapshot, metric: FileMetric) -> bool:
    """Return True if current differs from baseline in the fields selected by metric.

    A file that was absent and is still absent has not changed. A file that appeared
    or disappeared since the baseline has.
    """
    if current.is_missing or baseline.is_missing:
        return current.is_missing != baseline.is_missing
    match metric:
        case FileMetric.ANY:
            return current != baseline
        case FileMetric.MTIME:
            return current.mtime_ns != baseline.mtime_ns
        case FileMetric.SIZE:
            return current.size_bytes != baseline.size_bytes
        case _ as unreachable:
            assert_never(unreachable)


def was_modified_within(path: Path, window_seconds: float) -> bool:
    """Return True if the file at path was modified less than window_seconds ago (wall clock).

    Modification times in the future count as recent. A missing file was never modified.
    """
    try:
        mtime = path.stat().st_mtime
    except OSError as e:
        logger.trace("No modification time for {}: {}", path, e)
        return False
    return time.time() - mtime < window_seconds


def is_tcp_connectable(host: str, port: int, timeout_seconds: float = DEFAULT_TCP_CONNECT_TIMEOUT_SECONDS) -> bool:
    """Attempt a single TCP connection, closing it straight away if it succeeds."""
    # getaddrinfo rejects int subclasses such as PortNumber
    try:
        with socket.create_connection((host, int(port)), timeout=timeout_seconds):
            return True
    except (OSError, UnicodeError) as e:
        logger.trace("TCP connect to {}:{} failed: {}", host, port, e)
        return False


def fetch_http_status(
    url: str,
    timeout_seconds: float = DEFAULT_HTTP_REQUEST_TIMEOUT_SECONDS,
    is_following_redirects: bool = True,
) -> int | None:
    """Issue a GET request and return its status code, or None if no response arrived."""
    try:
        response = httpx.get(url, timeout=timeout_seconds, follow_redirects=is_following_redirects)
    except httpx.HTTPError as e:
        logger.trace("GET {} failed: {}", url, e)
        return None
    return response.status_code
