"""Convenience constructors for conditions.

These validate their inputs up front and raise ConditionBuildError (a ValueError)
for anything that could never be probed, so mistakes surface before polling starts.
"""

from collections.abc import Callable
from collections.abc import Iterable
from functools import reduce
from pathlib import Path

from imbue.waitfor import probes
from imbue.waitfor.conditions import AndCondition
from imbue.waitfor.conditions import ConditionNode
from imbue.waitfor.conditions import CustomCondition
from imbue.waitfor.conditions import ElapsedCondition
from imbue.waitfor.conditions import ExistsCondition
from imbue.waitfor.conditions import FileUpdateCondition
from imbue.waitfor.conditions import HttpStatusCondition
from imbue.waitfor.conditions import NotCondition
from imbue.waitfor.conditions import OrCondition
from imbue.waitfor.conditions import RecentlyModifiedCondition
from imbue.waitfor.conditions import TcpAvailableCondition
from imbue.waitfor.errors import ConditionBuildError
from imbue.waitfor.errors import InvalidHostError
from imbue.waitfor.errors import TargetParseError
from imbue.waitfor.primitives import FileMetric
from imbue.waitfor.primitives import HttpStatusCode
from imbue.waitfor.primitives import PortNumber
from imbue.waitfor.probes import DEFAULT_HTTP_REQUEST_TIMEOUT_SECONDS
from imbue.waitfor.probes import DEFAULT_TCP_CONNECT_TIMEOUT_SECONDS
from imbue.waitfor.utils.targets import DEFAULT_EXPECTED_HTTP_STATUS
from imbue.waitfor.utils.targets import parse_host_port
from imbue.waitfor.utils.targets import validate_http_url


def elapsed(duration_seconds: float, *, is_negated: bool = False) -> ElapsedCondition:
    """Met once duration_seconds have passed, counting from now."""
    if duration_seconds < 0:
        raise ConditionBuildError(f"Duration must be >= 0 seconds, got {duration_seconds}")
    return ElapsedCondition(start=probes.monotonic_now(), duration_seconds=duration_seconds, is_negated=is_negated)


def elapsed_until(deadline: float, *, is_negated: bool = False) -> ElapsedCondition:
    """Met once the monotonic clock reaches deadline (a time.monotonic() reading)."""
    return ElapsedCondition(start=deadline, duration_seconds=0.0, is_negated=is_negated)


def file_exists(path: str | Path, *, is_negated: bool = False) -> ExistsCondition:
    return ExistsCondition(path=Path(path), is_negated=is_negated)


def file_updated(
    path: str | Path,
    metric: FileMetric = FileMetric.ANY,
    *,
    is_negated: bool = False,
) -> FileUpdateCondition:
    """Met once the file's modification time or size (per metric) changes from what it is right now.

    The baseline is captured by this call, not on the first check.
    """
    return FileUpdateCondition(path=Path(path), metric=metric, is_negated=is_negated)


def file_size_changed(path: str | Path, *, is_negated: bool = False) -> FileUpdateCondition:
    return file_updated(path, FileMetric.SIZE, is_negated=is_negated)


def recently_modified(
    path: str | Path,
    within_seconds: float,
    *,
    is_negated: bool = False,
) -> RecentlyModifiedCondition:
    """Met while the file was modified in the last within_seconds.

    Negate it to wait until a file has stopped changing: ~recently_modified(path, 10)
    is met once the file has gone 10 seconds without a modification.
    """
    if within_seconds <= 0:
        raise ConditionBuildError(f"Window must be > 0 seconds, got {within_seconds}")
    return RecentlyModifiedCondition(path=Path(path), window_seconds=within_seconds, is_negated=is_negated)


def tcp_available(
    host: str,
    port: int | None = None,
    *,
    connect_timeout_seconds: float = DEFAULT_TCP_CONNECT_TIMEOUT_SECONDS,
    is_negated: bool = False,
) -> TcpAvailableCondition:
    """Met while a TCP connection can be made. host may be 'HOST:PORT' when port is omitted."""
    if port is None:
        try:
            host, port = parse_host_port(host)
        except TargetParseError as e:
            raise InvalidHostError(str(e)) from e
    if not host.strip():
        raise InvalidHostError("TCP host must not be empty")
    try:
        valid_port = PortNumber(port)
    except ValueError as e:
        raise InvalidHostError(f"Invalid port for {host}: {e}") from e
    return TcpAvailableCondition(
        host=host,
        port=valid_port,
        connect_timeout_seconds=connect_timeout_seconds,
        is_negated=is_negated,
    )


def http_status(
    url: str,
    expected: int | Iterable[int] = DEFAULT_EXPECTED_HTTP_STATUS,
    *,
    request_timeout_seconds: float = DEFAULT_HTTP_REQUEST_TIMEOUT_SECONDS,
    is_following_redirects: bool = True,
    is_negated: bool = False,
) -> HttpStatusCondition:
    """Met while a GET to url answers with one of the expected statuses."""
    valid_url = validate_http_url(url)
    raw_statuses = (expected,) if isinstance(expected, int) else tuple(expected)
    if not raw_statuses:
        raise ConditionBuildError(f"At least one expected status is required for {url}")
    try:
        statuses = tuple(HttpStatusCode(status) for status in raw_statuses)
    except ValueError as e:
        raise ConditionBuildError(f"Invalid expected status for {url}: {e}") from e
    return HttpStatusCondition(
        url=valid_url,
        expected_statuses=statuses,
        request_timeout_seconds=request_timeout_seconds,
        is_following_redirects=is_following_redirects,
        is_negated=is_negated,
    )


def custom(predicate: Callable[[], bool], *, name: str | None = None, is_negated: bool = False) -> CustomCondition:
    label = name if name is not None else getattr(predicate, "__name__", "custom")
    return CustomCondition(predicate=predicate, name=label, is_negated=is_negated)


# === Combinators ===


def negate(condition: ConditionNode) -> NotCondition:
    """Wrap any condition in an explicit NOT node, even a leaf that could just flip its flag."""
    return NotCondition(inner=condition)  # type: ignore[arg-type]


def all_of(*conditions: ConditionNode) -> ConditionNode:
    """AND together one or more conditions, evaluated left to right."""
    if not conditions:
        raise ConditionBuildError("all_of() needs at least one condition")
    return reduce(lambda left, right: AndCondition(left=left, right=right), conditions)  # type: ignore[arg-type]


def any_of(*conditions: ConditionNode) -> ConditionNode:
    """OR together one or more conditions, evaluated left to right."""
    if not conditions:
        raise ConditionBuildError("any_of() needs at least one condition")
    return reduce(lambda left, right: OrCondition(left=left, right=right), conditions)  # type: ignore[arg-type]
