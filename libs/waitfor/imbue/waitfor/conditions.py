from collections.abc import Callable
from pathlib import Path
from typing import Annotated
from typing import Any
from typing import Literal
from typing import Self
from typing import assert_never

from loguru import logger
from pydantic import Discriminator
from pydantic import Field
from pydantic import field_validator
from pydantic import model_validator

from imbue.waitfor import probes
from imbue.waitfor.errors import InvalidHostError
from imbue.waitfor.polling import wait_for_condition
from imbue.waitfor.polling import wait_for_condition_async
from imbue.waitfor.primitives import FileMetric
from imbue.waitfor.primitives import FrozenModel
from imbue.waitfor.primitives import HttpStatusCode
from imbue.waitfor.primitives import NonNegativeSeconds
from imbue.waitfor.primitives import PortNumber
from imbue.waitfor.primitives import PositiveSeconds
from imbue.waitfor.probes import DEFAULT_HTTP_REQUEST_TIMEOUT_SECONDS
from imbue.waitfor.probes import DEFAULT_TCP_CONNECT_TIMEOUT_SECONDS
from imbue.waitfor.probes import FileSnapshot
from imbue.waitfor.utils.targets import DEFAULT_EXPECTED_HTTP_STATUS
from imbue.waitfor.utils.targets import validate_http_url


class ConditionNode(FrozenModel):
    """Behavior shared by every node of a condition tree.

    Any two nodes combine with `a & b` and `a | b`, and any node negates with `~a`.
    Evaluation never mutates a tree, so a tree can be checked and waited on any
    number of times.
    """

    def condition_met(self) -> bool:
        """Check whether this condition currently holds.

        This does not block, but depending on the leaves involved it may take a while
        (an HTTP GET incurs TCP and possibly TLS handshake latency). AND and OR
        short-circuit, so the order of operands decides which probes run.
        """
        return evaluate_condition(self)  # type: ignore[arg-type]

    def wait(self, interval_seconds: float) -> int:
        """Block the calling thread until this condition holds. Returns the number of polls."""
        return wait_for_condition(self, interval_seconds)

    async def wait_async(self, interval_seconds: float) -> int:
        """Like wait(), but sleeps with asyncio and runs each check in a worker thread."""
        return await wait_for_condition_async(self, interval_seconds)

    def describe(self) -> str:
        return describe_condition(self)  # type: ignore[arg-type]

    def __and__(self, other: "ConditionNode") -> "AndCondition":
        return AndCondition(left=self, right=other)  # type: ignore[arg-type]

    def __or__(self, other: "ConditionNode") -> "OrCondition":
        return OrCondition(left=self, right=other)  # type: ignore[arg-type]

    def __invert__(self) -> "ConditionNode":
        return NotCondition(inner=self)  # type: ignore[arg-type]


class LeafCondition(ConditionNode):
    """A single probe of the environment.

    Negating a leaf flips its is_negated flag rather than wrapping it, so ~~leaf
    is structurally equal to leaf.
    """

    is_negated: bool = Field(default=False, description="Invert the raw probe result")

    def check(self) -> bool:
        return check_primitive(self)  # type: ignore[arg-type]

    def __invert__(self) -> Self:
        return self.model_copy(update={"is_negated": not self.is_negated})


# === Leaves ===


class ElapsedCondition(LeafCondition):
    """Met once duration_seconds have passed since start. Negated, met only while time remains."""

    condition_type: Literal["elapsed"] = "elapsed"
    start: float = Field(description="Monotonic clock reading, in seconds, at which the countdown began")
    duration_seconds: NonNegativeSeconds = Field(description="How long after start the condition becomes met")

    @property
    def deadline(self) -> float:
        return self.start + self.duration_seconds


class ExistsCondition(LeafCondition):
    """Met while something exists at path."""

    condition_type: Literal["exists"] = "exists"
    path: Path = Field(description="Filesystem path to look for")


class FileUpdateCondition(LeafCondition):
    """Met once the file's metadata differs from the baseline captured when the condition was built."""

    condition_type: Literal["file_update"] = "file_update"
    path: Path = Field(description="File to watch")
    metric: FileMetric = Field(default=FileMetric.ANY, description="Which metadata counts as an update")
    baseline: FileSnapshot = Field(description="Metadata captured at construction time")

    @model_validator(mode="before")
    @classmethod
    def _capture_baseline(cls, data: Any) -> Any:
        if isinstance(data, dict) and "baseline" not in data and "path" in data:
            return {**data, "baseline": probes.take_file_snapshot(Path(data["path"]))}
        return data


class RecentlyModifiedCondition(LeafCondition):
    """Met while the file was modified within the last window_seconds.

    Negated, this is met once the file has been quiet for at least the window.
    """

    condition_type: Literal["recently_modified"] = "recently_modified"
    path: Path = Field(description="File to watch")
    window_seconds: PositiveSeconds = Field(description="How recent a modification must be to count")


class TcpAvailableCondition(LeafCondition):
    """Met while a TCP connection to host:port can be established."""

    condition_type: Literal["tcp_available"] = "tcp_available"
    host: str = Field(description="Hostname or IP address to connect to")
    port: PortNumber = Field(description="TCP port to connect to")
    connect_timeout_seconds: PositiveSeconds = Field(
        default=DEFAULT_TCP_CONNECT_TIMEOUT_SECONDS,
        description="Timeout for each connection attempt",
    )

    @field_validator("host")
    @classmethod
    def _validate_host(cls, host: str) -> str:
        stripped = host.strip()
        if not stripped:
            raise InvalidHostError("TCP host must not be empty")
        return stripped


class HttpStatusCondition(LeafCondition):
    """Met while a GET request to url returns one of the expected statuses.

    A request that gets no response at all (connection refused, timeout, DNS failure)
    counts the same as a status that does not match.
    """

    condition_type: Literal["http_status"] = "http_status"
    url: str = Field(description="Absolute http(s) URL to request")
    expected_statuses: tuple[HttpStatusCode, ...] = Field(
        default=(HttpStatusCode(DEFAULT_EXPECTED_HTTP_STATUS),),
        min_length=1,
        description="Statuses that count as a match",
    )
    request_timeout_seconds: PositiveSeconds = Field(
        default=DEFAULT_HTTP_REQUEST_TIMEOUT_SECONDS,
        description="Timeout for each request",
    )
    is_following_redirects: bool = Field(default=True, description="Follow redirects before reading the status")

    @field_validator("url")
    @classmethod
    def _validate_url(cls, url: str) -> str:
        return validate_http_url(url)


class CustomCondition(LeafCondition):
    """Met while the predicate returns True.

    The predicate is called once per check, so it must be safe to call repeatedly
    and must not block indefinitely.
    """

    condition_type: Literal["custom"] = "custom"
    predicate: Callable[[], bool] = Field(description="Zero-argument callable probing the environment")
    name: str = Field(default="custom", description="Label used when describing this condition")


# === Combinators ===


class AndCondition(ConditionNode):
    """Met when both sides are met. right is never evaluated when left is not met."""

    condition_type: Literal["and"] = "and"
    left: "Condition"
    right: "Condition"


class OrCondition(ConditionNode):
    """Met when either side is met. right is never evaluated when left is met."""

    condition_type: Literal["or"] = "or"
    left: "Condition"
    right: "Condition"


class NotCondition(ConditionNode):
    """Met when inner is not met."""

    condition_type: Literal["not"] = "not"
    inner: "Condition"


PrimitiveCondition = Annotated[
    ElapsedCondition
    | ExistsCondition
    | FileUpdateCondition
    | RecentlyModifiedCondition
    | TcpAvailableCondition
    | HttpStatusCondition
    | CustomCondition,
    Discriminator("condition_type"),
]

Condition = Annotated[
    ElapsedCondition
    | ExistsCondition
    | FileUpdateCondition
    | RecentlyModifiedCondition
    | TcpAvailableCondition
    | HttpStatusCondition
    | CustomCondition
    | AndCondition
    | OrCondition
    | NotCondition,
    Discriminator("condition_type"),
]

AndCondition.model_rebuild()
OrCondition.model_rebuild()
NotCondition.model_rebuild()


# === Evaluation ===


def _probe(condition: PrimitiveCondition) -> bool:
    """Run the probe behind a leaf, ignoring its negation flag."""
    match condition:
        case ElapsedCondition():
            return probes.is_deadline_reached(condition.start, condition.duration_seconds)
        case ExistsCondition():
            return probes.path_exists(condition.path)
        case FileUpdateCondition():
            current = probes.take_file_snapshot(condition.path)
            return probes.has_file_changed(condition.baseline, current, condition.metric)
        case RecentlyModifiedCondition():
            return probes.was_modified_within(condition.path, condition.window_seconds)
        case TcpAvailableCondition():
            return probes.is_tcp_connectable(condition.host, condition.port, condition.connect_timeout_seconds)
        case HttpStatusCondition():
            status = probes.fetch_http_status(
                condition.url,
                condition.request_timeout_seconds,
                condition.is_following_redirects,
            )
            return status is not None and status in condition.expected_statuses
        case CustomCondition():
            return bool(condition.predicate())
        case _ as unreachable:
            assert_never(unreachable)


def check_primitive(condition: PrimitiveCondition) -> bool:
    """Probe a leaf and apply its negation flag as the final step."""
    is_met = _probe(condition) != condition.is_negated
    logger.opt(lazy=True).trace("{} -> {}", lambda: describe_condition(condition), lambda: is_met)
    return is_met


def evaluate_condition(node: Condition) -> bool:
    """Evaluate a condition tree top-down with short-circuiting AND and OR."""
    match node:
        case AndCondition():
            return evaluate_condition(node.left) and evaluate_condition(node.right)
        case OrCondition():
            return evaluate_condition(node.left) or evaluate_condition(node.right)
        case NotCondition():
            return not evaluate_condition(node.inner)
        case (
            ElapsedCondition()
            | ExistsCondition()
            | FileUpdateCondition()
            | RecentlyModifiedCondition()
            | TcpAvailableCondition()
            | HttpStatusCondition()
            | CustomCondition()
        ):
            return check_primitive(node)
        case _ as unreachable:
            assert_never(unreachable)


# === Description ===


def _describe_leaf(condition: PrimitiveCondition) -> str:
    match condition:
        case ElapsedCondition():
            return f"elapsed {condition.duration_seconds:g}s"
        case ExistsCondition():
            return f"exists {condition.path}"
        case FileUpdateCondition():
            return f"updated {condition.path} ({condition.metric.lower()})"
        case RecentlyModifiedCondition():
            return f"modified within {condition.window_seconds:g}s {condition.path}"
        case TcpAvailableCondition():
            return f"tcp {condition.host}:{condition.port}"
        case HttpStatusCondition():
            statuses = ",".join(str(status) for status in condition.expected_statuses)
            return f"http {condition.url} in [{statuses}]"
        case CustomCondition():
            return condition.name
        case _ as unreachable:
            assert_never(unreachable)


def describe_condition(node: Condition) -> str:
    """Render a condition tree as a short human-readable expression."""
    match node:
        case AndCondition():
            return f"({describe_condition(node.left)} & {describe_condition(node.right)})"
        case OrCondition():
            return f"({describe_condition(node.left)} | {describe_condition(node.right)})"
        case NotCondition():
            return f"~{describe_condition(node.inner)}"
        case (
            ElapsedCondition()
            | ExistsCondition()
            | FileUpdateCondition()
            | RecentlyModifiedCondition()
            | TcpAvailableCondition()
            | HttpStatusCondition()
            | CustomCondition()
        ):
            description = _describe_leaf(node)
            return f"not {description}" if node.is_negated else description
        case _ as unreachable:
            assert_never(unreachable)
