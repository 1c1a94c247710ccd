import itertools
import os
from pathlib import Path

import pytest
from pydantic import TypeAdapter
from pydantic import ValidationError

from imbue.waitfor import probes
from imbue.waitfor.conditions import AndCondition
from imbue.waitfor.conditions import Condition
from imbue.waitfor.conditions import ConditionNode
from imbue.waitfor.conditions import CustomCondition
from imbue.waitfor.conditions import ElapsedCondition
from imbue.waitfor.conditions import ExistsCondition
from imbue.waitfor.conditions import FileUpdateCondition
from imbue.waitfor.conditions import HttpStatusCondition
from imbue.waitfor.conditions import NotCondition
from imbue.waitfor.conditions import OrCondition
from imbue.waitfor.conditions import TcpAvailableCondition
from imbue.waitfor.constructors import custom
from imbue.waitfor.constructors import file_exists
from imbue.waitfor.constructors import file_size_changed
from imbue.waitfor.constructors import file_updated
from imbue.waitfor.constructors import http_status
from imbue.waitfor.constructors import recently_modified
from imbue.waitfor.constructors import tcp_available
from imbue.waitfor.primitives import FileMetric


def _constant(value: bool) -> CustomCondition:
    return custom(lambda: value, name=f"always_{value}".lower())


def _bump_mtime(path: Path, seconds: int = 10) -> None:
    stat_result = path.stat()
    os.utime(path, ns=(stat_result.st_atime_ns, stat_result.st_mtime_ns + seconds * 1_000_000_000))


# === Negation ===


def test_negating_a_leaf_flips_its_flag_and_keeps_its_fields(tmp_path: Path) -> None:
    condition = file_exists(tmp_path)
    negated = ~condition

    assert isinstance(negated, ExistsCondition)
    assert negated.is_negated is True
    assert negated.path == condition.path


def test_double_negation_of_a_leaf_is_structurally_the_same_leaf(tmp_path: Path) -> None:
    condition = file_exists(tmp_path / "missing")
    assert ~~condition == condition


def test_negating_a_tree_wraps_it_in_a_not_node() -> None:
    tree = _constant(True) & _constant(False)
    negated = ~tree

    assert isinstance(negated, NotCondition)
    assert negated.inner == tree


@pytest.mark.parametrize("value", [True, False])
def test_double_not_nodes_evaluate_like_the_inner_condition(value: bool) -> None:
    leaf = _constant(value)
    already_negated_leaf = ~leaf
    tree = leaf | _constant(False)

    for condition in (leaf, already_negated_leaf, tree):
        assert NotCondition(inner=NotCondition(inner=condition)).condition_met() == condition.condition_met()
        assert (~~condition).condition_met() == condition.condition_met()


def test_not_node_around_a_negated_leaf_cancels_out(tmp_path: Path) -> None:
    negated_leaf = file_exists(tmp_path, is_negated=True)
    assert negated_leaf.condition_met() is False
    assert NotCondition(inner=negated_leaf).condition_met() is True


# === Combination ===


def test_operators_build_and_or_nodes() -> None:
    a = _constant(True)
    b = _constant(False)

    assert a & b == AndCondition(left=a, right=b)
    assert a | b == OrCondition(left=a, right=b)


@pytest.mark.parametrize(("a_value", "b_value"), list(itertools.product([True, False], repeat=2)))
def test_and_or_truth_tables(a_value: bool, b_value: bool) -> None:
    a = _constant(a_value)
    b = _constant(b_value)

    assert (a & b).condition_met() == (a_value and b_value)
    assert (a | b).condition_met() == (a_value or b_value)


@pytest.mark.parametrize(("a_value", "b_value"), list(itertools.product([True, False], repeat=2)))
def test_de_morgan_equivalences_hold(a_value: bool, b_value: bool) -> None:
    a = _constant(a_value)
    b = _constant(b_value)

    assert (~(a & b)).condition_met() == (~a | ~b).condition_met()
    assert (~(a | b)).condition_met() == (~a & ~b).condition_met()
    assert NotCondition(inner=a & b).condition_met() == (NotCondition(inner=a) | NotCondition(inner=b)).condition_met()


@pytest.mark.parametrize(
    "values", [(True, True, False), (True, False, True), (False, True, True), (False, False, False)]
)
def test_and_or_are_associative(values: tuple[bool, bool, bool]) -> None:
    a, b, c = (_constant(value) for value in values)

    assert ((a & b) & c).condition_met() == (a & (b & c)).condition_met()
    assert ((a | b) | c).condition_met() == (a | (b | c)).condition_met()


def test_and_never_evaluates_right_side_when_left_is_unmet() -> None:
    calls: list[str] = []

    def right() -> bool:
        calls.append("right")
        return True

    assert (_constant(False) & custom(right)).condition_met() is False
    assert calls == []


def test_or_never_evaluates_right_side_when_left_is_met() -> None:
    calls: list[str] = []

    def right() -> bool:
        calls.append("right")
        return False

    assert (_constant(True) | custom(right)).condition_met() is True
    assert calls == []


def test_and_short_circuit_skips_the_tcp_probe_entirely(monkeypatch: pytest.MonkeyPatch) -> None:
    connect_attempts: list[tuple[str, int]] = []

    def recording_connect(host: str, port: int, timeout_seconds: float) -> bool:
        connect_attempts.append((host, port))
        return True

    monkeypatch.setattr(probes, "is_tcp_connectable", recording_connect)
    tcp = TcpAvailableCondition(host="example.invalid", port=80)

    assert (_constant(False) & tcp).condition_met() is False
    assert connect_attempts == []

    assert (_constant(True) & tcp).condition_met() is True
    assert connect_attempts == [("example.invalid", 80)]


def test_evaluation_does_not_mutate_the_tree() -> None:
    tree = (_constant(True) & ~_constant(False)) | _constant(False)
    snapshot = tree.model_copy(deep=False)

    tree.condition_met()
    tree.condition_met()

    assert tree == snapshot


# === Elapsed ===


def test_elapsed_boundary_and_its_complement(monkeypatch: pytest.MonkeyPatch) -> None:
    condition = ElapsedCondition(start=100.0, duration_seconds=5.0)
    negated = ~condition

    for now, expected in [(100.0, False), (104.999, False), (105.0, True), (105.001, True), (500.0, True)]:
        monkeypatch.setattr(probes, "monotonic_now", lambda now=now: now)
        assert condition.condition_met() is expected
        assert negated.condition_met() is (not expected)


def test_elapsed_deadline_property() -> None:
    assert ElapsedCondition(start=10.0, duration_seconds=2.5).deadline == 12.5


def test_elapsed_rejects_negative_duration() -> None:
    with pytest.raises(ValidationError):
        ElapsedCondition(start=0.0, duration_seconds=-1.0)


# === Exists ===


def test_exists_condition(tmp_path: Path) -> None:
    present = tmp_path / "present.txt"
    present.write_text("hello")
    absent = tmp_path / "absent.txt"

    assert file_exists(present).condition_met() is True
    assert file_exists(absent).condition_met() is False
    assert (~file_exists(present)).condition_met() is False
    assert (~file_exists(absent)).condition_met() is True


# === FileUpdate ===


def test_file_update_captures_baseline_at_construction(tmp_path: Path) -> None:
    target = tmp_path / "data.json"
    target.write_text("{}")
    stat_result = target.stat()

    condition = file_updated(target)

    assert condition.baseline.mtime_ns == stat_result.st_mtime_ns
    assert condition.baseline.size_bytes == stat_result.st_size


def test_file_update_is_unmet_while_the_file_is_untouched(tmp_path: Path) -> None:
    target = tmp_path / "data.json"
    target.write_text("{}")
    condition = file_updated(target)

    for _ in range(3):
        assert condition.condition_met() is False


def test_file_update_becomes_met_after_mtime_changes_and_stays_met(tmp_path: Path) -> None:
    target = tmp_path / "data.json"
    target.write_text("{}")
    condition = file_updated(target)
    assert condition.condition_met() is False

    _bump_mtime(target)

    assert condition.condition_met() is True
    assert condition.condition_met() is True


def test_file_update_baseline_is_not_deferred_to_the_first_check(tmp_path: Path) -> None:
    target = tmp_path / "data.json"
    target.write_text("{}")
    condition = file_updated(target)

    target.write_text('{"key": "a longer value"}')

    assert condition.condition_met() is True


def test_file_update_size_metric_ignores_mtime_only_changes(tmp_path: Path) -> None:
    target = tmp_path / "log.txt"
    target.write_text("line\n")
    condition = file_size_changed(target)
    assert condition.metric == FileMetric.SIZE

    _bump_mtime(target)
    assert condition.condition_met() is False

    with target.open("a") as f:
        f.write("another line\n")
    assert condition.condition_met() is True


def test_file_update_mtime_metric_ignores_size_when_mtime_is_restored(tmp_path: Path) -> None:
    target = tmp_path / "log.txt"
    target.write_text("line\n")
    before = target.stat()
    condition = file_updated(target, FileMetric.MTIME)

    target.write_text("a different length\n")
    os.utime(target, ns=(before.st_atime_ns, before.st_mtime_ns))

    assert condition.condition_met() is False


def test_file_update_for_a_file_that_appears_later(tmp_path: Path) -> None:
    target = tmp_path / "later.txt"
    condition = file_updated(target)
    assert condition.baseline.is_missing
    assert condition.condition_met() is False

    target.write_text("now here")

    assert condition.condition_met() is True


def test_file_update_for_a_file_that_is_deleted(tmp_path: Path) -> None:
    target = tmp_path / "doomed.txt"
    target.write_text("bye")
    condition = file_updated(target)

    target.unlink()

    assert condition.condition_met() is True


def test_negated_file_update_keeps_the_captured_baseline(tmp_path: Path) -> None:
    target = tmp_path / "data.json"
    target.write_text("{}")
    condition = file_updated(target)
    _bump_mtime(target)

    negated = ~condition

    assert negated.baseline == condition.baseline
    assert negated.condition_met() is False


def test_file_update_accepts_an_explicit_baseline(tmp_path: Path) -> None:
    target = tmp_path / "data.json"
    target.write_text("{}")

    condition = FileUpdateCondition(path=target, baseline=probes.FileSnapshot())

    assert condition.condition_met() is True


# === RecentlyModified ===


def test_recently_modified_and_quiet_for(tmp_path: Path) -> None:
    target = tmp_path / "build.log"
    target.write_text("building")

    assert recently_modified(target, within_seconds=60).condition_met() is True
    assert recently_modified(target, within_seconds=60, is_negated=True).condition_met() is False

    an_hour_ago = target.stat().st_mtime - 3600
    os.utime(target, (an_hour_ago, an_hour_ago))

    assert recently_modified(target, within_seconds=60).condition_met() is False
    assert recently_modified(target, within_seconds=60, is_negated=True).condition_met() is True


def test_recently_modified_missing_file_counts_as_quiet(tmp_path: Path) -> None:
    condition = recently_modified(tmp_path / "missing.log", within_seconds=60)

    assert condition.condition_met() is False
    assert (~condition).condition_met() is True


# === TcpAvailable ===


@pytest.mark.timeout(30)
def test_tcp_condition_is_met_against_a_listening_port(listening_tcp_port: int) -> None:
    condition = tcp_available("127.0.0.1", listening_tcp_port, connect_timeout_seconds=2.0)

    assert condition.condition_met() is True
    assert (~condition).condition_met() is False


@pytest.mark.timeout(30)
def test_tcp_condition_parsed_from_host_port_is_met(listening_tcp_port: int) -> None:
    assert tcp_available(f"127.0.0.1:{listening_tcp_port}").condition_met() is True


@pytest.mark.timeout(30)
def test_tcp_condition_against_a_closed_port(closed_tcp_port: int) -> None:
    condition = tcp_available("127.0.0.1", closed_tcp_port, connect_timeout_seconds=2.0)

    assert condition.condition_met() is False
    assert (~condition).condition_met() is True


# === HttpStatus ===


@pytest.mark.timeout(30)
def test_http_condition_matches_the_expected_status(http_server_url: str) -> None:
    condition = http_status(f"{http_server_url}/status/200")

    assert condition.condition_met() is True
    assert (~condition).condition_met() is False


@pytest.mark.timeout(30)
def test_http_condition_with_a_non_matching_status(http_server_url: str) -> None:
    condition = http_status(f"{http_server_url}/status/404")

    assert condition.condition_met() is False
    assert (~condition).condition_met() is True


@pytest.mark.timeout(30)
def test_http_condition_accepts_any_of_several_statuses(http_server_url: str) -> None:
    condition = http_status(f"{http_server_url}/status/503", (500, 503))

    assert condition.condition_met() is True
    assert http_status(f"{http_server_url}/status/502", (500, 503)).condition_met() is False


@pytest.mark.timeout(30)
def test_http_condition_compares_the_status_after_redirects(http_server_url: str) -> None:
    assert http_status(f"{http_server_url}/redirect").condition_met() is True
    assert http_status(f"{http_server_url}/redirect", 302, is_following_redirects=False).condition_met() is True


@pytest.mark.timeout(30)
def test_negated_http_condition_is_met_while_the_server_is_down(closed_tcp_port: int) -> None:
    condition = http_status(f"http://127.0.0.1:{closed_tcp_port}/health", request_timeout_seconds=2.0)

    assert condition.condition_met() is False
    assert (~condition).condition_met() is True


# === Custom ===


def test_custom_condition_calls_predicate_on_every_check() -> None:
    results = iter([False, False, True])
    condition = custom(lambda: next(results))

    assert [condition.condition_met() for _ in range(3)] == [False, False, True]


def test_custom_condition_negation_inverts_the_predicate() -> None:
    assert custom(lambda: True, is_negated=True).condition_met() is False
    assert (~custom(lambda: False)).condition_met() is True


def test_custom_condition_check_matches_condition_met() -> None:
    condition = custom(lambda: True)
    assert condition.check() is True
    assert (~condition).check() is False


# === Validation and the discriminated union ===


def test_http_condition_rejects_urls_it_could_never_request() -> None:
    with pytest.raises(ValidationError):
        HttpStatusCondition(url="ftp://example.com/file")
    with pytest.raises(ValidationError):
        HttpStatusCondition(url="not a url")


def test_http_condition_requires_at_least_one_expected_status() -> None:
    with pytest.raises(ValidationError):
        HttpStatusCondition(url="http://localhost/", expected_statuses=())


def test_tcp_condition_validates_host_and_port() -> None:
    with pytest.raises(ValidationError):
        TcpAvailableCondition(host="   ", port=80)
    with pytest.raises(ValidationError):
        TcpAvailableCondition(host="localhost", port=0)
    with pytest.raises(ValidationError):
        TcpAvailableCondition(host="localhost", port=65536)


def test_condition_trees_validate_from_tagged_dicts(tmp_path: Path) -> None:
    adapter = TypeAdapter(Condition)

    tree = adapter.validate_python(
        {
            "condition_type": "or",
            "left": {"condition_type": "exists", "path": str(tmp_path)},
            "right": {
                "condition_type": "not",
                "inner": {"condition_type": "elapsed", "start": 0.0, "duration_seconds": 1.0},
            },
        }
    )

    assert isinstance(tree, OrCondition)
    assert isinstance(tree.left, ExistsCondition)
    assert isinstance(tree.right, NotCondition)
    assert isinstance(tree.right.inner, ElapsedCondition)
    assert tree.condition_met() is True


def test_describe_renders_the_tree(tmp_path: Path) -> None:
    tree: ConditionNode = (~file_exists(tmp_path / "lock") & _constant(True)) | ~ElapsedCondition(
        start=0.0, duration_seconds=10.0
    )

    assert tree.describe() == f"((not exists {tmp_path / 'lock'} & always_true) | not elapsed 10s)"
    assert (~(_constant(True) & _constant(False))).describe() == "~(always_true & always_false)"
