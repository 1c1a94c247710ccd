from pathlib import Path
from typing import Any
from typing import assert_never

import click
from click_option_group import optgroup
from loguru import logger

from imbue.waitfor.conditions import ConditionNode
from imbue.waitfor.config.data_types import WaitforConfig
from imbue.waitfor.config.loader import load_config
from imbue.waitfor.constructors import all_of
from imbue.waitfor.constructors import any_of
from imbue.waitfor.constructors import custom
from imbue.waitfor.constructors import elapsed
from imbue.waitfor.constructors import file_exists
from imbue.waitfor.constructors import file_updated
from imbue.waitfor.constructors import http_status
from imbue.waitfor.constructors import recently_modified
from imbue.waitfor.constructors import tcp_available
from imbue.waitfor.errors import ConditionBuildError
from imbue.waitfor.errors import TargetParseError
from imbue.waitfor.errors import UserInputError
from imbue.waitfor.errors import WaitTimeoutError
from imbue.waitfor.primitives import CombineMode
from imbue.waitfor.primitives import FrozenModel
from imbue.waitfor.primitives import LogLevel
from imbue.waitfor.utils.duration import parse_duration_to_seconds
from imbue.waitfor.utils.logging import log_span
from imbue.waitfor.utils.logging import setup_logging
from imbue.waitfor.utils.targets import parse_host_port
from imbue.waitfor.utils.targets import parse_http_target


class WaitforCliOptions(FrozenModel):
    """Options for the waitfor command."""

    elapsed: tuple[str, ...]
    exists: tuple[Path, ...]
    not_exists: tuple[Path, ...]
    updated: tuple[Path, ...]
    quiet_for: tuple[str, ...]
    tcp: tuple[str, ...]
    no_tcp: tuple[str, ...]
    http: tuple[str, ...]
    is_any: bool
    interval: str | None
    timeout: str | None
    log_level: LogLevel | None


def _parse_quiet_for(value: str) -> tuple[Path, float]:
    path_text, separator, duration_text = value.rpartition(":")
    if not separator or not path_text:
        raise TargetParseError(f"Invalid --quiet-for value {value!r}: expected PATH:DURATION")
    return Path(path_text), parse_duration_to_seconds(duration_text)


def build_conditions(opts: WaitforCliOptions, config: WaitforConfig) -> list[ConditionNode]:
    """Turn each condition option into a leaf, in a fixed order: time, files, then network."""
    conditions: list[ConditionNode] = []
    for duration_text in opts.elapsed:
        conditions.append(elapsed(parse_duration_to_seconds(duration_text)))
    for path in opts.exists:
        conditions.append(file_exists(path))
    for path in opts.not_exists:
        conditions.append(file_exists(path, is_negated=True))
    for path in opts.updated:
        conditions.append(file_updated(path))
    for value in opts.quiet_for:
        path, window_seconds = _parse_quiet_for(value)
        conditions.append(recently_modified(path, window_seconds, is_negated=True))
    for target, is_negated in [(t, False) for t in opts.tcp] + [(t, True) for t in opts.no_tcp]:
        host, port = parse_host_port(target)
        conditions.append(
            tcp_available(
                host,
                port,
                connect_timeout_seconds=config.tcp_connect_timeout_seconds,
                is_negated=is_negated,
            )
        )
    for target in opts.http:
        status, url = parse_http_target(target)
        conditions.append(http_status(url, status, request_timeout_seconds=config.http_request_timeout_seconds))
    return conditions


def combine_conditions(conditions: list[ConditionNode], mode: CombineMode) -> ConditionNode:
    match mode:
        case CombineMode.ALL:
            return all_of(*conditions)
        case CombineMode.ANY:
            return any_of(*conditions)
        case _ as unreachable:
            assert_never(unreachable)


def wait_with_timeout(target: ConditionNode, interval_seconds: float, timeout_seconds: float | None) -> int:
    """Wait for target, giving up with WaitTimeoutError once timeout_seconds have elapsed.

    The deadline is composed into the tree as `target | elapsed(timeout)`, so the wait
    loop itself stays deadline-free.
    """
    if timeout_seconds is None:
        return target.wait(interval_seconds)

    is_target_met = False

    def _target_met() -> bool:
        nonlocal is_target_met
        is_target_met = target.condition_met()
        return is_target_met

    deadline = elapsed(timeout_seconds)
    poll_count = (custom(_target_met, name=target.describe()) | deadline).wait(interval_seconds)
    if not is_target_met:
        raise WaitTimeoutError(f"Timed out after {timeout_seconds:g}s waiting for {target.describe()}")
    return poll_count


@click.command(name="waitfor", context_settings={"help_option_names": ["-h", "--help"]})
@optgroup.group("Conditions")
@optgroup.option("--elapsed", "elapsed", multiple=True, help="Met once DURATION has passed (e.g. '10s', '1m30s').")
@optgroup.option(
    "--exists", "exists", multiple=True, type=click.Path(path_type=Path), help="Met while PATH exists."
)
@optgroup.option(
    "--not-exists",
    "not_exists",
    multiple=True,
    type=click.Path(path_type=Path),
    help="Met while PATH does not exist.",
)
@optgroup.option(
    "--updated",
    "updated",
    multiple=True,
    type=click.Path(path_type=Path),
    help="Met once PATH's modification time or size changes from what it is at startup.",
)
@optgroup.option(
    "--quiet-for",
    "quiet_for",
    multiple=True,
    help="PATH:DURATION. Met once PATH has not been modified for DURATION.",
)
@optgroup.option("--tcp", "tcp", multiple=True, help="HOST:PORT. Met while a TCP connection can be made.")
@optgroup.option("--no-tcp", "no_tcp", multiple=True, help="HOST:PORT. Met while a TCP connection cannot be made.")
@optgroup.option(
    "--http",
    "http",
    multiple=True,
    help="[STATUS,]URL. Met while a GET to URL returns STATUS (default 200).",
)
@optgroup.group("Polling")
@optgroup.option(
    "--any/--all",
    "is_any",
    default=False,
    show_default=True,
    help="Return when any condition is met, or only once all of them are.",
)
@optgroup.option("--interval", default=None, help="How often to check, as a DURATION. Default from config (1s).")
@optgroup.option("--timeout", default=None, help="Give up with exit code 1 after DURATION.")
@optgroup.group("Output")
@optgroup.option(
    "--log-level",
    type=click.Choice([level.value for level in LogLevel], case_sensitive=False),
    default=None,
    help="Console log verbosity. Default from config (INFO).",
)
def cli(**kwargs: Any) -> None:
    """Block until conditions about time, files, TCP ports or URLs hold.

    Conditions are checked in the order time, files, TCP, HTTP. With --all (the
    default) checking stops at the first unmet condition, with --any at the first
    met one.

    \b
    Examples:
      waitfor --tcp localhost:5432
      waitfor --http 200,http://localhost:8000/health --timeout 30s
      waitfor --not-exists /tmp/job.lock --elapsed 10s
      waitfor --any --updated data.json --not-exists data.json
      waitfor --quiet-for build.log:10s --interval 500ms
    """
    opts = WaitforCliOptions(**kwargs)
    config = load_config()
    setup_logging(opts.log_level or config.log_level)

    interval_seconds = parse_duration_to_seconds(opts.interval) if opts.interval else config.default_interval_seconds
    timeout_seconds = parse_duration_to_seconds(opts.timeout) if opts.timeout else None

    try:
        conditions = build_conditions(opts, config)
    except ConditionBuildError as e:
        raise UserInputError(str(e)) from e
    if not conditions:
        raise click.UsageError("Specify at least one condition (see --help).")

    target = combine_conditions(conditions, CombineMode.ANY if opts.is_any else CombineMode.ALL)
    with log_span("Waiting for {}", target.describe()):
        poll_count = wait_with_timeout(target, interval_seconds, timeout_seconds)
    logger.info("Conditions met after {} poll(s)", poll_count)
