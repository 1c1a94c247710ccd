import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from typing import Final

from loguru import logger

from imbue.waitfor.primitives import LogLevel

# 256-color codes that read well on both light and dark backgrounds.
WARNING_COLOR: Final[str] = "\x1b[1;38;5;178m"
ERROR_COLOR: Final[str] = "\x1b[1;38;5;196m"
DEBUG_COLOR: Final[str] = "\x1b[38;5;33m"
TRACE_COLOR: Final[str] = "\x1b[38;5;99m"
RESET_COLOR: Final[str] = "\x1b[0m"

_LOGURU_LEVEL_BY_LOG_LEVEL: Final[dict[LogLevel, str]] = {
    LogLevel.TRACE: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARN: "WARNING",
    LogLevel.ERROR: "ERROR",
}


def _dynamic_stderr_sink(message: Any) -> None:
    """Loguru sink that always writes to the current sys.stderr."""
    sys.stderr.write(str(message))
    sys.stderr.flush()


def _format_user_message(record: Any) -> str:
    """Format user-facing log messages, adding colored prefixes for warnings and errors.

    The record parameter is a loguru Record TypedDict, but the type is only available
    in type stubs so we use Any here.
    """
    level_name = record["level"].name
    if level_name == "WARNING":
        return f"{WARNING_COLOR}WARNING: {{message}}{RESET_COLOR}\n"
    if level_name == "ERROR":
        return f"{ERROR_COLOR}ERROR: {{message}}{RESET_COLOR}\n"
    if level_name == "DEBUG":
        return f"{DEBUG_COLOR}{{message}}{RESET_COLOR}\n"
    if level_name == "TRACE":
        return f"{TRACE_COLOR}{{message}}{RESET_COLOR}\n"
    return "{message}\n"


def setup_logging(level: LogLevel = LogLevel.INFO) -> None:
    """Replace loguru's default handler with a single stderr handler at the given level.

    LogLevel.NONE silences all output.
    """
    logger.remove()
    if level == LogLevel.NONE:
        return
    logger.add(
        _dynamic_stderr_sink,
        level=_LOGURU_LEVEL_BY_LOG_LEVEL[level],
        format=_format_user_message,
        colorize=False,
    )


@contextmanager
def log_span(message: str, *args: Any, **context: Any) -> Iterator[None]:
    """Log a debug message on entry and a trace message with timing on exit.

    Keyword arguments are passed to logger.contextualize so that all log messages
    within the span carry them as extra fields.
    """
    with logger.contextualize(**context):
        logger.debug(message, *args)
        start_time = time.monotonic()
        try:
            yield
        except BaseException:
            elapsed = time.monotonic() - start_time
            logger.trace(message + " [failed after {:.5f} sec]", *args, elapsed)
            raise
        else:
            elapsed = time.monotonic() - start_time
            logger.trace(message + " [done in {:.5f} sec]", *args, elapsed)
