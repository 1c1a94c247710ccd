import asyncio
import time
from typing import Protocol

from loguru import logger

from imbue.waitfor.errors import InvalidIntervalError


class Pollable(Protocol):
    """Anything that can be asked, repeatedly, whether it currently holds."""

    def condition_met(self) -> bool: ...


def _remaining_sleep(interval_seconds: float, check_started: float) -> float:
    """Sleep time left in this poll once the check itself has used up part of the interval."""
    return interval_seconds - (time.monotonic() - check_started)


def wait_for_condition(condition: Pollable, interval_seconds: float) -> int:
    """Block the calling thread until condition is met, checking roughly every interval_seconds.

    The condition is checked before any sleep, so a condition that already holds
    returns immediately. There is no built-in deadline: to give up after some time,
    compose the condition with an elapsed-time condition.

    Returns the number of polls performed.
    """
    if interval_seconds < 0:
        raise InvalidIntervalError(interval_seconds)

    start_time = time.monotonic()
    poll_count = 0
    logger.debug("Waiting for condition, polling every {} sec", interval_seconds)
    while True:
        check_started = time.monotonic()
        poll_count += 1
        if condition.condition_met():
            logger.debug(
                "Condition met after {} poll(s) [done in {:.5f} sec]", poll_count, time.monotonic() - start_time
            )
            return poll_count
        logger.trace("Poll {}: condition not met", poll_count)
        remaining = _remaining_sleep(interval_seconds, check_started)
        if remaining > 0:
            time.sleep(remaining)


async def wait_for_condition_async(condition: Pollable, interval_seconds: float) -> int:
    """Asyncio counterpart of wait_for_condition.

    Each check runs in a worker thread so that slow probes (TCP connects, HTTP
    requests) do not stall the event loop, and the pause between checks is an
    asyncio sleep. The check-then-maybe-sleep ordering is the same.
    """
    if interval_seconds < 0:
        raise InvalidIntervalError(interval_seconds)

    start_time = time.monotonic()
    poll_count = 0
    logger.debug("Waiting asynchronously for condition, polling every {} sec", interval_seconds)
    while True:
        check_started = time.monotonic()
        poll_count += 1
        if await asyncio.to_thread(condition.condition_met):
            logger.debug(
                "Condition met after {} poll(s) [done in {:.5f} sec]", poll_count, time.monotonic() - start_time
            )
            return poll_count
        logger.trace("Poll {}: condition not met", poll_count)
        remaining = _remaining_sleep(interval_seconds, check_started)
        if remaining > 0:
            await asyncio.sleep(remaining)
