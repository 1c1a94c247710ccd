from collections.abc import Callable
from typing import TypeVar

_F = TypeVar("_F", bound=Callable[..., object])


def pure(func: _F) -> _F:
    """Mark a function as pure: no I/O, no side effects, same output for the same inputs.

    Advisory only, nothing is enforced at runtime. Probes that touch the clock,
    the filesystem or the network must never carry this marker.
    """
    return func
