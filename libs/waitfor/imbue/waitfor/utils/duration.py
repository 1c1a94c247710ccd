import re
from typing import Final

from imbue.waitfor.errors import UserInputError
from imbue.waitfor.utils.pure import pure

_NUMBER: Final[str] = r"(\d+(?:\.\d+)?)"

_PLAIN_SECONDS_PATTERN: Final[re.Pattern[str]] = re.compile(rf"^{_NUMBER}$")

# Units must appear in descending order. 'm(?!s)' keeps minutes from swallowing the 'm' of 'ms'.
_DURATION_PATTERN: Final[re.Pattern[str]] = re.compile(
    rf"(?:{_NUMBER}\s*d)?\s*(?:{_NUMBER}\s*h)?\s*(?:{_NUMBER}\s*m(?!s))?\s*(?:{_NUMBER}\s*s)?\s*(?:{_NUMBER}\s*ms)?$",
    re.IGNORECASE,
)

_UNIT_SECONDS: Final[tuple[float, ...]] = (86400.0, 3600.0, 60.0, 1.0, 0.001)


@pure
def parse_duration_to_seconds(duration_str: str) -> float:
    """Parse a human-readable duration string into seconds.

    Supports plain numbers (treated as seconds, fractions allowed) and combinations of
    days (d), hours (h), minutes (m), seconds (s) and milliseconds (ms).
    Examples: '300', '1.5', '3h10m', '1m30s', '250ms', '1d12h'.
    """
    stripped = duration_str.strip()
    if not stripped:
        raise UserInputError(f"Invalid duration: '{duration_str}' (empty string)")

    if _PLAIN_SECONDS_PATTERN.match(stripped):
        total_seconds = float(stripped)
    else:
        match = _DURATION_PATTERN.match(stripped)
        if match is None or match.group(0) == "":
            raise UserInputError(
                f"Invalid duration: '{duration_str}'. Expected format like '300', '1.5', '3h10m', '90s', '250ms'."
            )
        total_seconds = sum(
            float(value) * unit_seconds for value, unit_seconds in zip(match.groups(), _UNIT_SECONDS) if value
        )

    if total_seconds == 0.0:
        raise UserInputError(f"Invalid duration: '{duration_str}'. Duration must be greater than zero.")

    return total_seconds
