import re
from typing import Final

import httpx

from imbue.waitfor.errors import InvalidUrlError
from imbue.waitfor.errors import TargetParseError
from imbue.waitfor.utils.pure import pure

DEFAULT_EXPECTED_HTTP_STATUS: Final[int] = 200

_STATUS_PREFIX_PATTERN: Final[re.Pattern[str]] = re.compile(r"^(\d{3}),(.+)$", re.DOTALL)

_ALLOWED_URL_SCHEMES: Final[frozenset[str]] = frozenset({"http", "https"})


@pure
def parse_host_port(target: str) -> tuple[str, int]:
    """Split a 'HOST:PORT' target into its host and port.

    The last colon separates the port, so bracketed IPv6 literals such as
    '[::1]:8080' work. The port must be between 1 and 65535.
    """
    host, separator, port_text = target.strip().rpartition(":")
    if not separator:
        raise TargetParseError(f"Invalid TCP target {target!r}: expected HOST:PORT")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    if not host:
        raise TargetParseError(f"Invalid TCP target {target!r}: host is empty")
    if not port_text.isdigit():
        raise TargetParseError(f"Invalid TCP target {target!r}: port {port_text!r} is not a number")
    port = int(port_text)
    if not 1 <= port <= 65535:
        raise TargetParseError(f"Invalid TCP target {target!r}: port must be between 1 and 65535")
    return host, port


@pure
def is_valid_host_port(target: str) -> bool:
    try:
        parse_host_port(target)
    except TargetParseError:
        return False
    return True


@pure
def parse_http_target(target: str) -> tuple[int, str]:
    """Split an optional 'STATUS,' prefix from a URL.

    '404,http://localhost/missing' -> (404, 'http://localhost/missing')
    'http://localhost/' -> (200, 'http://localhost/')
    """
    stripped = target.strip()
    match = _STATUS_PREFIX_PATTERN.match(stripped)
    if match is None:
        return DEFAULT_EXPECTED_HTTP_STATUS, stripped
    status = int(match.group(1))
    if not 100 <= status <= 599:
        raise TargetParseError(f"Invalid HTTP target {target!r}: status {status} is not between 100 and 599")
    return status, match.group(2).strip()


def validate_http_url(url: str) -> str:
    """Check that url is an absolute http(s) URL with a host, returning it stripped of whitespace."""
    stripped = url.strip()
    try:
        parsed = httpx.URL(stripped)
    except httpx.InvalidURL as e:
        raise InvalidUrlError(url, str(e)) from e
    if parsed.scheme not in _ALLOWED_URL_SCHEMES:
        raise InvalidUrlError(url, "scheme must be http or https")
    if not parsed.host:
        raise InvalidUrlError(url, "host is missing")
    return stripped
