from typing import Any
from typing import Final

from pydantic import Field
from pydantic import field_validator

from imbue.waitfor.primitives import FrozenModel
from imbue.waitfor.primitives import LogLevel
from imbue.waitfor.primitives import NonNegativeSeconds
from imbue.waitfor.primitives import PositiveSeconds
from imbue.waitfor.probes import DEFAULT_HTTP_REQUEST_TIMEOUT_SECONDS
from imbue.waitfor.probes import DEFAULT_TCP_CONNECT_TIMEOUT_SECONDS
from imbue.waitfor.utils.duration import parse_duration_to_seconds

DEFAULT_INTERVAL_SECONDS: Final[float] = 1.0

CONFIG_DIRNAME: Final[str] = ".waitfor"

SETTINGS_FILENAME: Final[str] = "settings.toml"


class WaitforConfig(FrozenModel):
    """Settings for the waitfor command line tool.

    Duration fields accept either a number of seconds or a duration string such as '500ms' or '1m30s'.
    """

    default_interval_seconds: NonNegativeSeconds = Field(
        default=NonNegativeSeconds(DEFAULT_INTERVAL_SECONDS),
        description="How often conditions are checked when --interval is not given",
    )
    tcp_connect_timeout_seconds: PositiveSeconds = Field(
        default=PositiveSeconds(DEFAULT_TCP_CONNECT_TIMEOUT_SECONDS),
        description="Timeout for each TCP connection attempt",
    )
    http_request_timeout_seconds: PositiveSeconds = Field(
        default=PositiveSeconds(DEFAULT_HTTP_REQUEST_TIMEOUT_SECONDS),
        description="Timeout for each HTTP request",
    )
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Console log verbosity")

    @field_validator(
        "default_interval_seconds",
        "tcp_connect_timeout_seconds",
        "http_request_timeout_seconds",
        mode="before",
    )
    @classmethod
    def _parse_duration_strings(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_duration_to_seconds(value)
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value
