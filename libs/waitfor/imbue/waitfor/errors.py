from click import ClickException


class BaseWaitforError(Exception):
    """Base exception for all waitfor errors."""


class WaitforError(ClickException, BaseWaitforError):
    """Base exception for all user-facing waitfor errors.

    Subclasses can provide a user_help_text attribute with additional context
    that the CLI appends to the message.
    """

    user_help_text: str | None = None

    def format_message(self) -> str:
        if self.user_help_text:
            return str(self) + "  [" + self.user_help_text + "]"
        return str(self)


class UserInputError(WaitforError):
    """Raised when user input is invalid."""

    user_help_text = "Check the command syntax with 'waitfor --help'."


class TargetParseError(WaitforError, ValueError):
    """Raised when parsing a target string (HOST:PORT, [STATUS,]URL, ...) fails."""


class ConditionBuildError(BaseWaitforError, ValueError):
    """Raised when a condition cannot be constructed from the given parameters.

    This always indicates a programming or configuration mistake, so it is raised
    before any polling begins.
    """


class InvalidUrlError(ConditionBuildError):
    """Raised when an HTTP condition is given a URL that cannot be requested."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid URL {url!r}: {reason}")


class InvalidHostError(ConditionBuildError):
    """Raised when a TCP condition is given an unusable host."""


class InvalidIntervalError(BaseWaitforError, ValueError):
    """Raised when a poll interval is negative."""

    def __init__(self, interval_seconds: float) -> None:
        self.interval_seconds = interval_seconds
        super().__init__(f"Poll interval must be >= 0 seconds, got {interval_seconds}")


class WaitTimeoutError(WaitforError):
    """Raised by the CLI when its --timeout deadline is reached before the conditions are met."""


class ConfigError(WaitforError):
    """Base class for configuration errors."""


class ConfigNotFoundError(ConfigError):
    """Raised when a config file does not exist."""


class ConfigParseError(ConfigError):
    """Raised when a config file cannot be parsed."""

    user_help_text = "Valid keys are documented in 'waitfor --help'."
