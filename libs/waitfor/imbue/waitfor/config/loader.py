import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from typing import Final

from loguru import logger
from pydantic import ValidationError

from imbue.waitfor.config.data_types import CONFIG_DIRNAME
from imbue.waitfor.config.data_types import SETTINGS_FILENAME
from imbue.waitfor.config.data_types import WaitforConfig
from imbue.waitfor.errors import ConfigNotFoundError
from imbue.waitfor.errors import ConfigParseError
from imbue.waitfor.errors import UserInputError

# Overrides the directory holding the user config (default: ~/.waitfor)
WAITFOR_HOME_ENV_VAR: Final[str] = "WAITFOR_HOME"

_ENV_VAR_TO_FIELD: Final[dict[str, str]] = {
    "WAITFOR_INTERVAL": "default_interval_seconds",
    "WAITFOR_TCP_TIMEOUT": "tcp_connect_timeout_seconds",
    "WAITFOR_HTTP_TIMEOUT": "http_request_timeout_seconds",
    "WAITFOR_LOG_LEVEL": "log_level",
}


def get_user_config_path(environ: Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    home = env.get(WAITFOR_HOME_ENV_VAR)
    base_dir = Path(home) if home else Path("~") / CONFIG_DIRNAME
    return base_dir.expanduser() / SETTINGS_FILENAME


def get_project_config_path(context_dir: Path) -> Path:
    return context_dir / CONFIG_DIRNAME / SETTINGS_FILENAME


def load_config(
    context_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> WaitforConfig:
    """Load and merge configuration from all sources.

    Precedence (lowest to highest):
    1. Built-in defaults
    2. User config (~/.waitfor/settings.toml, or $WAITFOR_HOME/settings.toml)
    3. Project config (.waitfor/settings.toml in context_dir, default: the working directory)
    4. Environment variables (WAITFOR_INTERVAL, WAITFOR_TCP_TIMEOUT, WAITFOR_HTTP_TIMEOUT, WAITFOR_LOG_LEVEL)
    5. CLI arguments (handled by caller)
    """
    env = os.environ if environ is None else environ
    project_dir = Path.cwd() if context_dir is None else context_dir

    merged: dict[str, Any] = {}
    for config_path in (get_user_config_path(env), get_project_config_path(project_dir)):
        try:
            raw = _load_toml(config_path)
        except ConfigNotFoundError:
            logger.trace("No config at {}", config_path)
            continue
        logger.debug("Loaded config from {}", config_path)
        merged.update(_parse_config_layer(raw, str(config_path)))
    merged.update(_read_env_overrides(env))

    try:
        return WaitforConfig(**merged)
    except (ValidationError, UserInputError) as e:
        raise ConfigParseError(f"Invalid configuration: {e}") from e


def _load_toml(path: Path) -> dict[str, Any]:
    """Load and parse a TOML file."""
    if not path.exists():
        raise ConfigNotFoundError(f"Config file not found: {path}")

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(f"Failed to parse {path}: {e}") from e


def _parse_config_layer(raw: dict[str, Any], context: str) -> dict[str, Any]:
    """Reject keys that WaitforConfig does not define, so typos fail loudly instead of being ignored."""
    known_fields = set(WaitforConfig.model_fields.keys())
    unknown = set(raw.keys()) - known_fields
    if unknown:
        raise ConfigParseError(f"Unknown fields in {context}: {sorted(unknown)}. Valid fields: {sorted(known_fields)}")
    return dict(raw)


def _read_env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    return {field_name: env[env_var] for env_var, field_name in _ENV_VAR_TO_FIELD.items() if env.get(env_var)}
