"""Settings loading: YAML config file plus ICSNOTES_* environment variables."""

import logging
import os
from pathlib import Path
from typing import Any, Optional, Union
from urllib.parse import urlparse

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from .exceptions import ConfigError
from .models import FeedSource

logger = logging.getLogger(__name__)

ENV_PREFIX = "ICSNOTES_"
CONFIG_ENV = "ICSNOTES_CONFIG"
DEFAULT_CONFIG_FILE = Path("~/.config/icsnotes/config.yaml")

MIN_FETCH_CONCURRENCY = 1
MAX_FETCH_CONCURRENCY = 5

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class IcsNotesSettings(BaseSettings):
    """Application settings with environment variable support."""

    # Feeds and local notes
    feeds: list[FeedSource] = Field(default_factory=list, description="Remote iCalendar feeds")
    notes_folder: Optional[Path] = Field(default=None, description="Calendar notes folder")
    default_timezone: str = Field(
        default="UTC", description="Timezone for all-day and floating times"
    )

    # Expansion
    max_iterations: int = Field(default=1000, ge=1, description="Recurrence candidate bound")

    # Cache
    cache_ttl_seconds: int = Field(default=300, ge=1, description="Feed cache TTL (5 minutes)")
    failure_retry_seconds: int = Field(
        default=60, ge=0, description="Wait after a failed refresh before retrying"
    )

    # Network and retry
    fetch_concurrency: int = Field(default=2, description="Feeds refreshed in parallel")
    request_timeout: int = Field(default=30, ge=1, description="HTTP request timeout in seconds")
    max_retries: int = Field(default=2, ge=0, description="Maximum retry attempts")
    retry_backoff_factor: float = Field(default=1.5, gt=0, description="Exponential backoff factor")

    log_level: str = Field(default="INFO", description="Root log level")

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment variables override values read from the YAML file
        return env_settings, init_settings, file_secret_settings

    @field_validator("feeds", mode="before")
    @classmethod
    def _expand_url_shorthand(cls, value: Any) -> Any:
        """Accept bare URLs in the feeds list, naming them after their host."""
        if not isinstance(value, list):
            return value
        feeds = []
        for item in value:
            if isinstance(item, str):
                feeds.append({"name": urlparse(item).hostname or item, "url": item})
            else:
                feeds.append(item)
        return feeds

    @field_validator("fetch_concurrency")
    @classmethod
    def _bound_concurrency(cls, value: int) -> int:
        return max(MIN_FETCH_CONCURRENCY, min(value, MAX_FETCH_CONCURRENCY))

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return level


def _find_config_file(config_path: Union[str, Path, None]) -> tuple[Optional[Path], bool]:
    """Return the config file to read and whether it was asked for explicitly."""
    if config_path:
        return Path(config_path).expanduser(), True
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        return Path(env_path).expanduser(), True
    default_path = DEFAULT_CONFIG_FILE.expanduser()
    return (default_path, False) if default_path.is_file() else (None, False)


def _read_yaml(path: Path) -> dict[str, Any]:
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def load_settings(config_path: Union[str, Path, None] = None, **overrides: Any) -> IcsNotesSettings:
    """Load settings from YAML and the environment.

    The file is the explicit ``config_path``, else ``$ICSNOTES_CONFIG``, else
    ``~/.config/icsnotes/config.yaml`` when present. ``overrides`` replace file
    values, and environment variables win over both.

    Args:
        config_path: Optional YAML config file
        **overrides: Field values taking precedence over the file

    Returns:
        Validated settings

    Raises:
        ConfigError: If an explicitly requested file is missing or invalid, or
            the merged values fail validation
    """
    path, explicit = _find_config_file(config_path)
    data: dict[str, Any] = {}

    if path is not None:
        try:
            data = _read_yaml(path)
            logger.debug("Loaded configuration from %s", path)
        except (OSError, yaml.YAMLError) as e:
            if explicit:
                raise ConfigError(f"Could not load config file {path}: {e}") from e
            logger.warning("Could not load YAML config from %s: %s", path, e)

    data.update(overrides)
    try:
        return IcsNotesSettings(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
