"""Configuration settings for mailrules using pydantic-settings."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, SecretStr, field_validator
from pydantic_core import ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from mailrules.defaults import (
    DEFAULT_FETCH_BUFFER_SIZE,
    DEFAULT_FLAG,
    DEFAULT_IDLE_POLL_INTERVAL,
    DEFAULT_MAILBOX,
    DEFAULT_STREAM_TIMEOUT,
)
from mailrules.exceptions import ConfigError
from mailrules.models import IMAPConfig


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Settings source that loads configuration from a YAML file.

    Looks for config file in the following order:
    1. MAILRULES_CONFIG_FILE environment variable
    2. ./mailrules.yaml (current directory)
    3. $XDG_CONFIG_HOME/mailrules/config.yaml (defaults to ~/.config)
    """

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Get field value from YAML config."""
        yaml_data = self._load_yaml_config()
        field_value = yaml_data.get(field_name)
        return field_value, field_name, False

    def __call__(self) -> dict[str, Any]:
        """Return all settings from YAML config."""
        return self._load_yaml_config()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load and cache YAML config file."""
        if not hasattr(self, "_yaml_data"):
            self._yaml_data = self._read_yaml_file()
        return self._yaml_data

    def _read_yaml_file(self) -> dict[str, Any]:
        """Read YAML config from the first config file that exists."""
        xdg_config = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
        config_paths = [
            os.environ.get("MAILRULES_CONFIG_FILE"),
            Path.cwd() / "mailrules.yaml",
            Path(xdg_config) / "mailrules" / "config.yaml",
        ]

        for path in config_paths:
            if not path:
                continue
            path_obj = Path(path)
            if not path_obj.exists():
                continue
            try:
                with open(path_obj) as f:
                    data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                mark = getattr(e, "problem_mark", None)
                raise ConfigError(
                    f"Invalid YAML syntax: {getattr(e, 'problem', None) or e}",
                    file_path=str(path_obj),
                    line=mark.line + 1 if mark else None,
                    col=mark.column + 1 if mark else None,
                ) from e
            except OSError as e:
                raise ConfigError(f"Cannot read config file: {e}", file_path=str(path_obj)) from e
            if data is None:
                return {}
            if not isinstance(data, dict):
                raise ConfigError("Top level must be a mapping", file_path=str(path_obj))
            return data

        return {}


def _parse_validation_error(error: ValidationError) -> str:
    """Convert Pydantic ValidationError to user-friendly message."""
    for err in error.errors():
        loc = err.get("loc", ())
        if not loc:
            continue
        field_name = ".".join(str(part) for part in loc)
        if err.get("type") == "missing":
            return f"Missing required setting '{field_name}'"
        return f"Invalid value for '{field_name}': {err.get('msg', '')}"
    return str(error)


class Settings(BaseSettings):
    """Application settings loaded from environment variables with MAILRULES_ prefix.

    YAML configuration example:
        host: imap.example.com
        username: me@example.com
        rules_file: ~/.config/mailrules/rules
        mailbox: INBOX

    The password is best supplied via MAILRULES_PASSWORD.
    """

    model_config = SettingsConfigDict(env_prefix="MAILRULES_")

    # IMAP connection
    host: str | None = None
    port: int = Field(default=993, ge=1, le=65535)
    username: str | None = None
    password: SecretStr | None = None
    ssl: bool = True

    # Rules and the mailbox they apply to
    rules_file: Path | None = None
    mailbox: str = DEFAULT_MAILBOX
    default_flag: str = Field(default=DEFAULT_FLAG, min_length=1)

    # Engine tuning
    fetch_buffer_size: int = DEFAULT_FETCH_BUFFER_SIZE
    stream_timeout: float = DEFAULT_STREAM_TIMEOUT
    idle_poll_interval: float = DEFAULT_IDLE_POLL_INTERVAL

    @field_validator("fetch_buffer_size")
    @classmethod
    def _validate_buffer_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("fetch_buffer_size must be positive")
        return v

    @field_validator("stream_timeout", "idle_poll_interval")
    @classmethod
    def _validate_positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be a positive number of seconds")
        return v

    @field_validator("rules_file")
    @classmethod
    def _expand_rules_file(cls, v: Path | None) -> Path | None:
        return v.expanduser() if v is not None else None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources to include YAML config."""
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls),
            dotenv_settings,
            file_secret_settings,
        )

    def imap_config(self) -> IMAPConfig:
        """Build the IMAP connection config.

        Raises:
            ConfigError: If host, username or password is not set.
        """
        missing = [
            name for name in ("host", "username", "password") if getattr(self, name) is None
        ]
        if missing:
            raise ConfigError(f"Missing required setting(s): {', '.join(missing)}")
        assert self.host is not None and self.username is not None and self.password is not None
        return IMAPConfig(
            host=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            ssl=self.ssl,
        )


def get_settings_eager(**overrides: Any) -> Settings:
    """Load settings with eager validation at startup.

    Args:
        overrides: Values taking precedence over every other source
            (command line flags). ``None`` values are ignored.

    Raises:
        ConfigError: If configuration is invalid with user-friendly message.
    """
    init = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**init)
    except ValidationError as e:
        raise ConfigError(_parse_validation_error(e)) from e
