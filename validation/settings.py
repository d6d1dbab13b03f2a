"""Runtime settings using pydantic-settings with env var and YAML file support.

Env vars (STAFFSYNC_ prefix) take precedence over the YAML settings file,
which takes precedence over defaults. Explicit overrides (CLI arguments)
beat everything. Settings are constructed once per run and passed along;
there is no cached module-level instance.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Literal, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from validation.errors import ConfigurationError

logger = logging.getLogger(__name__)

SETTINGS_FILE_ENV = "STAFFSYNC_SETTINGS_FILE"
_DEFAULT_SETTINGS_FILE = "staff-sync.settings.yml"

_LOG_LEVELS = ("trace", "debug", "info", "warning", "error")


class RuntimeSettings(BaseSettings):
    """StaffSync runtime settings.

    Precedence (highest to lowest):
    1. Explicit keyword arguments (CLI overrides)
    2. STAFFSYNC_-prefixed environment variables
    3. YAML settings file (STAFFSYNC_SETTINGS_FILE or ./staff-sync.settings.yml)
    4. Defaults defined below
    """

    model_config = SettingsConfigDict(
        env_prefix="STAFFSYNC_",
        extra="ignore",
    )

    config_path: str = "config/staff-sync.yml"
    database_path: str = Field(default="data/staff_sync.db", description="SQLite file, or :memory:")
    log_level: str = "info"
    log_format: Literal["json", "text"] = "json"
    log_file: Optional[str] = None

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log_level is one of: trace, debug, info, warning, error."""
        if isinstance(v, str) and v.lower() in _LOG_LEVELS:
            return v.lower()
        raise ValueError(f"log_level must be one of {_LOG_LEVELS}, got: {v}")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Return sources in priority order: init > env > YAML."""
        yaml_file = os.environ.get(SETTINGS_FILE_ENV, _DEFAULT_SETTINGS_FILE)
        if os.path.exists(yaml_file):
            yaml_source = YamlConfigSettingsSource(
                settings_cls, yaml_file=yaml_file, yaml_file_encoding="utf-8"
            )
            return (init_settings, env_settings, yaml_source)
        logger.debug("Settings file %s not found; using env vars only", yaml_file)
        return (init_settings, env_settings)


def load_settings(**overrides: Any) -> RuntimeSettings:
    """Build RuntimeSettings, ignoring overrides that are None.

    Raises:
        ConfigurationError: a setting has an invalid value
    """
    explicit = {k: v for k, v in overrides.items() if v is not None}
    try:
        return RuntimeSettings(**explicit)
    except ValidationError as exc:
        problems = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error.get("loc", ()))
            problems.append(f"STAFFSYNC_{field.upper()}: {error['msg']}")
        raise ConfigurationError("Invalid runtime settings: " + "; ".join(problems)) from exc
