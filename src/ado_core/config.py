"""Server configuration.

Loaded from ADO_* environment variables, falling back to the JSON file
config/azuredevops.json when the environment does not carry both the
organization and the access token.
"""
import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional, Union

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("ado-core.config")

DEFAULT_CONFIG_PATH = Path("config") / "azuredevops.json"


class ConfigurationError(Exception):
    """Raised when no usable configuration can be loaded."""


class Settings(BaseSettings):
    """Azure DevOps connection settings for one running instance."""

    organization: str = Field(..., min_length=1)
    project: Optional[str] = None
    pat: SecretStr
    api_url: str = "https://dev.azure.com"
    api_version: str = "7.0"
    auth_scheme: Literal["basic", "bearer"] = "basic"
    max_retries: int = Field(3, ge=1, validation_alias="ADO_API_MAX_RETRIES")
    delay_ms: int = Field(1000, ge=0, validation_alias="ADO_API_DELAY_MS")
    backoff_factor: float = Field(2.0, ge=1.0, validation_alias="ADO_API_BACKOFF_FACTOR")
    timeout_seconds: float = Field(30.0, gt=0)
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="ADO_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("api_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("project")
    @classmethod
    def blank_project_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, value: str) -> str:
        return value.upper()

    def redacted(self) -> dict:
        """Settings safe to log (token masked)."""
        data = self.model_dump()
        data["pat"] = "***"
        return data


def _settings_from_file(path: Path) -> Settings:
    """Read the nested JSON layout used by config/azuredevops.json."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Error parsing config file {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Error parsing config file {path}: expected a JSON object")

    api = raw.get("api") or {}
    retry = api.get("retry") or {}
    values = {
        "organization": raw.get("organization"),
        "project": raw.get("project"),
        "pat": (raw.get("credentials") or {}).get("pat"),
        "api_url": api.get("baseUrl"),
        "api_version": api.get("version"),
        "max_retries": retry.get("maxRetries"),
        "delay_ms": retry.get("delayMs"),
        "backoff_factor": retry.get("backoffFactor"),
    }
    # Unset keys keep their defaults; init kwargs override the environment
    return Settings(**{k: v for k, v in values.items() if v is not None})


def load_settings(config_path: Optional[Union[str, Path]] = None) -> Settings:
    """Load settings from the environment or the config file.

    Raises:
        ConfigurationError: If neither source provides a valid configuration
    """
    try:
        if os.getenv("ADO_ORGANIZATION") and os.getenv("ADO_PAT"):
            logger.debug("Loading configuration from environment variables")
            return Settings()

        path = Path(config_path) if config_path else Path.cwd() / DEFAULT_CONFIG_PATH
        if not path.exists():
            raise ConfigurationError(
                "No configuration found. Please set environment variables "
                "(ADO_ORGANIZATION, ADO_PROJECT, ADO_PAT) or create config/azuredevops.json"
            )
        logger.debug(f"Loading configuration from {path}")
        return _settings_from_file(path)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "settings" for err in e.errors())
        raise ConfigurationError(f"Invalid configuration: {fields}") from e


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, loaded once."""
    return load_settings()
