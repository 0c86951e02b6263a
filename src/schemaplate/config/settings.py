"""Runtime settings for schemaplate."""

import os
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field

ENV_PREFIX = "SCHEMAPLATE_"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class HttpSettings(BaseModel):
    """Configuration for outbound HTTP requests."""

    timeout: float = Field(
        default=30.0, gt=0, le=600, description="Total request timeout in seconds"
    )
    verify_ssl: bool = Field(default=True, description="Verify TLS certificates")


class Settings(BaseModel):
    """Top level settings."""

    http: HttpSettings = Field(default_factory=HttpSettings)
    log_level: LogLevel = Field(default="WARNING", description="Logging level for the CLI")


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    """Build settings from ``SCHEMAPLATE_*`` environment variables.

    Recognized variables:
    - SCHEMAPLATE_HTTP_TIMEOUT - request timeout in seconds
    - SCHEMAPLATE_HTTP_VERIFY_SSL - "false" to skip certificate checks
    - SCHEMAPLATE_LOG_LEVEL - DEBUG, INFO, WARNING, ERROR or CRITICAL
    """
    http = {}
    timeout = os.environ.get(f"{ENV_PREFIX}HTTP_TIMEOUT")
    if timeout is not None:
        http["timeout"] = float(timeout)
    verify_ssl = os.environ.get(f"{ENV_PREFIX}HTTP_VERIFY_SSL")
    if verify_ssl is not None:
        http["verify_ssl"] = _env_bool(verify_ssl)

    data = {"http": http}
    log_level = os.environ.get(f"{ENV_PREFIX}LOG_LEVEL")
    if log_level is not None:
        data["log_level"] = log_level.upper()

    return Settings.model_validate(data)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings loaded once from the environment."""
    return load_settings()
