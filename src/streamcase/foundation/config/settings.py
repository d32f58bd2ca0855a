"""Environment-based configuration using pydantic-settings.

Provides type-safe, validated configuration from environment variables
with sensible defaults. Supports .env files and nested configuration.

Example:
    >>> from streamcase.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.stream.control_delay
    0.1
    >>> settings.logging.level
    'INFO'

    # Or with environment variables:
    # STREAMCASE_STREAM_DEFAULT_TIMEOUT=2.5
    # STREAMCASE_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import (
    Field,
    NonNegativeFloat,
    PositiveFloat,
    PositiveInt,
    computed_field,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STREAMCASE_LOG_",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"
    colors: bool | None = Field(default=None, description="Force console colors (None = auto-detect)")

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class StreamSettings(BaseSettings):
    """Defaults applied when a combinator argument is omitted."""

    model_config = SettingsConfigDict(
        env_prefix="STREAMCASE_STREAM_",
        extra="ignore",
    )

    default_delay: NonNegativeFloat = Field(default=0.0, description="from_array pacing in seconds")
    default_timeout: PositiveFloat = Field(default=5.0, description="with_timeout deadline in seconds")
    control_delay: NonNegativeFloat = Field(default=0.1, description="ControllableStream pause between chunks")
    chunk_size: PositiveInt = Field(default=1, description="ControllableStream items per chunk")
    merge_policy: Literal["race", "round_robin"] = "race"
    error_mode: Literal["propagate", "resilient"] = "propagate"
    collect_limit: PositiveInt | None = Field(
        default=None,
        description="Max items collect() accepts before raising UnboundedStreamError",
    )


class StreamcaseSettings(BaseSettings):
    """Root settings for streamcase.

    Loads configuration from environment variables with STREAMCASE_ prefix.
    Supports nested configuration and .env files.

    Example environment variables:
        STREAMCASE_DEBUG=true
        STREAMCASE_LOG_FORMAT=json
        STREAMCASE_STREAM_MERGE_POLICY=round_robin
    """

    model_config = SettingsConfigDict(
        env_prefix="STREAMCASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    debug: bool = Field(default=False, description="Enable debug mode")
    environment: Literal["development", "staging", "production"] = "development"

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    stream: StreamSettings = Field(default_factory=StreamSettings)

    @field_validator("environment", mode="before")
    @classmethod
    def _normalize_env(cls, v: str) -> str:
        """Normalize environment name to lowercase."""
        return v.lower() if isinstance(v, str) else v

    @computed_field
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> StreamcaseSettings:
    """Get the global settings instance (cached)."""
    return StreamcaseSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing).

    After calling this, the next get_settings() call will
    reload configuration from environment.
    """
    get_settings.cache_clear()
