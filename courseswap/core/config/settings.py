# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for CourseSwap.
Settings are loaded from environment variables with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from courseswap.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.swap.request_ttl_days)
    30
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DB_PASSWORD = "courseswap_password"


class DatabaseSettings(BaseSettings):
    """Database configuration for the swap registry.

    The database stores swap requests and swap matches, plus the
    profile, course, time slot and enrollment tables owned by the
    surrounding application.

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        url_override: Full connection URL, used verbatim when set.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
        populate_by_name=True,
    )

    user: str = "courseswap"
    password: SecretStr = SecretStr(DEFAULT_DB_PASSWORD)
    host: str = "localhost"
    port: int = 5432
    database: str = "courseswap"
    url_override: str | None = Field(
        default=None,
        validation_alias="DATABASE_URL",
    )
    pool_size: int = 10
    max_overflow: int = 20

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        if self.url_override:
            return self.url_override
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"

    @property
    def uses_sqlite(self) -> bool:
        """Check whether the configured URL points at SQLite."""
        return self.url.startswith("sqlite")


class RedisSettings(BaseSettings):
    """Redis configuration for the Dramatiq broker.

    Attributes:
        host: Redis server host.
        port: Redis server port.
        password: Redis password.
        database: Redis database number.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    host: str = "localhost"
    port: int = 6379
    password: SecretStr | None = None
    database: int = 0

    @property
    def url(self) -> str:
        """Build the Redis connection URL."""
        if self.password is None:
            return f"redis://{self.host}:{self.port}/{self.database}"
        pwd = self.password.get_secret_value()
        return f"redis://:{pwd}@{self.host}:{self.port}/{self.database}"


class SwapSettings(BaseSettings):
    """Swap engine configuration.

    Attributes:
        request_ttl_days: Days before an unmatched request expires.
        default_priority: Priority used when the requester gives none.
        min_priority: Lowest accepted priority.
        max_priority: Highest accepted priority.
        notes_max_length: Maximum length of the free-text note.
        sweep_enabled: Whether the periodic sweep is scheduled.
        sweep_interval_minutes: Minutes between sweeps.
        page_size_max: Upper bound for list page sizes.
    """

    model_config = SettingsConfigDict(
        env_prefix="SWAP_",
        extra="ignore",
    )

    request_ttl_days: int = Field(default=30, ge=1)
    default_priority: int = 1
    min_priority: int = 1
    max_priority: int = 5
    notes_max_length: int = 500
    sweep_enabled: bool = True
    sweep_interval_minutes: int = Field(default=60, ge=1)
    page_size_max: int = 100

    @model_validator(mode="after")
    def validate_priority_bounds(self) -> Self:
        """Ensure the default priority sits inside the accepted range."""
        if self.min_priority > self.max_priority:
            raise ValueError("SWAP_MIN_PRIORITY must not exceed SWAP_MAX_PRIORITY")
        if not self.min_priority <= self.default_priority <= self.max_priority:
            raise ValueError("SWAP_DEFAULT_PRIORITY must be within the priority bounds")
        return self


class WorkerSettings(BaseSettings):
    """Background worker configuration.

    Attributes:
        processes: Number of worker processes.
        threads: Number of threads per process.
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKER_",
        extra="ignore",
    )

    processes: int = 2
    threads: int = 4


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        database: Database settings.
        redis: Redis settings.
        swap: Swap engine settings.
        worker: Background worker settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    # Subsettings - loaded with their own env prefixes
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    swap: SwapSettings = Field(default_factory=SwapSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with insecure defaults.
        """
        if self.environment == "production":
            if (
                self.database.url_override is None
                and self.database.password.get_secret_value() == DEFAULT_DB_PASSWORD
            ):
                raise ValueError(
                    "Database password must be changed from default in production. "
                    "Set DB_PASSWORD environment variable."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
