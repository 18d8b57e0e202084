# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for the
assignment sync service. Settings are loaded from environment variables
with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from src.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> settings.sync.org_chunk_size
    100
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database configuration for the backing store.

    Stores org units, campaigns, users, memberships and per-user
    assignments.

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        url_override: Full connection URL; takes precedence over components.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    user: str = "assignments"
    password: SecretStr = SecretStr("assignments_password")
    host: str = "localhost"
    port: int = 5432
    database: str = "assignments"
    url_override: str | None = None
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
    def is_sqlite(self) -> bool:
        """Check if the configured URL points at SQLite."""
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
    password: SecretStr = SecretStr("")
    database: int = 0

    @property
    def url(self) -> str:
        """Build the Redis connection URL."""
        pwd = self.password.get_secret_value()
        if pwd:
            return f"redis://:{pwd}@{self.host}:{self.port}/{self.database}"
        return f"redis://{self.host}:{self.port}/{self.database}"


class SyncSettings(BaseSettings):
    """Campaign-to-assignment synchronization tuning.

    Attributes:
        org_chunk_size: Number of org units per unit-group chunk. Bounds the
            read phase of every atomic unit.
        max_transaction_ops: Maximum number of users mutated inside one
            transaction. Larger user sets are sub-chunked.
        rollback_batch_size: Maximum number of users compensated per
            rollback transaction.
        update_failure_policy: What happens to a campaign definition when the
            assignment sync of an update fails. ``keep_definition`` leaves the
            update committed and relies on the change trigger to catch up;
            ``revert_definition`` restores the previous definition and fails.
        participant_user_types: User types whose membership changes trigger
            assignment sync.
        operation_timeout_seconds: Wall-clock budget for one sync operation.
        max_index_entries: Largest allowed size of a user's campaign index.
        log_sample_size: Number of ids included in log summaries.
    """

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        extra="ignore",
    )

    org_chunk_size: int = Field(default=100, ge=1)
    max_transaction_ops: int = Field(default=500, ge=1)
    rollback_batch_size: int = Field(default=500, ge=1)
    update_failure_policy: Literal["keep_definition", "revert_definition"] = "keep_definition"
    participant_user_types: list[str] = Field(default_factory=lambda: ["student"])
    operation_timeout_seconds: float = 540.0
    max_index_entries: int = 20000
    log_sample_size: int = 3


class WorkerSettings(BaseSettings):
    """Background worker configuration for the change-triggered path.

    Attributes:
        test_mode: Use an in-memory stub broker instead of Redis.
        max_retries: Retries for a failed trigger actor.
        time_limit_ms: Dramatiq time limit for a trigger actor.
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKER_",
        extra="ignore",
    )

    test_mode: bool = False
    max_retries: int = 3
    time_limit_ms: int = 540_000


class APISettings(BaseSettings):
    """API server configuration.

    Attributes:
        title: OpenAPI title.
        prefix: Prefix for versioned routes.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        extra="ignore",
    )

    title: str = "Assignment Sync API"
    prefix: str = "/api/v1"


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, test, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        db: Database settings.
        redis: Redis settings.
        sync: Assignment sync settings.
        worker: Background worker settings.
        api: API server settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "test", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)
    api: APISettings = Field(default_factory=APISettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with insecure defaults.
        """
        if self.environment == "production":
            if self.db.password.get_secret_value() == "assignments_password":
                raise ValueError(
                    "Database password must be changed from default in production. "
                    "Set DB_PASSWORD environment variable."
                )
            if self.worker.test_mode:
                raise ValueError("WORKER_TEST_MODE cannot be enabled in production.")
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
