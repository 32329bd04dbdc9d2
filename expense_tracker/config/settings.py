"""
Configuration Management for the Expense Tracker

Uses pydantic-settings for type-safe configuration from environment
variables and an optional .env file. All configuration is centralized here.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Embedded SQLite store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="EXPENSE_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    path: str = Field(
        default="expenses.db",
        description="Path to the SQLite database file (':memory:' for a throwaway store)"
    )
    busy_timeout_seconds: float = Field(
        default=0.0,
        ge=0.0,
        le=60.0,
        description="How long SQLite waits on a locked database before failing"
    )

    # Caller-side retry when opening the store
    open_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts made by the orchestrator to open the store"
    )
    open_retry_wait_seconds: float = Field(
        default=0.5,
        ge=0.0,
        le=30.0,
        description="Base wait between open attempts"
    )

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Reject a path that points at an existing directory."""
        if v != ":memory:" and Path(v).is_dir():
            raise ValueError(f"Database path is a directory: {v}")
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )
    default_page_size: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Page size used when a caller does not pass a limit"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, object]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus ``<name>_error``
    entries for the sections that failed. Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("storage", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
