"""
Configuration Management for Baby Meal Planner

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every setting can be overridden with a MEALPLANNER_* environment
variable or a .env file next to the application.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Local persistence configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MEALPLANNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    data_dir: Path = Field(
        default=Path.home() / ".mealplanner",
        description="Directory holding the database and the legacy key file"
    )
    db_name: str = Field(
        default="babyFoodTracker",
        min_length=1,
        description="Database name (file stem inside data_dir)"
    )
    db_path: Optional[str] = Field(
        default=None,
        description=(
            "Explicit database path. ':memory:' for a throwaway database, "
            "empty string to run without persistent storage"
        )
    )
    legacy_file: str = Field(
        default="localStorage.json",
        description="Flat key/value file used by older versions of the app"
    )

    # Engine behaviour
    connect_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        le=60.0,
        description="SQLite busy timeout"
    )
    open_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="How many times opening the database is attempted"
    )

    # Migration
    retry_failed_migration: bool = Field(
        default=False,
        description=(
            "Leave the migration flag unset when the legacy migration fails, "
            "so it runs again on the next start"
        )
    )

    # Caller-side auto-save
    autosave_delay_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Quiet period before pending changes are persisted"
    )

    @field_validator("db_name")
    @classmethod
    def validate_db_name(cls, v: str) -> str:
        """Database name is used as a file stem, so no path separators."""
        if "/" in v or "\\" in v:
            raise ValueError("db_name must not contain path separators")
        return v

    @property
    def database_path(self) -> Optional[str]:
        """
        Resolved database location.

        None means no persistent storage is available on this host.
        """
        if self.db_path is not None:
            return self.db_path or None
        return str(self.data_dir / f"{self.db_name}.sqlite3")

    @property
    def legacy_path(self) -> Path:
        """Location of the legacy flat key/value file."""
        return self.data_dir / self.legacy_file


class LoggingSettings(BaseSettings):
    """Structured logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MEALPLANNER_LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    level: str = Field(
        default="INFO",
        description="Minimum log level"
    )
    json_output: bool = Field(
        default=True,
        description="Render log lines as JSON (False for console output)"
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
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
    def logging(self) -> LoggingSettings:
        return LoggingSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()
