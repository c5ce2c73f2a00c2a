"""Configuration package."""

from mealplanner.config.settings import (
    LoggingSettings,
    Settings,
    StorageSettings,
    get_settings,
)

__all__ = [
    "LoggingSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
]
