"""Configuration package."""

from subtracker.config.settings import (
    AppSettings,
    RatesSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "RatesSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
