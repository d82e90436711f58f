"""
Configuration Management for Subscription Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RatesSettings(BaseSettings):
    """Remote exchange-rate source (NBP table API) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RATES_",
        extra="ignore"
    )

    api_base_url: str = Field(
        default="https://api.nbp.pl/api",
        description="Base URL of the NBP web API"
    )
    table: str = Field(
        default="a",
        pattern="^[abc]$",
        description="NBP table letter to download"
    )
    currencies: str = Field(
        default="USD,GBP,EUR",
        description="Comma-separated currency codes that must be present in a fetched table"
    )
    timeout_seconds: float = Field(
        default=10.0,
        ge=1.0,
        le=60.0,
        description="HTTP timeout for one rate fetch"
    )

    @field_validator('api_base_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def currencies_list(self) -> list[str]:
        """Get expected currency codes as a list."""
        return [code.strip().upper() for code in self.currencies.split(",") if code.strip()]

    @property
    def table_url(self) -> str:
        return f"{self.api_base_url}/exchangerates/tables/{self.table}/?format=json"


class StorageSettings(BaseSettings):
    """Key-value persistence configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        extra="ignore"
    )

    data_dir: str = Field(
        default=".subtracker",
        description="Directory holding one JSON document per storage key"
    )
    subscriptions_key: str = Field(
        default="subscription-storage",
        description="Key of the persisted subscription collection"
    )
    settings_key: str = Field(
        default="settings-storage",
        description="Key of the persisted rate table and display currency"
    )


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

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Display
    default_currency: str = Field(
        default="PLN",
        min_length=3,
        max_length=3,
        description="Display currency used until the user picks another one"
    )

    # Form defaults
    default_next_payment_days: int = Field(
        default=30,
        ge=0,
        le=3660,
        description="Days from today used when no next payment date is chosen"
    )
    min_name_length: int = Field(
        default=3,
        ge=1,
        le=50,
        description="Minimum subscription name length"
    )

    # Stored data written by older versions
    legacy_cycle_policy: Literal["normalize", "reject"] = Field(
        default="normalize",
        description="What to do with stored 'daily'/'quarterly' records"
    )

    # Aggregates
    convert_category_breakdown: bool = Field(
        default=False,
        description="Convert prices to the display currency before grouping by category"
    )
    upcoming_window_days: int = Field(
        default=7,
        ge=1,
        le=366,
        description="Length of the upcoming-payments window"
    )

    @field_validator('default_currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


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
    def rates(self) -> RatesSettings:
        return RatesSettings()

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

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("rates", "storage", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
