"""Services package."""

from subtracker.services.rates import (
    NBPRateSource,
    RateFetchError,
    RateTableService,
)
from subtracker.services.storage import (
    CorruptDataError,
    InMemoryStore,
    JsonFileStore,
    KeyValueStoreInterface,
    SettingsRepository,
    StorageError,
    SubscriptionRepository,
)

__all__ = [
    # Rate services
    "NBPRateSource",
    "RateFetchError",
    "RateTableService",
    # Storage services
    "CorruptDataError",
    "InMemoryStore",
    "JsonFileStore",
    "KeyValueStoreInterface",
    "SettingsRepository",
    "StorageError",
    "SubscriptionRepository",
]
