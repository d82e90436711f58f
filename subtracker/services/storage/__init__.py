"""
Storage Services Package

Provides the abstract key-value interface, its implementations, and the
repositories that map models onto stored documents.
"""

from subtracker.services.storage.interface import (
    CorruptDataError,
    KeyValueStoreInterface,
    StorageError,
)
from subtracker.services.storage.json_file import JsonFileStore
from subtracker.services.storage.memory import InMemoryStore
from subtracker.services.storage.repositories import (
    SettingsRepository,
    StoredSettings,
    SubscriptionRepository,
)

__all__ = [
    # Interfaces
    "KeyValueStoreInterface",
    # Exceptions
    "CorruptDataError",
    "StorageError",
    # Implementations
    "InMemoryStore",
    "JsonFileStore",
    # Repositories
    "SettingsRepository",
    "StoredSettings",
    "SubscriptionRepository",
]
