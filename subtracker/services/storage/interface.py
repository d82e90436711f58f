"""
Abstract Storage Interface

DESIGN DECISION: The engine does not own a database. It talks to a durable
key-value store through this interface.
This allows us to:
1. Use a JSON file per key on a desktop or server
2. Use in-memory storage for testing
3. Plug in a platform key-value store (the mobile app used AsyncStorage)

Values are whole serialized documents. Every write replaces the complete
document for a key; there are no partial patches.
"""

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStoreInterface(ABC):
    """
    Abstract interface for the persisted document store.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read the document stored under a key.

        Args:
            key: Storage key

        Returns:
            The serialized document, or None if the key has never been written

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Replace the document stored under a key.

        Implementations must make the replacement atomic: after a crash
        the key holds either the old or the new document, never a mix.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """
        Remove a key. Removing a missing key is not an error.
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class CorruptDataError(StorageError):
    """A stored document could not be parsed."""

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(f"Stored document '{key}' is unreadable: {message}")
