"""
Abstract Key-Value Storage Interface

DESIGN DECISION: The ledger persists one snapshot under one key, so the
backend contract is a minimal async key-value store. This allows us to:
1. Keep the default backend a plain file on local disk
2. Use in-memory storage for testing
3. Swap in another backend without touching ledger logic

Backends raise whatever their I/O layer raises. The persistence adapter
classifies and retries; backends do not.
"""

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStoreInterface(ABC):
    """
    Abstract interface for durable string storage.

    Any backend (local file, SQLite, platform key-value store, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Read the value stored under a key.

        Returns:
            The stored string, or None if the key does not exist
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """
        Store a value under a key.

        Implementations MUST replace the previous value atomically:
        a reader sees either the old value or the new one, never a mix.
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Remove a key.

        Returns:
            True if the key existed
        """
        pass
