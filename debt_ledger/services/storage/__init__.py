"""
Storage Services Package

Provides the abstract key-value interface, local backends, the retrying
snapshot persistence adapter and the single-slot write queue.
"""

from debt_ledger.services.storage.interface import KeyValueStoreInterface
from debt_ledger.services.storage.local_file import (
    FileKeyValueStore,
    InMemoryKeyValueStore,
)
from debt_ledger.services.storage.persistence import (
    LoadResult,
    PersistenceAdapter,
    has_required_shape,
)
from debt_ledger.services.storage.write_queue import SnapshotWriteQueue

__all__ = [
    # Interfaces
    "KeyValueStoreInterface",
    # Backends
    "FileKeyValueStore",
    "InMemoryKeyValueStore",
    # Persistence
    "LoadResult",
    "PersistenceAdapter",
    "SnapshotWriteQueue",
    "has_required_shape",
]
