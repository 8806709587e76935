"""Services package."""

from debt_ledger.services.export import export_to_json
from debt_ledger.services.storage import (
    FileKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStoreInterface,
    LoadResult,
    PersistenceAdapter,
    SnapshotWriteQueue,
)

__all__ = [
    # Export
    "export_to_json",
    # Storage services
    "FileKeyValueStore",
    "InMemoryKeyValueStore",
    "KeyValueStoreInterface",
    "LoadResult",
    "PersistenceAdapter",
    "SnapshotWriteQueue",
]
