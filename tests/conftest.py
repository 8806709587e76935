"""
Shared fixtures for the ledger tests.

No test touches the real data directory: storage is in memory or under
pytest's tmp_path, and retry delays are zero.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio

from debt_ledger.config import StorageSettings
from debt_ledger.engine import LedgerEngine
from debt_ledger.ledger import LedgerStore, SettlementOperations
from debt_ledger.models import DebtType, Transaction
from debt_ledger.queries import LedgerQueries
from debt_ledger.services.storage import (
    InMemoryKeyValueStore,
    PersistenceAdapter,
)


class FixedClock:
    """Deterministic clock; advance() moves it forward."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta) -> datetime:
        self.current += timedelta(**delta)
        return self.current


class FlakyStore(InMemoryKeyValueStore):
    """In-memory store whose first N reads/writes raise OSError."""

    def __init__(self, failures: int = 0, initial: Optional[dict] = None):
        super().__init__(initial)
        self.failures = failures
        self.get_calls = 0
        self.set_calls = 0
        self.fail_writes = False

    async def get(self, key):
        self.get_calls += 1
        if self.get_calls <= self.failures:
            raise OSError("storage unavailable")
        return await super().get(key)

    async def set(self, key, value):
        self.set_calls += 1
        if self.fail_writes or self.set_calls <= self.failures:
            raise OSError("disk full")
        await super().set(key, value)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def storage_settings():
    """Storage settings with retries but no backoff delay."""
    return StorageSettings(
        backend="memory",
        max_retry_attempts=3,
        load_retry_delay_seconds=0,
        save_retry_delay_seconds=0,
        max_retry_delay_seconds=0,
    )


@pytest.fixture
def store(clock):
    return LedgerStore(clock=clock)


@pytest.fixture
def settlement(store):
    return SettlementOperations(store)


@pytest.fixture
def queries(store):
    return LedgerQueries(store)


@pytest.fixture
def kv_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def errors():
    """Collects errors handed to the engine's on_error callback."""
    return []


@pytest.fixture
def engine(kv_store, storage_settings, clock, errors):
    return LedgerEngine(
        persistence=PersistenceAdapter(kv_store, storage_settings),
        on_error=errors.append,
        clock=clock,
    )


@pytest_asyncio.fixture
async def loaded_engine(engine):
    """Engine that has read its (empty) snapshot; pending writes are flushed on teardown."""
    await engine.load()
    yield engine
    await engine.flush()


@pytest.fixture
def make_transaction():
    """Factory for hand-built records (bypasses validation)."""
    counter = iter(range(1, 1_000_000))

    def _make(**overrides) -> Transaction:
        n = next(counter)
        fields = {
            "id": f"t{n}",
            "name": "Sam",
            "type": DebtType.OWED,
            "amount": 100.0,
            "date": datetime(2024, 1, n % 28 + 1, tzinfo=timezone.utc),
            "created_at": 1_700_000_000_000 + n,
        }
        fields.update(overrides)
        if fields.get("is_settled") and "settled_date" not in overrides:
            fields["settled_date"] = datetime(2024, 2, 1, tzinfo=timezone.utc)
        return Transaction(**fields)

    return _make


def draft(name="Sam", amount=100, type="OWED", date="2024-01-01", **extra) -> dict:
    """Plain-dict creation input, as a UI form would submit it."""
    return {"name": name, "amount": amount, "type": type, "date": date, **extra}
