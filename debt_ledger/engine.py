"""
Ledger Engine

This module ties together all the components and exposes the public
operation surface consumed by presentation code:

    add_transaction, update_transaction, delete_transaction,
    settle_transaction, unsettle_transaction, record_partial_payment,
    edit_transaction, transactions, totals, grouped_by_person

DESIGN DECISION: Commits are optimistic. Every command updates memory
synchronously and then queues a snapshot write. If the write ultimately
fails, memory is NOT rolled back: the failure is handed to the injected
on_error callback and kept in last_persistence_error so the UI can warn
the user that recent changes may not survive a restart.

Validation errors are raised to the caller and nothing is applied.
"""

from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Sequence, Union

import structlog

from debt_ledger.config import Settings, get_settings
from debt_ledger.errors import LedgerError, classify_error
from debt_ledger.ledger.settlement import SettlementOperations
from debt_ledger.ledger.store import (
    LedgerListener,
    LedgerStore,
    generate_transaction_id,
    utc_now,
)
from debt_ledger.logging_config import configure_logging
from debt_ledger.models.transaction import (
    LedgerTotals,
    PersonSummary,
    Transaction,
    TransactionDraft,
    TransactionUpdate,
)
from debt_ledger.queries.aggregation import LedgerQueries
from debt_ledger.services.export import export_to_json
from debt_ledger.services.storage import (
    FileKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStoreInterface,
    LoadResult,
    PersistenceAdapter,
    SnapshotWriteQueue,
)
from debt_ledger.validation.validator import InvariantViolation, TransactionValidator


ErrorReporter = Callable[[LedgerError], None]


class LedgerEngine:
    """
    Public facade over the ledger store, settlement operations and queries.

    Usage:
        engine = create_engine(on_error=show_toast)
        await engine.load()
        debt = engine.add_transaction({"name": "Sam", "amount": 100, "date": today})
        engine.record_partial_payment(debt.id, 40, "lunch")
        await engine.flush()
    """

    def __init__(
        self,
        persistence: Optional[PersistenceAdapter] = None,
        validator: Optional[TransactionValidator] = None,
        on_error: Optional[ErrorReporter] = None,
        id_generator: Callable[[], str] = generate_transaction_id,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._persistence = persistence
        self._on_error = on_error
        self._last_persistence_error: Optional[LedgerError] = None
        self._loaded = False
        self._logger = structlog.get_logger(__name__)

        self._write_queue = None
        if persistence is not None:
            self._write_queue = SnapshotWriteQueue(
                persistence,
                on_success=self._handle_save_success,
                on_failure=self._handle_storage_error,
            )

        self._store = LedgerStore(
            validator=validator,
            write_queue=self._write_queue,
            id_generator=id_generator,
            clock=clock,
        )
        self._settlement = SettlementOperations(self._store)
        self._queries = LedgerQueries(self._store)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def last_persistence_error(self) -> Optional[LedgerError]:
        """The most recent unrecovered storage failure, if any."""
        return self._last_persistence_error

    @property
    def store(self) -> LedgerStore:
        return self._store

    async def load(self) -> LoadResult:
        """
        Read the stored snapshot into memory.

        Call once at startup, before issuing commands. On failure the
        ledger stays empty and usable; the error is reported, not raised.
        """
        if self._persistence is None:
            self._loaded = True
            return LoadResult()

        try:
            result = await self._persistence.load()
        except Exception as e:
            self._handle_storage_error(classify_error(e))
            result = LoadResult()
        else:
            self._store.load(result.transactions)
            self._last_persistence_error = None
            violations = self.check_integrity()
            if violations:
                # Reported only; stored data is never repaired
                self._logger.warning(
                    "ledger_invariants_broken",
                    count=len(violations),
                    violations=[v.model_dump() for v in violations],
                )
        finally:
            self._loaded = True

        return result

    def check_integrity(self) -> list[InvariantViolation]:
        """Every ledger invariant the current collection breaks."""
        return self._store.validator.check_ledger(self._store.read())

    async def flush(self) -> None:
        """Wait for all queued snapshot writes to finish."""
        if self._write_queue is not None:
            await self._write_queue.flush()

    def subscribe(self, listener: LedgerListener) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe callable."""
        return self._store.subscribe(listener)

    # =========================================================================
    # COMMANDS
    # =========================================================================

    def add_transaction(self, draft: Union[TransactionDraft, dict]) -> Transaction:
        return self._store.create(draft)

    def update_transaction(
        self,
        transaction_id: str,
        fields: Union[TransactionUpdate, dict],
    ) -> Transaction:
        return self._store.update(transaction_id, fields)

    def delete_transaction(self, transaction_id: str) -> list[Transaction]:
        """Delete a record, cascading to or reconciling partial payments."""
        return self._settlement.delete(transaction_id)

    def settle_transaction(self, transaction_id: str) -> Transaction:
        return self._settlement.settle(transaction_id)

    def unsettle_transaction(self, transaction_id: str) -> Transaction:
        return self._settlement.unsettle(transaction_id)

    def record_partial_payment(
        self,
        parent_id: str,
        amount: Any,
        note: Optional[str] = None,
        date: Optional[Union[datetime, str]] = None,
    ) -> tuple[Transaction, Transaction]:
        return self._settlement.record_partial_payment(parent_id, amount, note, date)

    def edit_transaction(
        self,
        transaction_id: str,
        fields: Union[TransactionUpdate, dict],
        deleted_child_ids: Iterable[str] = (),
    ) -> Transaction:
        return self._settlement.edit_transaction(transaction_id, fields, deleted_child_ids)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def transactions(self) -> tuple[Transaction, ...]:
        return self._store.read()

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self._store.get(transaction_id)

    def totals(self) -> LedgerTotals:
        return self._queries.totals()

    def grouped_by_person(self) -> list[PersonSummary]:
        return self._queries.grouped_by_person()

    def person_summary(self, name: str) -> Optional[PersonSummary]:
        """Balance for one counterparty; None if nothing is outstanding with them."""
        return self._queries.person_summary(name)

    def transactions_for(self, name: str) -> list[Transaction]:
        return self._queries.transactions_for(name)

    def payment_history(self, parent_id: str) -> list[Transaction]:
        return self._queries.payment_history(parent_id)

    def settled_history(self) -> list[Transaction]:
        return self._queries.settled_history()

    def export_json(self) -> str:
        """Read-only JSON backup of the current ledger."""
        return export_to_json(self._store.read())

    # =========================================================================
    # STORAGE CALLBACKS
    # =========================================================================

    def _handle_save_success(self, snapshot: Sequence[Transaction]) -> None:
        self._last_persistence_error = None

    def _handle_storage_error(self, error: LedgerError) -> None:
        self._last_persistence_error = error
        self._logger.error("persistence_error", **error.to_log_dict())
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception as e:
            self._logger.error("error_reporter_failed", error=str(e), exc_info=True)


def create_engine(
    settings: Optional[Settings] = None,
    kv_store: Optional[KeyValueStoreInterface] = None,
    on_error: Optional[ErrorReporter] = None,
    id_generator: Callable[[], str] = generate_transaction_id,
    clock: Callable[[], datetime] = utc_now,
    setup_logging: bool = False,
) -> LedgerEngine:
    """
    Factory function to create a fully wired engine.

    Args:
        settings: Settings to use (defaults to the cached environment settings)
        kv_store: Backend override; by default chosen from storage settings
        on_error: Callback receiving storage errors after retries are exhausted
        setup_logging: Configure structlog and the root logger from the
            logging settings. Off by default so a host application's
            logging setup is left alone.

    Returns:
        A LedgerEngine; call `await engine.load()` before use
    """
    settings = settings or get_settings()
    storage_settings = settings.storage

    if setup_logging:
        configure_logging(settings.logging)

    if kv_store is None:
        if storage_settings.backend == "memory":
            kv_store = InMemoryKeyValueStore()
        else:
            kv_store = FileKeyValueStore(storage_settings.data_dir)

    return LedgerEngine(
        persistence=PersistenceAdapter(kv_store, storage_settings),
        validator=TransactionValidator(settings.rules),
        on_error=on_error,
        id_generator=id_generator,
        clock=clock,
    )
