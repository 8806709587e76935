"""
Ledger Store

The authoritative in-memory collection of transactions.

GUARANTEES:
- Validation happens before any mutation (fail fast, nothing partial)
- Ids are unique; a colliding id is rejected, never overwritten
- Mutations grouped in atomic() either all apply or none do
- Every committed change is published once: logged, handed to
  subscribers, and queued for persistence

The store never cascades. Removing a parent's partial payments, or
restoring a deleted payment to its parent, is the job of the
settlement operations built on top of it.
"""

import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Optional, Union
from uuid import uuid4

import structlog

from debt_ledger.errors import (
    DuplicateTransactionError,
    ErrorCode,
    LedgerValidationError,
    TransactionNotFoundError,
)
from debt_ledger.models.events import LedgerEvent, LedgerEventType
from debt_ledger.models.transaction import (
    Transaction,
    TransactionDraft,
    TransactionUpdate,
)
from debt_ledger.services.storage.write_queue import SnapshotWriteQueue
from debt_ledger.validation.validator import TransactionValidator


LedgerListener = Callable[[LedgerEvent, tuple[Transaction, ...]], None]


def generate_transaction_id() -> str:
    """
    High-resolution timestamp plus a random suffix.

    Ids stay roughly time-ordered and cannot collide between two calls in
    the same nanosecond unless the 48-bit random suffix also collides.
    """
    return f"{time.time_ns():x}{uuid4().hex[:12]}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _Batch:
    """Undo journal and touched ids for one atomic unit."""

    def __init__(self, event_type: LedgerEventType, details: dict):
        self.event_type = event_type
        self.details = details
        self.undo: list[Callable[[], None]] = []
        self.touched: list[str] = []

    def touch(self, transaction_id: str) -> None:
        if transaction_id not in self.touched:
            self.touched.append(transaction_id)


class LedgerStore:
    """
    In-memory transaction collection, most recent first.

    Public contract (create/read/update/delete) validates its input.
    The raw mutators (insert/replace/remove) do not; they exist for the
    settlement operations and must be called inside atomic().
    """

    def __init__(
        self,
        validator: Optional[TransactionValidator] = None,
        write_queue: Optional[SnapshotWriteQueue] = None,
        id_generator: Callable[[], str] = generate_transaction_id,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._validator = validator or TransactionValidator()
        self._write_queue = write_queue
        self._id_generator = id_generator
        self._clock = clock

        self._records: list[Transaction] = []
        self._by_id: dict[str, Transaction] = {}
        self._batch: Optional[_Batch] = None
        self._listeners: list[LedgerListener] = []
        self._last_created_at = 0

        self._logger = structlog.get_logger(__name__)

    @property
    def validator(self) -> TransactionValidator:
        return self._validator

    def now(self) -> datetime:
        return self._clock()

    def __len__(self) -> int:
        return len(self._records)

    # =========================================================================
    # READS
    # =========================================================================

    def read(self) -> tuple[Transaction, ...]:
        """The full current collection, most recent first."""
        return tuple(self._records)

    def get(self, transaction_id: str) -> Optional[Transaction]:
        return self._by_id.get(transaction_id)

    def require(self, transaction_id: str) -> Transaction:
        """Like get(), but raises NOT_FOUND."""
        record = self._by_id.get(transaction_id)
        if record is None:
            raise TransactionNotFoundError(transaction_id)
        return record

    def children_of(self, parent_id: str) -> list[Transaction]:
        """Partial-payment records of a parent, in collection order."""
        return [r for r in self._records if r.parent_id == parent_id]

    # =========================================================================
    # PUBLIC CONTRACT
    # =========================================================================

    def create(self, draft: Union[TransactionDraft, dict]) -> Transaction:
        """
        Validate a draft and insert it at the head of the collection.

        Raises:
            LedgerValidationError: On invalid input (state untouched)
            DuplicateTransactionError: If the generated id already exists
        """
        if isinstance(draft, dict):
            draft = TransactionDraft.model_validate(draft)
        fields = self._validator.validate_draft(draft)

        record = Transaction(
            id=self.new_id(),
            created_at=self.next_created_at(),
            is_settled=False,
            **fields,
        )

        with self.atomic(LedgerEventType.TRANSACTION_CREATED):
            self.insert(record)

        self._logger.info(
            "transaction_created",
            transaction_id=record.id,
            type=record.type.value,
            amount=record.amount,
        )
        return record

    def update(
        self,
        transaction_id: str,
        fields: Union[TransactionUpdate, dict],
    ) -> Transaction:
        """
        Merge edited fields into a record.

        The amount of a partial payment is fixed, and the amount of a
        parent with partial payments can only change through
        edit_transaction, which reconciles it against what was paid.

        Raises:
            TransactionNotFoundError: If the id is absent
            LedgerValidationError: On invalid input (state untouched)
        """
        if isinstance(fields, dict):
            fields = TransactionUpdate.model_validate(fields)
        record = self.require(transaction_id)
        changes = self.clean_changes(record, fields)

        if "amount" in changes:
            if record.is_partial_payment:
                raise LedgerValidationError(
                    "The amount of a partial payment cannot be changed",
                    code=ErrorCode.PARTIAL_PAYMENT_IMMUTABLE,
                )
            if self.children_of(transaction_id):
                raise LedgerValidationError(
                    "This debt has partial payments; edit its total instead",
                    code=ErrorCode.PARTIALS_REQUIRE_EDIT,
                )

        if not changes:
            return record

        updated = record.model_copy(update=changes)
        with self.atomic(
            LedgerEventType.TRANSACTION_UPDATED,
            fields=sorted(changes),
        ):
            self.replace(updated)
        return updated

    def delete(self, transaction_id: str) -> Transaction:
        """
        Remove exactly one record. Never cascades.

        Raises:
            TransactionNotFoundError: If the id is absent
        """
        with self.atomic(LedgerEventType.TRANSACTION_DELETED):
            return self.remove(transaction_id)

    def clean_changes(
        self,
        record: Transaction,
        fields: TransactionUpdate,
    ) -> dict[str, Any]:
        """Validate the provided fields of an update; unset/None fields are skipped."""
        provided = fields.provided()
        changes = {}

        if "name" in provided:
            changes["name"] = self._validator.validate_name(provided["name"])
        if "amount" in provided:
            changes["amount"] = self._validator.validate_amount(provided["amount"])
        if "type" in provided:
            changes["type"] = self._validator.validate_type(provided["type"])
        if "date" in provided:
            changes["date"] = self._validator.validate_date(provided["date"])
        if "description" in provided:
            changes["description"] = self._validator.validate_description(provided["description"])

        return {k: v for k, v in changes.items() if getattr(record, k) != v}

    # =========================================================================
    # ATOMIC UNITS AND RAW MUTATORS
    # =========================================================================

    @contextmanager
    def atomic(
        self,
        event_type: LedgerEventType,
        **details: Any,
    ) -> Iterator[None]:
        """
        Group mutations into one logical unit.

        On exception every mutation made inside the block is undone and
        nothing is published. Nested blocks join the outermost one, whose
        event type and details describe the whole unit.
        """
        if self._batch is not None:
            yield
            return

        batch = _Batch(event_type, details)
        self._batch = batch
        try:
            yield
        except BaseException:
            for undo in reversed(batch.undo):
                undo()
            self._batch = None
            raise

        self._batch = None
        if batch.touched:
            self._publish(LedgerEvent(
                event_type=batch.event_type,
                transaction_ids=batch.touched,
                details=batch.details,
            ))

    def insert(self, record: Transaction, index: int = 0) -> Transaction:
        """Add a record (at the head by default)."""
        batch = self._require_batch()
        if record.id in self._by_id:
            raise DuplicateTransactionError(record.id)

        self._records.insert(index, record)
        self._by_id[record.id] = record
        batch.undo.append(lambda: self._detach(record.id))
        batch.touch(record.id)
        return record

    def replace(self, record: Transaction) -> Transaction:
        """Swap in a new version of an existing record, keeping its position."""
        batch = self._require_batch()
        old = self.require(record.id)
        position = self._position_of(record.id)

        self._records[position] = record
        self._by_id[record.id] = record
        batch.undo.append(lambda: self._restore(old, position, replace=True))
        batch.touch(record.id)
        return record

    def remove(self, transaction_id: str) -> Transaction:
        batch = self._require_batch()
        old = self.require(transaction_id)
        position = self._position_of(transaction_id)

        del self._records[position]
        del self._by_id[transaction_id]
        batch.undo.append(lambda: self._restore(old, position, replace=False))
        batch.touch(transaction_id)
        return old

    def load(self, records: list[Transaction]) -> None:
        """
        Replace the whole collection with records read from storage.

        Publishes a LOADED event but does not queue a write: the data
        just came from storage.
        """
        if self._batch is not None:
            raise RuntimeError("Cannot load while an atomic unit is open")

        self._records = list(records)
        self._by_id = {r.id: r for r in self._records}
        self._last_created_at = max(
            (r.created_at for r in self._records),
            default=self._last_created_at,
        )
        self._publish(
            LedgerEvent(
                event_type=LedgerEventType.LOADED,
                details={"count": len(self._records)},
            ),
            persist=False,
        )

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    def subscribe(self, listener: LedgerListener) -> Callable[[], None]:
        """
        Register a change listener.

        Listeners receive (event, snapshot) after each committed unit.
        Returns a callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _publish(self, event: LedgerEvent, persist: bool = True) -> None:
        snapshot = self.read()
        self._logger.info("ledger_event", **event.to_log_dict())

        if persist and self._write_queue is not None:
            self._write_queue.submit(snapshot)

        for listener in list(self._listeners):
            try:
                listener(event, snapshot)
            except Exception as e:
                # The change is already committed; a broken listener must not undo it
                self._logger.error(
                    "listener_failed",
                    event_type=event.event_type.value,
                    error=str(e),
                    exc_info=True,
                )

    def _require_batch(self) -> _Batch:
        if self._batch is None:
            raise RuntimeError("Ledger mutations must run inside LedgerStore.atomic()")
        return self._batch

    def _position_of(self, transaction_id: str) -> int:
        for position, record in enumerate(self._records):
            if record.id == transaction_id:
                return position
        raise TransactionNotFoundError(transaction_id)

    def _detach(self, transaction_id: str) -> None:
        position = self._position_of(transaction_id)
        del self._records[position]
        del self._by_id[transaction_id]

    def _restore(self, record: Transaction, position: int, replace: bool) -> None:
        if replace:
            self._records[position] = record
        else:
            self._records.insert(position, record)
        self._by_id[record.id] = record

    def new_id(self) -> str:
        return self._id_generator()

    def next_created_at(self) -> int:
        """Creation timestamp in epoch ms, strictly increasing within this store."""
        now_ms = time.time_ns() // 1_000_000
        self._last_created_at = max(now_ms, self._last_created_at + 1)
        return self._last_created_at
