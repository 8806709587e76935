"""Tests for the in-memory ledger store."""

import pytest

from conftest import draft
from debt_ledger.errors import (
    DuplicateTransactionError,
    ErrorCode,
    LedgerValidationError,
    TransactionNotFoundError,
)
from debt_ledger.ledger import LedgerStore, generate_transaction_id
from debt_ledger.models import DebtType, LedgerEventType, TransactionDraft


@pytest.fixture
def events(store):
    received = []
    store.subscribe(lambda event, snapshot: received.append((event, snapshot)))
    return received


class TestCreate:

    def test_create_inserts_at_head(self, store):
        first = store.create(draft(name="Sam"))
        second = store.create(draft(name="Alex"))

        assert store.read() == (second, first)
        assert first.is_settled is False
        assert first.settled_date is None
        assert first.parent_id is None

    def test_create_accepts_draft_model(self, store):
        record = store.create(TransactionDraft(name="Kim", amount=5, type="OWE", date="2024-02-02"))
        assert record.type == DebtType.OWE
        assert store.get(record.id) == record

    def test_invalid_draft_changes_nothing(self, store, events):
        with pytest.raises(LedgerValidationError) as info:
            store.create(draft(amount=-1))
        assert info.value.code == ErrorCode.AMOUNT_INVALID
        assert len(store) == 0
        assert events == []

    def test_created_at_strictly_increases(self, store):
        stamps = [store.create(draft()).created_at for _ in range(50)]
        assert stamps == sorted(set(stamps))

    def test_ids_unique_across_many_creates(self, store):
        ids = {store.create(draft()).id for _ in range(10_000)}
        assert len(ids) == 10_000

    def test_generated_ids_unique(self):
        assert len({generate_transaction_id() for _ in range(10_000)}) == 10_000

    def test_colliding_id_is_rejected(self):
        store = LedgerStore(id_generator=lambda: "same")
        store.create(draft())
        with pytest.raises(DuplicateTransactionError):
            store.create(draft())
        assert len(store) == 1

    def test_create_publishes_one_event(self, store, events):
        record = store.create(draft())
        assert len(events) == 1
        event, snapshot = events[0]
        assert event.event_type == LedgerEventType.TRANSACTION_CREATED
        assert event.transaction_ids == [record.id]
        assert snapshot == (record,)


class TestUpdateAndDelete:

    def test_update_merges_fields(self, store, events):
        record = store.create(draft())
        updated = store.update(record.id, {"name": " Samuel ", "description": "rent"})

        assert updated.name == "Samuel"
        assert updated.description == "rent"
        assert updated.amount == record.amount
        assert store.get(record.id) == updated
        assert events[-1][0].details == {"fields": ["description", "name"]}

    def test_update_without_changes_is_a_no_op(self, store, events):
        record = store.create(draft())
        assert store.update(record.id, {"name": "Sam"}) is record
        assert len(events) == 1

    def test_update_validates_before_applying(self, store):
        record = store.create(draft())
        with pytest.raises(LedgerValidationError):
            store.update(record.id, {"name": "Kim", "amount": 0})
        assert store.get(record.id) == record

    @pytest.mark.parametrize("fields, code", [
        ({"name": 5}, ErrorCode.NAME_REQUIRED),
        ({"description": 12}, ErrorCode.DESCRIPTION_INVALID),
        ({"type": ["OWE"]}, ErrorCode.TYPE_INVALID),
        ({"date": 3.5}, ErrorCode.DATE_INVALID),
    ])
    def test_wrong_typed_fields_carry_ledger_codes(self, store, fields, code):
        record = store.create(draft())
        with pytest.raises(LedgerValidationError) as info:
            store.update(record.id, fields)
        assert info.value.code == code
        assert store.get(record.id) == record

    def test_create_rejects_non_text_description(self, store):
        with pytest.raises(LedgerValidationError) as info:
            store.create(draft(description={"note": "x"}))
        assert info.value.code == ErrorCode.DESCRIPTION_INVALID
        assert len(store) == 0

    def test_update_unknown_id(self, store):
        with pytest.raises(TransactionNotFoundError):
            store.update("missing", {"name": "x"})

    def test_amount_guards(self, store, settlement):
        parent = store.create(draft())
        _, payment = settlement.record_partial_payment(parent.id, 40)

        with pytest.raises(LedgerValidationError) as info:
            store.update(payment.id, {"amount": 10})
        assert info.value.code == ErrorCode.PARTIAL_PAYMENT_IMMUTABLE

        with pytest.raises(LedgerValidationError) as info:
            store.update(parent.id, {"amount": 500})
        assert info.value.code == ErrorCode.PARTIALS_REQUIRE_EDIT

    def test_delete_removes_exactly_one_record(self, store, settlement):
        parent = store.create(draft())
        _, payment = settlement.record_partial_payment(parent.id, 40)

        store.delete(parent.id)
        assert store.read() == (payment,)

    def test_delete_unknown_id(self, store, events):
        with pytest.raises(TransactionNotFoundError):
            store.delete("missing")
        assert events == []


class TestAtomicUnits:

    def test_failure_rolls_back_every_mutation(self, store, events, make_transaction):
        a = store.create(draft(name="A"))
        b = store.create(draft(name="B"))
        before = store.read()

        with pytest.raises(RuntimeError):
            with store.atomic(LedgerEventType.TRANSACTION_EDITED):
                store.insert(make_transaction(id="new"))
                store.replace(a.model_copy(update={"name": "changed"}))
                store.remove(b.id)
                raise RuntimeError("abort")

        assert store.read() == before
        assert store.get("new") is None
        assert len(events) == 2

    def test_nested_units_publish_once(self, store, events, make_transaction):
        with store.atomic(LedgerEventType.TRANSACTION_DELETED, outer=True):
            store.insert(make_transaction(id="x"))
            with store.atomic(LedgerEventType.TRANSACTION_EDITED):
                store.insert(make_transaction(id="y"))

        assert len(events) == 1
        event = events[0][0]
        assert event.event_type == LedgerEventType.TRANSACTION_DELETED
        assert event.details == {"outer": True}
        assert event.transaction_ids == ["x", "y"]

    def test_raw_mutators_require_a_unit(self, store, make_transaction):
        with pytest.raises(RuntimeError):
            store.insert(make_transaction())

    def test_insert_rejects_existing_id(self, store, make_transaction):
        record = make_transaction(id="dup")
        with store.atomic(LedgerEventType.TRANSACTION_CREATED):
            store.insert(record)
        with pytest.raises(DuplicateTransactionError):
            with store.atomic(LedgerEventType.TRANSACTION_CREATED):
                store.insert(make_transaction(id="dup", name="Other"))
        assert store.read() == (record,)


class TestLoadAndSubscribe:

    def test_load_replaces_collection(self, store, events, make_transaction):
        store.create(draft())
        records = [make_transaction(id="a"), make_transaction(id="b")]
        store.load(records)

        assert [r.id for r in store.read()] == ["a", "b"]
        assert events[-1][0].event_type == LedgerEventType.LOADED

    def test_created_at_continues_after_load(self, store, make_transaction):
        future = make_transaction(created_at=99_999_999_999_999)
        store.load([future])
        assert store.create(draft()).created_at > future.created_at

    def test_unsubscribe(self, store):
        received = []
        unsubscribe = store.subscribe(lambda e, s: received.append(e))
        store.create(draft())
        unsubscribe()
        store.create(draft())
        assert len(received) == 1

    def test_failing_listener_does_not_undo_change(self, store):
        def broken(event, snapshot):
            raise ValueError("listener bug")

        received = []
        store.subscribe(broken)
        store.subscribe(lambda e, s: received.append(e))

        record = store.create(draft())
        assert store.get(record.id) == record
        assert len(received) == 1
