"""
Tests for the ledger data models

Test strategy:
1. Unit tests for models, money helpers and the description convention
2. Flow tests for store/settlement/engine live in their own modules
3. No real disk access outside tmp_path
"""

import pytest
from datetime import datetime, timezone

from pydantic import ValidationError

from debt_ledger.models import (
    SNAPSHOT_VERSION,
    DebtType,
    LedgerEvent,
    LedgerEventType,
    LedgerSnapshot,
    LedgerTotals,
    Transaction,
    TransactionUpdate,
    ensure_utc,
    parse_description_key,
    partial_payment_description,
    round_money,
    sum_money,
)


class TestMoneyHelpers:
    """Tests for currency rounding."""

    def test_round_money_is_half_up(self):
        assert round_money(0.125) == 0.13
        assert round_money(2.675) == 2.68
        assert round_money(-0.125) == -0.13

    def test_round_money_keeps_whole_amounts(self):
        assert round_money(100) == 100.0

    def test_sum_money_avoids_float_noise(self):
        assert sum_money([0.1, 0.2]) == 0.3
        assert sum_money([]) == 0.0

    def test_ensure_utc_tags_naive_datetimes(self):
        naive = datetime(2024, 5, 1, 9, 30)
        assert ensure_utc(naive).tzinfo == timezone.utc

        aware = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
        assert ensure_utc(aware) is aware


class TestTransactionModel:
    """Tests for the Transaction record."""

    def test_storage_dict_uses_camel_case(self, make_transaction):
        record = make_transaction(id="abc", description="dinner")
        stored = record.to_storage_dict()

        assert stored["id"] == "abc"
        assert stored["type"] == "OWED"
        assert stored["isSettled"] is False
        assert stored["createdAt"] == record.created_at
        assert isinstance(stored["date"], str)
        # None-valued optional fields are omitted
        assert "initialAmount" not in stored
        assert "parentId" not in stored
        assert "settledDate" not in stored

    def test_parses_stored_layout(self):
        record = Transaction.model_validate({
            "id": "x1",
            "name": "Alex",
            "type": "OWE",
            "amount": 25.5,
            "initialAmount": 50,
            "description": "",
            "date": "2024-03-01T00:00:00Z",
            "createdAt": 1709251200000,
            "isSettled": False,
        })
        assert record.type == DebtType.OWE
        assert record.initial_amount == 50
        assert record.date.tzinfo is not None

    def test_records_are_frozen(self, make_transaction):
        record = make_transaction()
        with pytest.raises(ValidationError):
            record.amount = 5

    def test_original_total_prefers_initial_amount(self, make_transaction):
        assert make_transaction(amount=60, initial_amount=100).original_total == 100
        assert make_transaction(amount=60).original_total == 60

    def test_signed_amount_follows_direction(self, make_transaction):
        assert make_transaction(amount=10, type=DebtType.OWED).signed_amount == 10
        assert make_transaction(amount=10, type=DebtType.OWE).signed_amount == -10

    def test_is_partial_payment(self, make_transaction):
        assert make_transaction(parent_id="p1").is_partial_payment
        assert not make_transaction().is_partial_payment


class TestUpdateAndAggregates:
    """Tests for update input and aggregate models."""

    def test_update_reports_only_provided_fields(self):
        update = TransactionUpdate(name="Kim")
        assert update.provided() == {"name": "Kim"}

    def test_update_treats_none_as_not_provided(self):
        update = TransactionUpdate(name="Kim", amount=None)
        assert update.provided() == {"name": "Kim"}

    def test_update_accepts_camel_case(self):
        update = TransactionUpdate.model_validate({"description": "x"})
        assert update.provided() == {"description": "x"}

    def test_totals_net(self):
        totals = LedgerTotals(total_owed=100.1, total_owe=40.05)
        assert totals.net == 60.05

    def test_snapshot_envelope(self, make_transaction):
        snapshot = LedgerSnapshot(transactions=[make_transaction(id="a")])
        stored = snapshot.to_storage_dict()
        assert stored["version"] == SNAPSHOT_VERSION
        assert stored["transactions"][0]["id"] == "a"


class TestDescriptionConvention:
    """Tests for structured partial-payment descriptions."""

    def test_note_is_encoded(self):
        assert partial_payment_description("lunch") == "KEY:partial_prefix:lunch"

    def test_missing_note_uses_placeholder_key(self):
        assert partial_payment_description(None) == "KEY:no_description"
        assert partial_payment_description("   ") == "KEY:no_description"

    def test_parse_keeps_colons_in_note(self):
        assert parse_description_key("KEY:partial_prefix:at 12:30") == ("partial_prefix", "at 12:30")
        assert parse_description_key("KEY:no_description") == ("no_description", "")

    def test_plain_text_is_not_a_key(self):
        assert parse_description_key("just text") is None
        assert parse_description_key("") is None


class TestLedgerEvent:
    """Tests for change events."""

    def test_log_dict(self):
        event = LedgerEvent(
            event_type=LedgerEventType.TRANSACTION_CREATED,
            transaction_ids=["a"],
            details={"k": 1},
        )
        logged = event.to_log_dict()
        assert logged["event_type"] == "transaction_created"
        assert logged["transaction_ids"] == ["a"]
        assert logged["details"] == {"k": 1}
        assert logged["event_id"] == str(event.event_id)
