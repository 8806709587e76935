"""Ledger store and settlement operations."""

from debt_ledger.ledger.settlement import SettlementOperations
from debt_ledger.ledger.store import (
    LedgerListener,
    LedgerStore,
    generate_transaction_id,
    utc_now,
)

__all__ = [
    "LedgerListener",
    "LedgerStore",
    "SettlementOperations",
    "generate_transaction_id",
    "utc_now",
]
