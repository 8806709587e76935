"""
Data Models Package

All records flowing through the ledger conform to these schemas.
"""

from debt_ledger.models.transaction import (
    SNAPSHOT_VERSION,
    DebtType,
    LedgerSnapshot,
    LedgerTotals,
    PersonSummary,
    Transaction,
    TransactionDraft,
    TransactionUpdate,
    ensure_utc,
    parse_description_key,
    partial_payment_description,
    round_money,
    sum_money,
)
from debt_ledger.models.events import LedgerEvent, LedgerEventType

__all__ = [
    # Transaction models
    "SNAPSHOT_VERSION",
    "DebtType",
    "LedgerSnapshot",
    "LedgerTotals",
    "PersonSummary",
    "Transaction",
    "TransactionDraft",
    "TransactionUpdate",
    "ensure_utc",
    "parse_description_key",
    "partial_payment_description",
    "round_money",
    "sum_money",
    # Events
    "LedgerEvent",
    "LedgerEventType",
]
