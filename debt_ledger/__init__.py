"""
Debt Ledger - Source Package

A local-only personal ledger for informal debts between the user and
named counterparties, with partial repayment support.

DESIGN PRINCIPLES:
1. Validate first, mutate second; nothing is ever half-applied
2. Memory is authoritative; storage is best-effort but always atomic
3. Partial payments are history, never edited
4. Storage layer is swappable
"""

from debt_ledger.engine import LedgerEngine, create_engine
from debt_ledger.errors import (
    ErrorCode,
    ErrorKind,
    LedgerError,
    LedgerStorageError,
    LedgerValidationError,
    TransactionNotFoundError,
)
from debt_ledger.models import DebtType, Transaction

__version__ = "1.0.0"

__all__ = [
    "DebtType",
    "ErrorCode",
    "ErrorKind",
    "LedgerEngine",
    "LedgerError",
    "LedgerStorageError",
    "LedgerValidationError",
    "Transaction",
    "TransactionNotFoundError",
    "create_engine",
]
