"""Validation package."""

from debt_ledger.validation.validator import (
    InvariantViolation,
    TransactionValidator,
    find_invariant_violations,
)

__all__ = [
    "InvariantViolation",
    "TransactionValidator",
    "find_invariant_violations",
]
