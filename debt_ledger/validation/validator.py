"""
Transaction Validation

Two kinds of checks live here:

INPUT VALIDATION:
- Name presence and length
- Amount presence, finiteness, sign and upper bound
- Date parseability and debt direction
- Partial payment bounds against the remaining amount

INVARIANT CHECKS:
- Whole-ledger consistency (ids, parent links, reconciliation)
- Used by tests and diagnostics, never to repair data

IMPORTANT: Validation NEVER silently fixes input.
Every rejection carries an ErrorCode the caller can act on.
"""

import math
from collections import defaultdict
from datetime import date, datetime, time
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field

from debt_ledger.config import LedgerRulesSettings
from debt_ledger.errors import ErrorCode, LedgerValidationError
from debt_ledger.models.transaction import (
    DebtType,
    Transaction,
    TransactionDraft,
    ensure_utc,
    round_money,
    sum_money,
)


class InvariantViolation(BaseModel):
    """A single broken ledger invariant."""

    transaction_id: str
    invariant: str = Field(
        ...,
        description="Short name of the broken rule (e.g. 'reconciliation')"
    )
    message: str


class TransactionValidator:
    """
    Validates transaction input before it reaches the store.

    All methods either return a cleaned value or raise
    LedgerValidationError with a specific ErrorCode.
    """

    def __init__(self, rules: Optional[LedgerRulesSettings] = None):
        self._rules = rules or LedgerRulesSettings()

    @property
    def rules(self) -> LedgerRulesSettings:
        return self._rules

    def validate_name(self, name: Any) -> str:
        """Trim and check the counterparty name."""
        if not isinstance(name, str) or not name.strip():
            raise LedgerValidationError(
                "Person name is required",
                code=ErrorCode.NAME_REQUIRED,
            )

        trimmed = name.strip()
        if len(trimmed) > self._rules.max_name_length:
            raise LedgerValidationError(
                f"Person name is too long (max {self._rules.max_name_length} characters)",
                code=ErrorCode.NAME_TOO_LONG,
            )
        return trimmed

    def validate_amount(self, amount: Any) -> float:
        """Parse and bound-check a transaction amount, rounded to cents."""
        value = self._parse_number(amount)
        if value is None or math.isnan(value):
            raise LedgerValidationError(
                "Amount is required and must be a valid number",
                code=ErrorCode.AMOUNT_REQUIRED,
            )

        if math.isinf(value):
            raise LedgerValidationError(
                "Amount must be a finite number",
                code=ErrorCode.AMOUNT_INVALID,
            )

        value = round_money(value)
        if value <= 0:
            raise LedgerValidationError(
                "Amount must be greater than 0",
                code=ErrorCode.AMOUNT_INVALID,
            )

        if value > self._rules.max_amount:
            raise LedgerValidationError(
                f"Amount is too large (max {self._rules.max_amount:,.0f})",
                code=ErrorCode.AMOUNT_TOO_LARGE,
            )
        return value

    def validate_date(self, value: Any) -> datetime:
        """Accept a datetime, a date or an ISO-8601 string."""
        if isinstance(value, datetime):
            return ensure_utc(value)

        if isinstance(value, date):
            return ensure_utc(datetime.combine(value, time()))

        if isinstance(value, str) and value.strip():
            text = value.strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                return ensure_utc(datetime.fromisoformat(text))
            except ValueError:
                pass

        raise LedgerValidationError(
            f"Transaction date is missing or not a valid ISO-8601 date: {value!r}",
            code=ErrorCode.DATE_INVALID,
        )

    def validate_type(self, value: Any) -> DebtType:
        try:
            return DebtType(value)
        except ValueError:
            raise LedgerValidationError(
                f"Debt type must be one of {[t.value for t in DebtType]}, got {value!r}",
                code=ErrorCode.TYPE_INVALID,
            )

    def validate_description(self, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise LedgerValidationError(
                f"Description must be text, got {type(value).__name__}",
                code=ErrorCode.DESCRIPTION_INVALID,
            )
        return value

    def validate_draft(self, draft: TransactionDraft) -> dict:
        """
        Validate a creation draft.

        Checks run in a fixed order (name, amount, date, type) so the
        first reported error is stable for a given input.

        Returns the cleaned field values.
        """
        return {
            "name": self.validate_name(draft.name),
            "amount": self.validate_amount(draft.amount),
            "date": self.validate_date(draft.date),
            "type": self.validate_type(draft.type),
            "description": self.validate_description(draft.description),
        }

    def validate_partial_payment(self, amount: Any, remaining: float) -> float:
        """
        Check a partial payment against the parent's remaining amount.

        A payment equal to the remaining amount is rejected: closing a
        debt goes through settle, not through a partial payment.
        """
        value = self._parse_number(amount)
        if value is None or not math.isfinite(value) or round_money(value) <= 0:
            raise LedgerValidationError(
                "Payment amount must be greater than 0",
                code=ErrorCode.PARTIAL_AMOUNT_INVALID,
            )

        value = round_money(value)
        if value >= remaining:
            raise LedgerValidationError(
                f"Payment amount must be less than {remaining:,.2f}",
                code=ErrorCode.PARTIAL_AMOUNT_TOO_LARGE,
            )
        return value

    def check_ledger(self, records: Iterable[Transaction]) -> list[InvariantViolation]:
        """Whole-ledger invariant check using the configured rounding tolerance."""
        return find_invariant_violations(records, tolerance=self._rules.amount_tolerance)

    @staticmethod
    def _parse_number(value: Any) -> Optional[float]:
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                return None
        return None


def find_invariant_violations(
    records: Iterable[Transaction],
    tolerance: float = 0.01,
) -> list[InvariantViolation]:
    """
    Report every ledger invariant that does not hold.

    Checks:
    - ids are unique
    - settled state and settled date agree
    - partial payments are settled and point at an existing top-level record
    - unsettled top-level records have a positive amount
    - remaining + paid == initial amount for parents with partial payments
    """
    records = list(records)
    violations = []
    by_id = {}
    children = defaultdict(list)

    for record in records:
        if record.id in by_id:
            violations.append(InvariantViolation(
                transaction_id=record.id,
                invariant="unique_id",
                message=f"Duplicate id {record.id}",
            ))
        by_id[record.id] = record
        if record.parent_id is not None:
            children[record.parent_id].append(record)

    for record in records:
        if record.is_settled != (record.settled_date is not None):
            violations.append(InvariantViolation(
                transaction_id=record.id,
                invariant="settled_date",
                message="is_settled and settled_date disagree",
            ))

        if record.parent_id is not None:
            parent = by_id.get(record.parent_id)
            if not record.is_settled:
                violations.append(InvariantViolation(
                    transaction_id=record.id,
                    invariant="partial_settled",
                    message="Partial payment record is not settled",
                ))
            if parent is None:
                violations.append(InvariantViolation(
                    transaction_id=record.id,
                    invariant="parent_exists",
                    message=f"Parent {record.parent_id} does not exist",
                ))
            elif parent.parent_id is not None:
                violations.append(InvariantViolation(
                    transaction_id=record.id,
                    invariant="parent_depth",
                    message=f"Parent {parent.id} is itself a partial payment",
                ))
        elif not record.is_settled and record.amount <= 0:
            violations.append(InvariantViolation(
                transaction_id=record.id,
                invariant="positive_amount",
                message=f"Unsettled record has non-positive amount {record.amount}",
            ))

    for parent_id, kids in children.items():
        parent = by_id.get(parent_id)
        if parent is None:
            continue
        if parent.initial_amount is None:
            violations.append(InvariantViolation(
                transaction_id=parent_id,
                invariant="reconciliation",
                message="Parent with partial payments has no initial amount",
            ))
            continue
        paid = sum_money(k.amount for k in kids)
        if abs(round_money(parent.amount + paid) - parent.initial_amount) > tolerance:
            violations.append(InvariantViolation(
                transaction_id=parent_id,
                invariant="reconciliation",
                message=(
                    f"Remaining {parent.amount} + paid {paid} "
                    f"!= initial {parent.initial_amount}"
                ),
            ))

    return violations
