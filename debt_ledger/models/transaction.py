"""
Core Data Models for the Debt Ledger

These models define the strict schemas for all ledger data. They are
designed to:
1. Be immutable once created (every change produces a new record)
2. Serialize to the persisted camelCase JSON layout
3. Keep all currency arithmetic on a single rounding rule

DESIGN DECISION: Records are frozen Pydantic models. The store replaces
records instead of mutating them, so any snapshot handed to a listener
or to the write queue can never change underneath its reader.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


SNAPSHOT_VERSION = 1

DESCRIPTION_KEY_PREFIX = "KEY:"
PARTIAL_PAYMENT_KEY = "partial_prefix"
NO_DESCRIPTION_KEY = "no_description"

_CENTS = Decimal("0.01")


def round_money(value: Union[float, int, Decimal]) -> float:
    """
    Round a currency value half-up to 2 decimal places.

    Goes through str() so that binary float noise (0.1 + 0.2) does not
    leak into the rounding decision.
    """
    return float(Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP))


def sum_money(values) -> float:
    """Sum currency values exactly and round the result."""
    total = sum((Decimal(str(v)) for v in values), Decimal("0"))
    return round_money(total)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so stored dates stay comparable."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# ENUMS
# =============================================================================

class DebtType(str, Enum):
    """
    Direction of a debt.

    OWED: the counterparty owes the user (money given).
    OWE:  the user owes the counterparty (money taken).
    """
    OWED = "OWED"
    OWE = "OWE"


# =============================================================================
# CORE TRANSACTION MODEL
# =============================================================================

class Transaction(BaseModel):
    """
    One ledger entry.

    A record with parent_id set is a partial-payment record: a settled,
    historical entry generated when part of the parent's debt was repaid.
    """
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: str = Field(
        ...,
        min_length=1,
        description="Opaque unique identifier, immutable"
    )
    name: str = Field(
        ...,
        description="Counterparty name"
    )
    type: DebtType = Field(
        ...,
        description="Direction of the debt"
    )
    amount: float = Field(
        ...,
        description="Current outstanding amount"
    )
    initial_amount: Optional[float] = Field(
        default=None,
        description="Original total, captured on the first partial payment"
    )
    description: str = Field(
        default="",
        description="Free text, opaque to the engine"
    )
    date: datetime = Field(
        ...,
        description="Economic date of the transaction"
    )
    created_at: int = Field(
        ...,
        description="Creation timestamp in epoch milliseconds"
    )
    is_settled: bool = Field(
        default=False,
        description="Whether the debt is fully resolved"
    )
    settled_date: Optional[datetime] = Field(
        default=None,
        description="When the record was settled"
    )
    parent_id: Optional[str] = Field(
        default=None,
        description="Parent transaction id for partial-payment records"
    )

    @property
    def is_partial_payment(self) -> bool:
        return self.parent_id is not None

    @property
    def original_total(self) -> float:
        """Total of the debt before any partial payments."""
        return self.initial_amount if self.initial_amount is not None else self.amount

    @property
    def signed_amount(self) -> float:
        """Amount from the user's point of view: positive when owed to them."""
        return self.amount if self.type == DebtType.OWED else -self.amount

    def to_storage_dict(self) -> dict:
        """Convert to the persisted camelCase JSON layout."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TransactionDraft(BaseModel):
    """
    Input for creating a transaction.

    Deliberately loose: values are checked by TransactionValidator so
    that failures carry ledger error codes instead of Pydantic messages.
    """
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    name: Any = None
    amount: Any = None
    type: Any = DebtType.OWED
    date: Any = None
    description: Any = ""


class TransactionUpdate(BaseModel):
    """
    Partial field set for update/edit. Unset or None fields are left alone.

    Loose for the same reason as TransactionDraft.
    """
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    name: Any = None
    amount: Any = None
    type: Any = None
    date: Any = None
    description: Any = None

    def provided(self) -> dict:
        """Fields the caller explicitly set to a value."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


# =============================================================================
# AGGREGATION MODELS
# =============================================================================

class LedgerTotals(BaseModel):
    """Outstanding totals in each direction."""

    total_owed: float = Field(
        default=0.0,
        description="Money counterparties owe the user"
    )
    total_owe: float = Field(
        default=0.0,
        description="Money the user owes counterparties"
    )

    @property
    def net(self) -> float:
        return round_money(self.total_owed - self.total_owe)


class PersonSummary(BaseModel):
    """Aggregated net balance and active transaction count for one counterparty."""

    name: str
    total_debt: float = Field(
        ...,
        description="Positive = they owe the user, negative = the user owes them"
    )
    transaction_count: int = Field(ge=0)


# =============================================================================
# PERSISTENCE ENVELOPE
# =============================================================================

class LedgerSnapshot(BaseModel):
    """Versioned envelope written under the storage key."""

    version: int = SNAPSHOT_VERSION
    transactions: list[Transaction] = Field(default_factory=list)

    def to_storage_dict(self) -> dict:
        return {
            "version": self.version,
            "transactions": [t.to_storage_dict() for t in self.transactions],
        }


# =============================================================================
# DESCRIPTION CONVENTION
# =============================================================================

def partial_payment_description(note: Optional[str]) -> str:
    """
    Encode the description of a partial-payment record.

    The display layer turns "KEY:<key>:<param>" into a localized string.
    """
    note = (note or "").strip()
    if note:
        return f"{DESCRIPTION_KEY_PREFIX}{PARTIAL_PAYMENT_KEY}:{note}"
    return f"{DESCRIPTION_KEY_PREFIX}{NO_DESCRIPTION_KEY}"


def parse_description_key(description: str) -> Optional[tuple[str, str]]:
    """
    Split a structured description into (key, param).

    Returns None for plain-text descriptions. The param keeps any colons
    that were part of the original note.
    """
    if not description or not description.startswith(DESCRIPTION_KEY_PREFIX):
        return None
    _, key, *rest = description.split(":")
    return key, ":".join(rest)
