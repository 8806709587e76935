"""
Ledger Change Events

Every committed mutation produces one LedgerEvent. Events are delivered
to subscribers and written to the structured log; they are not persisted.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class LedgerEventType(str, Enum):
    """Kinds of committed ledger changes."""
    LOADED = "loaded"
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSACTION_SETTLED = "transaction_settled"
    TRANSACTION_UNSETTLED = "transaction_unsettled"
    PARTIAL_PAYMENT_RECORDED = "partial_payment_recorded"
    TRANSACTION_EDITED = "transaction_edited"


class LedgerEvent(BaseModel):
    """A single committed change to the ledger."""

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the change was committed (UTC)"
    )
    event_type: LedgerEventType
    transaction_ids: list[str] = Field(
        default_factory=list,
        description="Records touched by the change, primary record first"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Event-specific data"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "transaction_ids": self.transaction_ids,
            "details": self.details,
        }
