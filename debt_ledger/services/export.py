"""
Backup Export

Serializes a read-only snapshot of the ledger for external backup.
Nothing here feeds data back into the engine.
"""

import json
from datetime import datetime, timezone
from typing import Iterable

from debt_ledger.errors import ErrorCode, LedgerValidationError
from debt_ledger.models.transaction import LedgerSnapshot, Transaction


def export_to_json(transactions: Iterable[Transaction], indent: int = 2) -> str:
    """
    Render transactions as a pretty-printed, versioned JSON document.

    The layout matches the persisted snapshot plus an export timestamp,
    so a backup can be inspected by hand or restored by copying it
    into the data directory.
    """
    if isinstance(transactions, (str, bytes, dict)):
        raise LedgerValidationError(
            "Transactions must be a sequence of records",
            code=ErrorCode.INVALID_FORMAT,
        )

    document = LedgerSnapshot(transactions=list(transactions)).to_storage_dict()
    document["exportedAt"] = datetime.now(timezone.utc).isoformat()
    return json.dumps(document, indent=indent, ensure_ascii=False)
