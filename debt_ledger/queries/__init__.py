"""Read-only ledger queries."""

from debt_ledger.queries.aggregation import LedgerQueries

__all__ = ["LedgerQueries"]
