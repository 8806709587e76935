"""
Ledger Aggregation

Read-only derivations over the store. Nothing here mutates records.

GUARANTEES:
- Only outstanding (unsettled) debts count toward balances
- Partial-payment records never count: they are always settled
- Sums are exact in cents (Decimal), then rounded to 2 places
"""

from decimal import Decimal
from typing import Optional

from debt_ledger.ledger.store import LedgerStore
from debt_ledger.models.transaction import (
    DebtType,
    LedgerTotals,
    PersonSummary,
    Transaction,
    ensure_utc,
    round_money,
    sum_money,
)


class LedgerQueries:
    """Balances and histories computed from the current store contents."""

    def __init__(self, store: LedgerStore):
        self._store = store

    def totals(self) -> LedgerTotals:
        owed = []
        owe = []
        for record in self._store.read():
            if record.is_settled:
                continue
            if record.type == DebtType.OWED:
                owed.append(record.amount)
            else:
                owe.append(record.amount)

        return LedgerTotals(total_owed=sum_money(owed), total_owe=sum_money(owe))

    def grouped_by_person(self) -> list[PersonSummary]:
        """
        Net balance per counterparty over outstanding debts.

        Sorted by absolute balance, largest first; ties keep the order in
        which each name first appears in the collection.
        """
        nets: dict[str, Decimal] = {}
        counts: dict[str, int] = {}

        for record in self._store.read():
            if record.is_settled or record.is_partial_payment:
                continue
            nets[record.name] = nets.get(record.name, Decimal("0")) + Decimal(str(record.signed_amount))
            counts[record.name] = counts.get(record.name, 0) + 1

        summaries = [
            PersonSummary(
                name=name,
                total_debt=round_money(net),
                transaction_count=counts[name],
            )
            for name, net in nets.items()
        ]
        # sort() is stable, so ties keep first-appearance order
        summaries.sort(key=lambda s: abs(s.total_debt), reverse=True)
        return summaries

    def person_summary(self, name: str) -> Optional[PersonSummary]:
        for summary in self.grouped_by_person():
            if summary.name == name:
                return summary
        return None

    def transactions_for(self, name: str) -> list[Transaction]:
        """All top-level records for one counterparty, collection order."""
        return [
            r for r in self._store.read()
            if r.name == name and not r.is_partial_payment
        ]

    def payment_history(self, parent_id: str) -> list[Transaction]:
        """
        Partial payments recorded against a debt, newest payment date first.

        Raises:
            TransactionNotFoundError: If the parent is absent
        """
        self._store.require(parent_id)
        payments = self._store.children_of(parent_id)
        payments.sort(key=lambda r: ensure_utc(r.date), reverse=True)
        return payments

    def settled_history(self) -> list[Transaction]:
        """Settled top-level debts, most recently settled first."""
        settled = [
            r for r in self._store.read()
            if r.is_settled and not r.is_partial_payment
        ]
        settled.sort(
            key=lambda r: ensure_utc(r.settled_date or r.date),
            reverse=True,
        )
        return settled
