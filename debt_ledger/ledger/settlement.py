"""
Settlement Operations

Higher-level operations on the ledger store that keep parents and their
partial payments reconciled:

    remaining(parent) + sum(partial payments) == initial_amount (+/- 0.01)

Every operation validates fully before touching the store and then applies
its mutations inside a single LedgerStore.atomic() unit, so a failure part
way through leaves nothing behind.
"""

from datetime import datetime
from typing import Any, Iterable, Optional, Union

import structlog

from debt_ledger.errors import ErrorCode, LedgerValidationError
from debt_ledger.ledger.store import LedgerStore
from debt_ledger.models.events import LedgerEventType
from debt_ledger.models.transaction import (
    Transaction,
    TransactionUpdate,
    partial_payment_description,
    round_money,
    sum_money,
)


class SettlementOperations:
    """Settle, reopen, partially repay, reconcile and cascade-delete debts."""

    def __init__(self, store: LedgerStore):
        self._store = store
        self._logger = structlog.get_logger(__name__)

    def settle(self, transaction_id: str) -> Transaction:
        """
        Mark a record settled as of now.

        Re-settling an already settled record refreshes settled_date;
        callers wanting a no-op must check is_settled first.
        """
        record = self._store.require(transaction_id)
        settled = record.model_copy(update={
            "is_settled": True,
            "settled_date": self._store.now(),
        })
        with self._store.atomic(LedgerEventType.TRANSACTION_SETTLED):
            self._store.replace(settled)

        self._logger.info(
            "transaction_settled",
            transaction_id=transaction_id,
            amount=settled.amount,
        )
        return settled

    def unsettle(self, transaction_id: str) -> Transaction:
        """
        Reopen a settled record.

        Parents with partial payments may be reopened. Partial payments
        themselves are historical and always stay settled, and a debt with
        nothing left to pay cannot become outstanding again.
        """
        record = self._store.require(transaction_id)
        if record.is_partial_payment:
            raise LedgerValidationError(
                "A partial payment cannot be reopened",
                code=ErrorCode.PARTIAL_PAYMENT_IMMUTABLE,
            )
        if record.amount <= 0:
            raise LedgerValidationError(
                "This debt is fully paid; raise its total before reopening it",
                code=ErrorCode.FULLY_PAID,
            )

        reopened = record.model_copy(update={
            "is_settled": False,
            "settled_date": None,
        })
        with self._store.atomic(LedgerEventType.TRANSACTION_UNSETTLED):
            self._store.replace(reopened)

        self._logger.info("transaction_unsettled", transaction_id=transaction_id)
        return reopened

    def record_partial_payment(
        self,
        parent_id: str,
        payment_amount: Any,
        note: Optional[str] = None,
        payment_date: Optional[Union[datetime, str]] = None,
    ) -> tuple[Transaction, Transaction]:
        """
        Record part of a debt as repaid.

        A payment equal to (or above) the remaining amount is rejected;
        closing the debt goes through settle().

        Returns:
            (updated_parent, partial_payment_record)

        Raises:
            TransactionNotFoundError: If the parent is absent
            LedgerValidationError: INVALID_PARENT, ALREADY_SETTLED,
                PARTIAL_AMOUNT_INVALID or PARTIAL_AMOUNT_TOO_LARGE
        """
        parent = self._store.require(parent_id)
        if parent.is_partial_payment:
            raise LedgerValidationError(
                "Cannot record a payment against a partial payment",
                code=ErrorCode.INVALID_PARENT,
            )
        if parent.is_settled:
            raise LedgerValidationError(
                "This debt is already settled; reopen it before recording payments",
                code=ErrorCode.ALREADY_SETTLED,
            )

        validator = self._store.validator
        amount = validator.validate_partial_payment(payment_amount, parent.amount)
        now = self._store.now()
        paid_on = validator.validate_date(payment_date) if payment_date is not None else now

        updated_parent = parent.model_copy(update={
            "initial_amount": parent.original_total,
            "amount": round_money(parent.amount - amount),
        })
        payment = Transaction(
            id=self._store.new_id(),
            name=parent.name,
            type=parent.type,
            amount=amount,
            description=partial_payment_description(note),
            date=paid_on,
            created_at=self._store.next_created_at(),
            is_settled=True,
            settled_date=now,
            parent_id=parent.id,
        )

        with self._store.atomic(
            LedgerEventType.PARTIAL_PAYMENT_RECORDED,
            amount=amount,
            remaining=updated_parent.amount,
        ):
            self._store.replace(updated_parent)
            self._store.insert(payment)

        self._logger.info(
            "partial_payment_recorded",
            parent_id=parent.id,
            payment_id=payment.id,
            amount=amount,
            remaining=updated_parent.amount,
            initial_amount=updated_parent.initial_amount,
        )
        return updated_parent, payment

    def edit_transaction(
        self,
        transaction_id: str,
        fields: Union[TransactionUpdate, dict],
        deleted_child_ids: Iterable[str] = (),
    ) -> Transaction:
        """
        Edit a debt's total and fields, optionally dropping partial payments.

        The new total must cover what the retained payments already paid.
        The parent's remaining amount is recomputed as total - paid, and
        initial_amount is dropped when no payments remain. If the new
        total exactly equals what was paid, the debt is fully repaid and
        is marked settled.

        Raises:
            TransactionNotFoundError: If the record or a deleted id is absent
            LedgerValidationError: INVALID_PARENT, INVALID_CHILD,
                AMOUNT_WARNING_PARTIALS or any field validation error
        """
        if isinstance(fields, dict):
            fields = TransactionUpdate.model_validate(fields)
        parent = self._store.require(transaction_id)
        if parent.is_partial_payment:
            raise LedgerValidationError(
                "A partial payment cannot be edited",
                code=ErrorCode.INVALID_PARENT,
            )

        deleted_ids = list(dict.fromkeys(deleted_child_ids))
        for child_id in deleted_ids:
            child = self._store.require(child_id)
            if child.parent_id != transaction_id:
                raise LedgerValidationError(
                    f"Transaction {child_id} is not a partial payment of {transaction_id}",
                    code=ErrorCode.INVALID_CHILD,
                )

        # The edited amount is a new total, not a new remaining amount
        changes = self._store.clean_changes(parent, fields.model_copy(update={"amount": None}))
        if fields.amount is not None:
            total = self._store.validator.validate_amount(fields.amount)
        else:
            total = parent.original_total

        retained = [
            c for c in self._store.children_of(transaction_id)
            if c.id not in deleted_ids
        ]
        paid = sum_money(c.amount for c in retained)
        if total < paid:
            raise LedgerValidationError(
                f"Total ({total:,.2f}) cannot be less than the amount already paid ({paid:,.2f})",
                code=ErrorCode.AMOUNT_WARNING_PARTIALS,
            )

        changes["amount"] = round_money(total - paid)
        changes["initial_amount"] = total if paid > 0 else None
        if changes["amount"] <= 0 and not parent.is_settled:
            changes["is_settled"] = True
            changes["settled_date"] = self._store.now()

        updated = parent.model_copy(update=changes)
        with self._store.atomic(
            LedgerEventType.TRANSACTION_EDITED,
            total=total,
            paid=paid,
            deleted_payments=deleted_ids,
        ):
            for child_id in deleted_ids:
                self._store.remove(child_id)
            self._store.replace(updated)

        self._logger.info(
            "transaction_edited",
            transaction_id=transaction_id,
            total=total,
            paid=paid,
            remaining=updated.amount,
            deleted_payments=len(deleted_ids),
        )
        return updated

    def delete(self, transaction_id: str) -> list[Transaction]:
        """
        Delete a record without leaving the ledger inconsistent.

        - Parent: its partial payments are removed with it.
        - Partial payment: its amount goes back onto the parent's
          remaining amount.

        Returns:
            Every record removed, the requested one first
        """
        record = self._store.require(transaction_id)

        if record.is_partial_payment:
            parent = self._store.get(record.parent_id)
            if parent is not None:
                with self._store.atomic(
                    LedgerEventType.TRANSACTION_DELETED,
                    restored_to=parent.id,
                    amount=record.amount,
                ):
                    self.edit_transaction(parent.id, TransactionUpdate(), [transaction_id])
                self._logger.info(
                    "partial_payment_deleted",
                    transaction_id=transaction_id,
                    parent_id=parent.id,
                    amount=record.amount,
                )
                return [record]
            # Orphaned payment (parent already gone): plain delete
            return [self._store.delete(transaction_id)]

        children = self._store.children_of(transaction_id)
        with self._store.atomic(
            LedgerEventType.TRANSACTION_DELETED,
            cascaded=len(children),
        ):
            self._store.remove(transaction_id)
            for child in children:
                self._store.remove(child.id)

        self._logger.info(
            "transaction_deleted",
            transaction_id=transaction_id,
            cascaded=len(children),
        )
        return [record, *children]
