# Overview: Balance ledger client; signed receivable changes against the remote Receivables Service.

"""
Balance Ledger Invariants

- Amounts are signed: positive means the customer owes more (type credit),
  negative means the customer owes less (type debit).
- Each change is computed read-then-write against the latest balance so the
  returned transaction carries previous_balance and new_balance even when the
  remote service answers with an empty body.
- Writes are sent once. A NetworkError on a write is surfaced to the caller,
  who decides whether the change is retried (the reconciliation job).
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..domain import (
    BalanceTransaction,
    CustomerBalance,
    TXN_CREDIT,
    TXN_DEBIT,
    VALID_TXN_TYPES,
    quantize_money,
)
from ..errors import NotFoundError, ValidationError
from ..time_utils import utcnow


class BalanceLedgerClient:
    def __init__(self, receivables):
        self.receivables = receivables

    def get_balance(self, customer_id: int) -> CustomerBalance:
        payload = self.receivables.get_customer_balance(customer_id)
        if not payload:
            raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
        return CustomerBalance.from_payload(customer_id, payload)

    def history(self, customer_id: int, limit: int = 50, offset: int = 0) -> list[BalanceTransaction]:
        if limit <= 0 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")

        transactions = []
        for payload in self.receivables.get_history(customer_id, limit=limit, offset=offset):
            fallback = BalanceTransaction(
                customer_id=customer_id,
                amount=Decimal("0"),
                type=TXN_CREDIT,
                description="",
                previous_balance=Decimal("0"),
                new_balance=Decimal("0"),
            )
            transactions.append(BalanceTransaction.from_payload(payload, fallback=fallback))
        return transactions

    def apply_delta(
        self,
        customer_id: int,
        signed_amount,
        txn_type: str,
        description: str,
        *,
        order_id: int | None = None,
        order_number: str | None = None,
    ) -> BalanceTransaction:
        """
        Apply a signed change to a customer's receivable.

        Raises:
            ValidationError: zero amount, unknown transaction type
            NotFoundError: customer unknown to the receivables service
            NetworkError: receivables service unreachable / timed out
        """
        amount = quantize_money(signed_amount)
        if amount == 0:
            raise ValidationError("Balance delta must be non-zero", details={"customer_id": customer_id})
        if txn_type not in VALID_TXN_TYPES:
            raise ValidationError(
                f"Invalid transaction type '{txn_type}'",
                details={"type": txn_type},
            )

        current = self.get_balance(customer_id)
        expected = BalanceTransaction(
            customer_id=customer_id,
            amount=amount,
            type=txn_type,
            description=description,
            previous_balance=current.current_balance,
            new_balance=current.current_balance + amount,
            order_id=order_id,
            order_number=order_number,
            created_at=utcnow(),
        )

        response = self.receivables.apply_balance_delta(
            customer_id,
            amount,
            txn_type,
            description,
            order_id=order_id,
            order_number=order_number,
        )
        txn = BalanceTransaction.from_payload(response or {}, fallback=expected)

        current_app.logger.info(
            "Balance delta applied: customer=%s amount=%s balance %s -> %s (%s)",
            customer_id, amount, txn.previous_balance, txn.new_balance, description,
        )
        return txn

    def record_payment(
        self,
        customer_id: int,
        amount,
        payment_method: str,
        reference: str | None = None,
        notes: str | None = None,
    ) -> BalanceTransaction:
        """Manual payment against the receivable, recorded as a debit."""
        value = quantize_money(amount)
        if value <= 0:
            raise ValidationError("Payment amount must be positive", details={"amount": str(value)})

        description = f"Manual payment recorded - {payment_method}"
        if reference:
            description += f" (Ref: {reference})"
        if notes:
            description += f" - {notes}"

        return self.apply_delta(customer_id, -value, TXN_DEBIT, description)
