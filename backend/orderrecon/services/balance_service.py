# Overview: Balance reconciliation coordinator; maps status/payment-method/customer edits to receivable deltas.

"""
Receivable effect of an order edit (only when the order has a customer):

STATUS:
    not credit -> credit      : +total  (customer now owes the order)
    credit     -> not credit  : -total  (debt cleared)
    * -> cancelled, payment method credit (and status was not credit): -total
    anything else             : 0

PAYMENT METHOD:
    cash -> credit                 : +total
    credit -> cash                 : -total
    credit -> card / bank_transfer : -total
    card / bank_transfer -> credit : +total
    anything else                  : 0

CUSTOMER (credit-bearing orders only):
    old customer -total, new customer +total

A combined status + payment-method edit applies only the status-driven
delta; the caller drops the payment-method plan.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable

from ..domain import (
    BalanceTransaction,
    Order,
    PAYMENT_CASH,
    PAYMENT_CREDIT,
    ELECTRONIC_PAYMENT_METHODS,
    STATUS_CREDIT,
    STATUS_CANCELLED,
    TXN_CREDIT,
    TXN_DEBIT,
    ZERO,
    quantize_money,
)
from .balance_ledger_service import BalanceLedgerClient


@dataclass(frozen=True)
class BalanceEntry:
    """One planned receivable change. Serializable into the intent log."""
    customer_id: int
    amount: Decimal
    type: str
    description: str

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "amount": str(self.amount),
            "type": self.type,
            "description": self.description,
            "applied": False,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BalanceEntry":
        return cls(
            customer_id=int(data["customer_id"]),
            amount=Decimal(str(data["amount"])),
            type=data["type"],
            description=data["description"],
        )


def _txn_type(amount: Decimal) -> str:
    return TXN_CREDIT if amount > 0 else TXN_DEBIT


def status_balance_delta(total, from_status: str, to_status: str, payment_method: str | None = None) -> Decimal:
    amount = quantize_money(total)
    if from_status == to_status:
        return ZERO
    if to_status == STATUS_CREDIT:
        return amount
    if from_status == STATUS_CREDIT:
        return -amount
    if to_status == STATUS_CANCELLED and payment_method == PAYMENT_CREDIT:
        return -amount
    return ZERO


def payment_method_balance_delta(total, from_method: str, to_method: str) -> Decimal:
    amount = quantize_money(total)
    if from_method == to_method:
        return ZERO
    if to_method == PAYMENT_CREDIT and (from_method == PAYMENT_CASH or from_method in ELECTRONIC_PAYMENT_METHODS):
        return amount
    if from_method == PAYMENT_CREDIT and (to_method == PAYMENT_CASH or to_method in ELECTRONIC_PAYMENT_METHODS):
        return -amount
    return ZERO


def _status_description(order_number: str, from_status: str, to_status: str) -> str:
    if to_status == STATUS_CREDIT:
        return f"Order {order_number} changed to credit - customer owes amount"
    if from_status == STATUS_CREDIT:
        return f"Order {order_number} status changed from credit - debt cleared"
    return f"Order {order_number} cancelled - credit sale debt cleared"


def _payment_description(order_number: str, from_method: str, to_method: str) -> str:
    if from_method == PAYMENT_CREDIT and to_method == PAYMENT_CASH:
        return f"Order {order_number} payment changed from credit to cash - debt cleared"
    if from_method == PAYMENT_CREDIT:
        return f"Order {order_number} payment changed from credit to {to_method} - debt cleared"
    return f"Order {order_number} payment changed from {from_method} to credit"


# =============================================================================
# PLANNING (pure)
# =============================================================================

def plan_status_balance(
    customer_id: int | None,
    total,
    from_status: str,
    to_status: str,
    *,
    order_number: str,
    payment_method: str | None = None,
) -> list[BalanceEntry]:
    if customer_id is None:
        return []
    amount = status_balance_delta(total, from_status, to_status, payment_method)
    if amount == 0:
        return []
    return [BalanceEntry(
        customer_id=customer_id,
        amount=amount,
        type=_txn_type(amount),
        description=_status_description(order_number, from_status, to_status),
    )]


def plan_payment_method_balance(
    customer_id: int | None,
    total,
    from_method: str,
    to_method: str,
    *,
    order_number: str,
) -> list[BalanceEntry]:
    if customer_id is None:
        return []
    amount = payment_method_balance_delta(total, from_method, to_method)
    if amount == 0:
        return []
    return [BalanceEntry(
        customer_id=customer_id,
        amount=amount,
        type=_txn_type(amount),
        description=_payment_description(order_number, from_method, to_method),
    )]


def plan_customer_change_balance(order: Order, from_customer: int | None, to_customer: int | None) -> list[BalanceEntry]:
    """Move the outstanding total between customers when the order carries a receivable."""
    if from_customer == to_customer or not order.is_credit_bearing or order.is_cancelled:
        return []
    amount = quantize_money(order.total)
    if amount == 0:
        return []

    entries = []
    if from_customer is not None:
        entries.append(BalanceEntry(
            customer_id=from_customer,
            amount=-amount,
            type=TXN_DEBIT,
            description=f"Order {order.order_number} reassigned to another customer - debt transferred",
        ))
    if to_customer is not None:
        entries.append(BalanceEntry(
            customer_id=to_customer,
            amount=amount,
            type=TXN_CREDIT,
            description=f"Order {order.order_number} assigned to customer - customer owes amount",
        ))
    return entries


# =============================================================================
# COORDINATOR
# =============================================================================

class BalanceReconciliationCoordinator:
    def __init__(self, ledger: BalanceLedgerClient):
        self.ledger = ledger

    def apply_entries(
        self,
        entries: Iterable[BalanceEntry],
        *,
        order_id: int | None = None,
        order_number: str | None = None,
        on_applied: Callable[[int, BalanceTransaction], None] | None = None,
    ) -> list[BalanceTransaction]:
        """
        Apply planned entries in order. Stops at the first failure and
        re-raises; on_applied(index, txn) is called after each success so the
        caller can record progress.
        """
        transactions = []
        for index, entry in enumerate(entries):
            txn = self.ledger.apply_delta(
                entry.customer_id,
                entry.amount,
                entry.type,
                entry.description,
                order_id=order_id,
                order_number=order_number,
            )
            transactions.append(txn)
            if on_applied is not None:
                on_applied(index, txn)
        return transactions

    def reconcile_balance_for_status(
        self,
        order_id: int,
        customer_id: int | None,
        total,
        from_status: str,
        to_status: str,
        *,
        order_number: str | None = None,
        payment_method: str | None = None,
    ) -> BalanceTransaction | None:
        label = order_number or str(order_id)
        entries = plan_status_balance(
            customer_id, total, from_status, to_status,
            order_number=label, payment_method=payment_method,
        )
        applied = self.apply_entries(entries, order_id=order_id, order_number=order_number)
        return applied[0] if applied else None

    def reconcile_balance_for_payment_method(
        self,
        order_id: int,
        customer_id: int | None,
        total,
        from_method: str,
        to_method: str,
        *,
        order_number: str | None = None,
    ) -> BalanceTransaction | None:
        label = order_number or str(order_id)
        entries = plan_payment_method_balance(customer_id, total, from_method, to_method, order_number=label)
        applied = self.apply_entries(entries, order_id=order_id, order_number=order_number)
        return applied[0] if applied else None

    def reconcile_balance_for_customer_change(
        self,
        order: Order,
        from_customer: int | None,
        to_customer: int | None,
    ) -> list[BalanceTransaction]:
        entries = plan_customer_change_balance(order, from_customer, to_customer)
        return self.apply_entries(entries, order_id=order.id, order_number=order.order_number)
