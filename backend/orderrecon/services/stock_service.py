# Overview: Stock adjustment coordinator; maps order status transitions to per-item stock deltas.

"""
Stock effect of a status transition (per line item, times quantity):

    completed -> cancelled : +quantity   (restock)
    cancelled -> completed : -quantity   (re-deduct, availability re-validated)
    everything else        : 0           (stock was deducted when the sale was created)

ALL-OR-NOTHING:
- Availability is checked for every product before any negative delta.
  One shortfall aborts the transition with ValidationError listing all
  shortfalls; nothing is applied.
- If a ledger call fails half way, the deltas already applied by this call
  are reversed before the error is re-raised.
"""

from __future__ import annotations

from collections import OrderedDict
from decimal import Decimal
from typing import Iterable

from flask import current_app

from ..domain import (
    OrderItem,
    StockDelta,
    StockDeltaResult,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
    ZERO,
)
from ..errors import ReconcileError, ValidationError
from ..models.stock import MOVEMENT_RETURN, MOVEMENT_SALE, MOVEMENT_COMPENSATION
from .stock_ledger_service import StockLedgerClient


def stock_delta_sign(from_status: str, to_status: str) -> int:
    if from_status == STATUS_COMPLETED and to_status == STATUS_CANCELLED:
        return 1
    if from_status == STATUS_CANCELLED and to_status == STATUS_COMPLETED:
        return -1
    return 0


def plan_stock_deltas(items: Iterable[OrderItem], from_status: str, to_status: str) -> list[StockDelta]:
    """
    Per-product deltas for a transition. Lines for the same product are
    summed so availability is checked against the combined quantity.
    """
    sign = stock_delta_sign(from_status, to_status)
    if sign == 0:
        return []

    totals: "OrderedDict[int, list]" = OrderedDict()
    for item in items:
        if item.quantity <= 0:
            continue
        entry = totals.setdefault(item.product_id, [item.product_name, ZERO])
        entry[1] += item.quantity

    return [
        StockDelta(product_id=pid, product_name=name, quantity_delta=qty * sign)
        for pid, (name, qty) in totals.items()
    ]


class StockAdjustmentCoordinator:
    def __init__(self, ledger: StockLedgerClient):
        self.ledger = ledger

    def reconcile_stock(
        self,
        order_id: int,
        items: Iterable[OrderItem],
        from_status: str,
        to_status: str,
        *,
        order_number: str | None = None,
        intent_id: int | None = None,
    ) -> list[StockDeltaResult]:
        """
        Apply the stock side of a status transition.

        Returns the applied deltas (empty when the transition has no stock effect).

        Raises:
            ValidationError: insufficient stock for a re-deduction (details["shortfalls"])
            NotFoundError / NetworkError: from the ledger; nothing is left applied
        """
        plan = plan_stock_deltas(items, from_status, to_status)
        if not plan:
            return []

        label = order_number or str(order_id)
        negative = [d for d in plan if d.quantity_delta < 0]
        if negative:
            self._ensure_available(order_id, negative)

        applied: list[StockDeltaResult] = []
        try:
            for delta in plan:
                if delta.quantity_delta > 0:
                    reason = f"Order {label} cancelled - stock restored"
                    movement_type = MOVEMENT_RETURN
                else:
                    reason = f"Order {label} {to_status} - stock deducted"
                    movement_type = MOVEMENT_SALE
                applied.append(self.ledger.apply_delta(
                    delta.product_id,
                    delta.quantity_delta,
                    reason,
                    order_id=order_id,
                    order_number=order_number,
                    movement_type=movement_type,
                    validated=True,
                    intent_id=intent_id,
                ))
        except ReconcileError as exc:
            if applied:
                uncompensated = self._compensate(order_id, order_number, applied, intent_id)
                if uncompensated:
                    exc.details["uncompensated"] = uncompensated
            raise

        return applied

    def _ensure_available(self, order_id: int, deltas: list[StockDelta]) -> None:
        shortfalls = []
        for delta in deltas:
            check = self.ledger.validate_availability(delta.product_id, -delta.quantity_delta)
            if not check.is_valid:
                shortfalls.append({
                    "product_id": delta.product_id,
                    "product_name": delta.product_name,
                    **check.to_dict(),
                })

        if shortfalls:
            raise ValidationError(
                "Insufficient stock to complete the order",
                details={"order_id": order_id, "shortfalls": shortfalls},
            )

    def _compensate(
        self,
        order_id: int,
        order_number: str | None,
        applied: list[StockDeltaResult],
        intent_id: int | None,
    ) -> list[dict]:
        """Reverse already-applied deltas. Returns the ones that could not be reversed."""
        uncompensated = []
        for result in reversed(applied):
            reverse: Decimal = -result.quantity_delta
            try:
                self.ledger.apply_delta(
                    result.product_id,
                    reverse,
                    f"Compensation for order {order_number or order_id}",
                    order_id=order_id,
                    order_number=order_number,
                    movement_type=MOVEMENT_COMPENSATION,
                    validated=True,
                    intent_id=intent_id,
                )
                current_app.logger.warning(
                    "Compensated stock delta for order %s product %s (%s)",
                    order_id, result.product_id, reverse,
                )
            except ReconcileError:
                current_app.logger.exception(
                    "Compensation failed for order %s product %s", order_id, result.product_id,
                )
                uncompensated.append(result.to_dict())
        return uncompensated
