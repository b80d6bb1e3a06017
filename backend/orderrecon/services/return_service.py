# Overview: Return/adjustment processor; partial returns with restock and refund in one Order Service request.

"""
Partial Returns

RULES:
- Only completed orders accept returns; pending, credit and cancelled orders
  are refused (StateError).
- Requested quantities are clamped into [0, ordered quantity] per product,
  where the ordered quantity sums every order line for that product.
  Request lines for the same product are summed before clamping.
- The clamped quantity fills the product's order lines in order, so each
  returned unit is refunded at the price of the line it came from.
- A request where every clamped quantity is zero is refused (ValidationError).
- Unknown product ids are refused (ValidationError).
- refund_amount = sum(returned quantity x unit price), rounded half-up to cents.

ATOMICITY:
The Order Service performs restock + refund in one combined request
(restockItems=True). Only after it succeeds are the StockMovement rows and the
AdjustmentRecord committed locally. A failed request leaves a FAILED
AdjustmentRecord and no movements.

Returns do not touch the customer's receivable.
"""

from __future__ import annotations

from collections import OrderedDict
from decimal import Decimal
from typing import Iterable

from flask import current_app

from ..extensions import db
from ..domain import (
    ItemReturn,
    Order,
    ReturnResult,
    STATUS_COMPLETED,
    ZERO,
    quantize_money,
    to_decimal,
)
from ..errors import ConflictError, ReconcileError, StateError, ValidationError
from ..models import AdjustmentRecord
from ..models.reconciliation import ADJUSTMENT_COMPLETED, ADJUSTMENT_FAILED
from ..models.stock import MOVEMENT_RETURN
from .concurrency import commit_with_retry
from .stock_ledger_service import StockLedgerClient
from .transition_service import ensure_editable


def clamp_return_quantity(requested, original) -> Decimal:
    requested = to_decimal(requested, "return_quantity")
    original = to_decimal(original, "quantity")
    if requested <= 0:
        return ZERO
    return min(requested, original)


def compute_refund(lines: Iterable[tuple]) -> Decimal:
    """lines: (returned_quantity, unit_price) pairs."""
    total = ZERO
    for quantity, unit_price in lines:
        total += to_decimal(quantity, "quantity") * to_decimal(unit_price, "unit_price")
    return quantize_money(total)


def _new_stock_by_product(response: dict) -> dict[int, Decimal]:
    stock = {}
    for item in response.get("items") or []:
        product_id = item.get("productId", item.get("product_id"))
        new_stock = item.get("newStock", item.get("new_stock"))
        if product_id is not None and new_stock is not None:
            stock[int(product_id)] = to_decimal(new_stock, "newStock")
    return stock


def _per_product(lines: list[dict]) -> "OrderedDict[int, dict]":
    totals: "OrderedDict[int, dict]" = OrderedDict()
    for line in lines:
        entry = totals.setdefault(line["product_id"], {
            "quantity": ZERO,
            "product_name": line["product_name"],
            "reason": line["reason"],
        })
        entry["quantity"] += line["returned_quantity"]
    return totals


class ReturnProcessor:
    def __init__(self, orders, stock_ledger: StockLedgerClient):
        self.orders = orders
        self.stock_ledger = stock_ledger

    def _existing(self, request_key: str | None) -> AdjustmentRecord | None:
        if not request_key:
            return None
        return db.session.query(AdjustmentRecord).filter_by(request_key=request_key).first()

    def build_lines(self, order: Order, item_returns: Iterable[ItemReturn]) -> list[dict]:
        """
        Clamp the requested quantities against the order and spread each
        product's quantity over its order lines. Zero lines are dropped.
        """
        requested: "OrderedDict[int, list]" = OrderedDict()
        for item_return in item_returns:
            if order.item_for(item_return.product_id) is None:
                raise ValidationError(
                    f"Product {item_return.product_id} is not part of order {order.order_number}",
                    details={"order_id": order.id, "product_id": item_return.product_id},
                )
            entry = requested.setdefault(item_return.product_id, [ZERO, item_return.reason])
            entry[0] += max(item_return.return_quantity, ZERO)

        lines = []
        for product_id, (quantity, reason) in requested.items():
            items = order.items_for(product_id)
            remaining = clamp_return_quantity(quantity, sum((item.quantity for item in items), ZERO))
            # fill the product's lines in order; each keeps its own unit price
            for item in items:
                if remaining == 0:
                    break
                taken = min(remaining, item.quantity)
                if taken <= 0:
                    continue
                remaining -= taken
                lines.append({
                    "product_id": product_id,
                    "product_name": item.product_name,
                    "returned_quantity": taken,
                    "unit_price": item.unit_price,
                    "reason": reason,
                })

        if not lines:
            raise ValidationError(
                "Select at least one item to return",
                details={"order_id": order.id},
            )
        return lines

    def process_return(
        self,
        order: Order,
        item_returns: Iterable[ItemReturn],
        notes: str | None = None,
        request_key: str | None = None,
    ) -> ReturnResult:
        """
        Raises:
            StateError: order is not completed
            ValidationError: unknown product, nothing to return
            ConflictError: request_key already processed
            NetworkError / ValidationError: from the Order Service adjustment
        """
        ensure_editable(order, "return items on")
        if order.status != STATUS_COMPLETED:
            raise StateError(
                f"Order {order.order_number} is {order.status}; only completed orders accept returns",
                details={"order_id": order.id, "status": order.status},
            )

        existing = self._existing(request_key)
        if existing is not None and existing.status == ADJUSTMENT_COMPLETED:
            raise ConflictError(
                f"Return request {request_key} already processed",
                details={"order_id": order.id, "adjustment_id": existing.id, "request_key": request_key},
            )

        lines = self.build_lines(order, item_returns)
        refund_amount = compute_refund((line["returned_quantity"], line["unit_price"]) for line in lines)
        adjustment_reason = notes or f"Return for order {order.order_number}"

        per_product = _per_product(lines)
        payload = {
            "type": "return",
            "items": [
                {
                    "productId": product_id,
                    "quantity": entry["quantity"],
                    "reason": entry["reason"],
                }
                for product_id, entry in per_product.items()
            ],
            "adjustmentReason": adjustment_reason,
            "refundAmount": refund_amount,
            "restockItems": True,
        }

        record = existing or AdjustmentRecord(order_id=order.id, order_number=order.order_number, request_key=request_key)
        record.items = [
            {
                "product_id": line["product_id"],
                "returned_quantity": str(line["returned_quantity"]),
                "unit_price": str(line["unit_price"]),
                "reason": line["reason"],
            }
            for line in lines
        ]
        record.refund_amount = refund_amount
        record.notes = notes

        try:
            response = self.orders.adjust_order(order.id, payload)
        except ReconcileError as exc:
            record.status = ADJUSTMENT_FAILED
            record.restocked = False
            record.last_error = exc.message
            db.session.add(record)
            commit_with_retry()
            current_app.logger.warning("Return on order %s failed: %s", order.id, exc.message)
            raise

        new_stock = _new_stock_by_product(response)
        for product_id, entry in per_product.items():
            self.stock_ledger.record_external_movement(
                product_id,
                entry["quantity"],
                f"Return on order {order.order_number} - {entry['reason']}",
                movement_type=MOVEMENT_RETURN,
                product_name=entry["product_name"],
                balance_after=new_stock.get(product_id),
                order_id=order.id,
                order_number=order.order_number,
            )

        record.status = ADJUSTMENT_COMPLETED
        record.restocked = True
        record.last_error = None
        db.session.add(record)
        db.session.flush()
        commit_with_retry()

        current_app.logger.info(
            "Return processed: order=%s refund=%s lines=%s", order.id, refund_amount, len(lines),
        )
        return ReturnResult(
            order_id=order.id,
            refund_amount=refund_amount,
            restocked=True,
            items=tuple(record.items),
            adjustment_id=record.id,
        )
