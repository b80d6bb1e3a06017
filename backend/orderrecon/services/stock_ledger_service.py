# Overview: Stock ledger client; validates availability, applies signed deltas remotely, records movements locally.

"""
Stock Ledger Invariants

- The inventory service owns the stock number; this client only asks it to
  apply signed deltas and reads it back.
- Every successful delta appends exactly one StockMovement row (append-only,
  never updated or deleted).
- A delta that would drive stock negative is refused with ValidationError,
  unless the caller already validated availability for the whole batch.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..domain import (
    StockAlert,
    StockDeltaResult,
    StockValidationResult,
    to_decimal,
    ZERO,
)
from ..errors import ReconcileError, ValidationError, NotFoundError
from ..models import StockMovement
from ..models.stock import MOVEMENT_SALE, MOVEMENT_RESTOCK
from .concurrency import commit_with_retry


def _stock_of(product: dict) -> Decimal:
    for key in ("stock", "currentStock", "current_stock", "quantity"):
        if product.get(key) is not None:
            return to_decimal(product[key], "stock")
    return ZERO


def _name_of(product: dict) -> str | None:
    return product.get("name") or product.get("productName") or product.get("product_name")


class StockLedgerClient:
    def __init__(self, inventory):
        self.inventory = inventory

    # -------------------------------------------------------------------------
    # reads
    # -------------------------------------------------------------------------

    def _get_product(self, product_id: int) -> dict:
        product = self.inventory.get_product(product_id)
        if not product:
            raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
        return product

    def current_stock(self, product_id: int) -> Decimal:
        return _stock_of(self._get_product(product_id))

    def validate_availability(self, product_id: int, requested_quantity) -> StockValidationResult:
        requested = to_decimal(requested_quantity, "requested_quantity")
        available = self.current_stock(product_id)

        if requested <= available:
            return StockValidationResult(
                is_valid=True,
                available_stock=available,
                requested_quantity=requested,
                message="Stock available",
            )
        return StockValidationResult(
            is_valid=False,
            available_stock=available,
            requested_quantity=requested,
            shortfall=requested - available,
            message=f"Insufficient stock. Available: {available}, Requested: {requested}",
        )

    def movements(self, *, product_id: int | None = None, order_id: int | None = None, limit: int = 100) -> list[StockMovement]:
        q = db.session.query(StockMovement)
        if product_id is not None:
            q = q.filter(StockMovement.product_id == product_id)
        if order_id is not None:
            q = q.filter(StockMovement.order_id == order_id)
        return q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).limit(limit).all()

    # -------------------------------------------------------------------------
    # writes
    # -------------------------------------------------------------------------

    def apply_delta(
        self,
        product_id: int,
        signed_quantity,
        reason: str,
        *,
        order_id: int | None = None,
        order_number: str | None = None,
        movement_type: str | None = None,
        validated: bool = False,
        intent_id: int | None = None,
        commit: bool = True,
    ) -> StockDeltaResult:
        """
        Apply a signed stock change and record the movement.

        Raises:
            NotFoundError: product unknown to the inventory service
            ValidationError: zero delta, or stock would go negative (validated=False)
            NetworkError: inventory service unreachable / timed out
        """
        delta = to_decimal(signed_quantity, "quantity")
        if delta == 0:
            raise ValidationError("Stock delta must be non-zero", details={"product_id": product_id})

        product = self._get_product(product_id)
        before = _stock_of(product)

        if delta < 0 and not validated and before + delta < 0:
            raise ValidationError(
                f"Insufficient stock for product {product_id}. Available: {before}, Requested: {-delta}",
                details={
                    "product_id": product_id,
                    "available_stock": str(before),
                    "requested_quantity": str(-delta),
                    "shortfall": str(-(before + delta)),
                },
            )

        response = self.inventory.apply_stock_delta(
            product_id,
            delta,
            reason,
            order_id=order_id,
            order_number=order_number,
        )
        new_stock = response.get("newStock", response.get("new_stock"))
        after = to_decimal(new_stock, "newStock") if new_stock is not None else before + delta

        movement = StockMovement(
            product_id=product_id,
            product_name=response.get("productName") or _name_of(product),
            movement_type=movement_type or (MOVEMENT_SALE if delta < 0 else MOVEMENT_RESTOCK),
            quantity_delta=delta,
            balance_before=before,
            balance_after=after,
            reason=reason,
            order_id=order_id,
            order_number=order_number,
            intent_id=intent_id,
        )
        db.session.add(movement)
        db.session.flush()
        if commit:
            commit_with_retry()

        current_app.logger.info(
            "Stock delta applied: product=%s delta=%s stock %s -> %s (%s)",
            product_id, delta, before, after, reason,
        )
        return StockDeltaResult(
            product_id=product_id,
            quantity_delta=delta,
            new_stock=after,
            movement_id=movement.id,
        )

    def record_external_movement(
        self,
        product_id: int,
        quantity_delta,
        reason: str,
        *,
        movement_type: str,
        product_name: str | None = None,
        balance_after=None,
        order_id: int | None = None,
        order_number: str | None = None,
    ) -> StockMovement:
        """
        Record a movement applied by another service in a combined request
        (order adjustments). Does not commit.
        """
        delta = to_decimal(quantity_delta, "quantity")
        if balance_after is None:
            try:
                balance_after = self.current_stock(product_id)
            except ReconcileError as exc:
                current_app.logger.warning(
                    "Could not read stock for product %s after %s: %s", product_id, movement_type, exc,
                )
        after = to_decimal(balance_after, "balance_after") if balance_after is not None else None

        movement = StockMovement(
            product_id=product_id,
            product_name=product_name,
            movement_type=movement_type,
            quantity_delta=delta,
            balance_before=after - delta if after is not None else None,
            balance_after=after,
            reason=reason,
            order_id=order_id,
            order_number=order_number,
        )
        db.session.add(movement)
        db.session.flush()
        return movement

    def apply_bulk(self, operations: list[dict]) -> dict:
        """
        Run add/deduct operations one by one; each result is reported.

        operations: [{"product_id", "quantity", "type": "add"|"deduct", "reason"?, "reference"?}]
        """
        results = []
        all_successful = True

        for operation in operations:
            product_id = operation.get("product_id")
            try:
                quantity = to_decimal(operation.get("quantity"), "quantity")
                if quantity <= 0:
                    raise ValidationError("Bulk quantity must be positive")
                if operation.get("type") == "deduct":
                    check = self.validate_availability(product_id, quantity)
                    if not check.is_valid:
                        raise ValidationError(check.message, details=check.to_dict())
                    result = self.apply_delta(
                        product_id,
                        -quantity,
                        operation.get("reason") or "Bulk deduction",
                        order_number=operation.get("reference"),
                        validated=True,
                    )
                elif operation.get("type") == "add":
                    result = self.apply_delta(
                        product_id,
                        quantity,
                        operation.get("reason") or "Bulk operation",
                        order_number=operation.get("reference"),
                    )
                else:
                    raise ValidationError(f"Unknown bulk operation type: {operation.get('type')!r}")

                results.append({
                    "product_id": product_id,
                    "success": True,
                    "message": "Stock updated",
                    "new_stock": str(result.new_stock),
                })
            except ReconcileError as exc:
                db.session.rollback()
                all_successful = False
                results.append({"product_id": product_id, "success": False, "message": exc.message})

        return {"success": all_successful, "results": results}

    # -------------------------------------------------------------------------
    # alerts
    # -------------------------------------------------------------------------

    def check_stock_alerts(self, product_id: int | None = None) -> list[StockAlert]:
        """
        out_of_stock (critical) when stock is zero, low_stock (warning) when
        stock is at or below the product's minimum.
        """
        inventory = self.inventory.list_inventory(low_stock=product_id is None, product_id=product_id)
        alerts = []

        for item in inventory:
            current = _stock_of({"stock": item.get("currentStock", item.get("stock"))})
            min_stock = to_decimal(item.get("minStock", item.get("min_stock")), "minStock")
            item_id = item.get("productId") or item.get("id")
            name = item.get("productName") or item.get("name") or ""

            if current <= 0:
                alerts.append(StockAlert(int(item_id), name, current, min_stock, "out_of_stock", "critical"))
            elif current <= min_stock:
                alerts.append(StockAlert(int(item_id), name, current, min_stock, "low_stock", "warning"))

        return alerts
