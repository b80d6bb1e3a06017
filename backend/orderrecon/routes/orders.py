# Overview: Flask API routes for order edits (status, payment method, customer, returns); parses input and returns JSON responses.

# backend/orderrecon/routes/orders.py
"""
Order Edit API Routes

Every edit runs through the OrderReconciler, which keeps the stock and
receivable ledgers in step with the order.

RESPONSES:
- 200: applied, no-op, or already applied (see "outcome")
- 202: partial - order updated but a ledger step needs reconciliation
       (see "partial_failure" and the reconciliation intents)
- 400 invalid input, 404 unknown order/product/customer, 409 illegal edit or
  stale version, 428 cancellation not confirmed, 503 remote service down
"""

from flask import Blueprint, request, jsonify, current_app

from ..domain import ItemReturn, OUTCOME_PARTIAL
from ..errors import ReconcileError, ConflictError, ValidationError, http_status
from ..services.reconciliation_service import build_reconciler


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _payload() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _expected_version(data: dict) -> int | None:
    value = data.get("expected_version")
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("expected_version must be an integer")


def _result_response(result):
    code = 202 if result.outcome == OUTCOME_PARTIAL else 200
    return jsonify({"result": result.to_dict()}), code


# =============================================================================
# STATUS / PAYMENT METHOD / CUSTOMER
# =============================================================================

@orders_bp.put("/<int:order_id>/status")
def change_status_route(order_id: int):
    """
    Change order status.

    Request body:
    {
        "status": "completed",
        "confirm": true,            (required when status is "cancelled")
        "expected_version": 4       (optional)
    }
    """
    try:
        data = _payload()
        status = data.get("status")
        if not status:
            return jsonify({"error": "status is required"}), 400

        result = build_reconciler().change_status(
            order_id,
            str(status).lower(),
            confirm=data.get("confirm") is True,
            expected_version=_expected_version(data),
        )
        return _result_response(result)

    except ReconcileError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to change order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>/payment-method")
def change_payment_method_route(order_id: int):
    """
    Request body:
    {
        "payment_method": "credit",
        "expected_version": 4       (optional)
    }
    """
    try:
        data = _payload()
        payment_method = data.get("payment_method") or data.get("paymentMethod")
        if not payment_method:
            return jsonify({"error": "payment_method is required"}), 400

        result = build_reconciler().change_payment_method(
            order_id,
            str(payment_method).lower(),
            expected_version=_expected_version(data),
        )
        return _result_response(result)

    except ReconcileError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to change order payment method")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>/customer")
def change_customer_route(order_id: int):
    """
    Reassign the order. "customer_id": null makes it a walk-in sale.
    """
    try:
        data = _payload()
        if "customer_id" not in data:
            return jsonify({"error": "customer_id is required (null for walk-in)"}), 400

        customer_id = data.get("customer_id")
        if customer_id is not None:
            try:
                customer_id = int(customer_id)
            except (TypeError, ValueError):
                return jsonify({"error": "customer_id must be an integer or null"}), 400

        result = build_reconciler().change_customer(
            order_id,
            customer_id,
            expected_version=_expected_version(data),
        )
        return _result_response(result)

    except ReconcileError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to change order customer")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>")
def edit_order_route(order_id: int):
    """
    Combined edit. When status and payment method both change, only the
    status-driven balance change is applied.

    Request body:
    {
        "status": "credit",              (optional)
        "payment_method": "card",        (optional)
        "confirm": false,
        "expected_version": 4            (optional)
    }
    """
    try:
        data = _payload()
        status = data.get("status")
        payment_method = data.get("payment_method") or data.get("paymentMethod")
        if not status and not payment_method:
            return jsonify({"error": "status or payment_method is required"}), 400

        results = build_reconciler().edit_order(
            order_id,
            status=str(status).lower() if status else None,
            payment_method=str(payment_method).lower() if payment_method else None,
            confirm=data.get("confirm") is True,
            expected_version=_expected_version(data),
        )
        code = 202 if any(r.outcome == OUTCOME_PARTIAL for r in results) else 200
        return jsonify({"results": [r.to_dict() for r in results]}), code

    except ReconcileError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to edit order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RETURNS
# =============================================================================

@orders_bp.post("/<int:order_id>/returns")
def process_return_route(order_id: int):
    """
    Partial return with restock and refund.

    Request body:
    {
        "items": [{"product_id": 5, "return_quantity": 2, "reason": "damaged"}],
        "notes": "Box crushed in transit",   (optional)
        "request_key": "ret-7f3a"            (optional, makes the request idempotent)
    }

    Returns:
        201: Return processed
        200: request_key already processed (outcome already_applied)
    """
    try:
        data = _payload()
        items = data.get("items")
        if not isinstance(items, list) or not items:
            return jsonify({"error": "items must be a non-empty list"}), 400

        item_returns = [ItemReturn.from_payload(item) for item in items if isinstance(item, dict)]
        if len(item_returns) != len(items):
            return jsonify({"error": "each item must be an object"}), 400

        result = build_reconciler().process_return(
            order_id,
            item_returns,
            notes=data.get("notes"),
            request_key=data.get("request_key"),
        )
        return jsonify({"return": result.to_dict()}), 201

    except ConflictError as e:
        return jsonify({"outcome": "already_applied", **e.to_dict()}), 200
    except ReconcileError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to process return")
        return jsonify({"error": "Internal server error"}), 500
