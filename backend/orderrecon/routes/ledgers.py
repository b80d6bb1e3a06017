# Overview: Flask API routes for reading the stock and receivable ledgers and recording manual payments.

# backend/orderrecon/routes/ledgers.py
"""
Ledger API Routes

Stock:
- GET  /api/stock/<product_id>             current stock from the inventory service
- GET  /api/stock/<product_id>/movements   local movement ledger (newest first)
- GET  /api/stock/alerts                   low / out-of-stock alerts
- POST /api/stock/bulk                     add/deduct operations, reported one by one

Receivables:
- GET  /api/customers/<id>/balance
- GET  /api/customers/<id>/balance-history?limit=50&offset=0
- POST /api/customers/<id>/payments        manual payment (debit)
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import ReconcileError, http_status
from ..extensions import remote_services
from ..services.balance_ledger_service import BalanceLedgerClient
from ..services.stock_ledger_service import StockLedgerClient


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")
customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _int_arg(name: str, default: int, *, minimum: int = 0, maximum: int = 500) -> int:
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        value = default
    return max(minimum, min(value, maximum))


# =============================================================================
# STOCK
# =============================================================================

@stock_bp.get("/<int:product_id>")
def get_stock_route(product_id: int):
    try:
        stock = StockLedgerClient(remote_services.inventory).current_stock(product_id)
        return jsonify({"product_id": product_id, "current_stock": str(stock)}), 200
    except ReconcileError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to read stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/<int:product_id>/movements")
def list_movements_route(product_id: int):
    """
    Query params:
        order_id: only movements for this order
        limit: max rows (default 100)
    """
    try:
        order_id = request.args.get("order_id", type=int)
        movements = StockLedgerClient(remote_services.inventory).movements(
            product_id=product_id,
            order_id=order_id,
            limit=_int_arg("limit", 100, minimum=1),
        )
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/alerts")
def stock_alerts_route():
    try:
        product_id = request.args.get("product_id", type=int)
        alerts = StockLedgerClient(remote_services.inventory).check_stock_alerts(product_id)
        return jsonify({"alerts": [a.to_dict() for a in alerts]}), 200
    except ReconcileError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to check stock alerts")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/bulk")
def bulk_stock_route():
    """
    Request body:
    {
        "operations": [
            {"product_id": 5, "quantity": 10, "type": "add", "reason": "Supplier delivery"},
            {"product_id": 6, "quantity": 2, "type": "deduct", "reference": "WO-17"}
        ]
    }

    Returns:
        200: all operations succeeded
        207: some operations failed (see results)
    """
    try:
        data = request.get_json(silent=True) or {}
        operations = data.get("operations")
        if not isinstance(operations, list) or not operations:
            return jsonify({"error": "operations must be a non-empty list"}), 400

        outcome = StockLedgerClient(remote_services.inventory).apply_bulk(operations)
        return jsonify(outcome), 200 if outcome["success"] else 207
    except Exception:
        current_app.logger.exception("Failed to apply bulk stock operations")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RECEIVABLES
# =============================================================================

@customers_bp.get("/<int:customer_id>/balance")
def get_balance_route(customer_id: int):
    try:
        balance = BalanceLedgerClient(remote_services.receivables).get_balance(customer_id)
        return jsonify({"balance": balance.to_dict()}), 200
    except ReconcileError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to read customer balance")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/balance-history")
def balance_history_route(customer_id: int):
    try:
        transactions = BalanceLedgerClient(remote_services.receivables).history(
            customer_id,
            limit=_int_arg("limit", 50, minimum=1),
            offset=_int_arg("offset", 0, maximum=1_000_000),
        )
        return jsonify({"transactions": [t.to_dict() for t in transactions]}), 200
    except ReconcileError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to read balance history")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/<int:customer_id>/payments")
def record_payment_route(customer_id: int):
    """
    Request body:
    {
        "amount": 250.00,
        "payment_method": "cash",
        "reference": "RCPT-0042",   (optional)
        "notes": "Paid at counter"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        amount = data.get("amount")
        payment_method = data.get("payment_method")
        if amount is None or not payment_method:
            return jsonify({"error": "amount and payment_method are required"}), 400

        txn = BalanceLedgerClient(remote_services.receivables).record_payment(
            customer_id,
            amount,
            payment_method,
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        return jsonify({"transaction": txn.to_dict()}), 201
    except ReconcileError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500
