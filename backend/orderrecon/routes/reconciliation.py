# Overview: Flask API routes for the reconciliation intent log and the reconciliation job.

# backend/orderrecon/routes/reconciliation.py
from flask import Blueprint, request, jsonify, current_app

from ..errors import ReconcileError, http_status
from ..models.reconciliation import INTENT_PENDING, INTENT_COMPLETED, INTENT_PARTIAL, INTENT_ABORTED
from ..services.reconciliation_service import build_reconciler


reconciliation_bp = Blueprint("reconciliation", __name__, url_prefix="/api/reconciliation")

INTENT_STATUSES = {INTENT_PENDING, INTENT_COMPLETED, INTENT_PARTIAL, INTENT_ABORTED}


@reconciliation_bp.get("/intents")
def list_intents_route():
    """
    Query params:
        status: PENDING | COMPLETED | PARTIAL | ABORTED (optional)
        limit: max rows (default 100)
    """
    try:
        status = request.args.get("status")
        if status and status.upper() not in INTENT_STATUSES:
            return jsonify({"error": f"status must be one of {sorted(INTENT_STATUSES)}"}), 400
        limit = min(max(request.args.get("limit", 100, type=int) or 100, 1), 500)

        intents = build_reconciler().list_intents(status=status, limit=limit)
        return jsonify({"intents": [i.to_dict() for i in intents]}), 200
    except Exception:
        current_app.logger.exception("Failed to list reconciliation intents")
        return jsonify({"error": "Internal server error"}), 500


@reconciliation_bp.post("/intents/<int:intent_id>/resume")
def resume_intent_route(intent_id: int):
    try:
        reconciler = build_reconciler()
        result = reconciler.resume_intent(intent_id)
        intent = reconciler.get_intent(intent_id)
        return jsonify({"result": result.to_dict(), "intent": intent.to_dict()}), 200
    except ReconcileError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to resume reconciliation intent")
        return jsonify({"error": "Internal server error"}), 500


@reconciliation_bp.post("/run")
def run_reconciliation_route():
    """Request body (optional): {"limit": 50}"""
    try:
        data = request.get_json(silent=True) or {}
        limit = data.get("limit")
        if limit is not None:
            try:
                limit = int(limit)
            except (TypeError, ValueError):
                return jsonify({"error": "limit must be an integer"}), 400
            if limit <= 0:
                return jsonify({"error": "limit must be positive"}), 400

        summary = build_reconciler().run_reconciliation(limit=limit)
        return jsonify({"summary": summary}), 200
    except Exception:
        current_app.logger.exception("Failed to run reconciliation")
        return jsonify({"error": "Internal server error"}), 500
