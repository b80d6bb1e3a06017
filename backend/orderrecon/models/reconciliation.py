from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


INTENT_PENDING = "PENDING"
INTENT_COMPLETED = "COMPLETED"
INTENT_PARTIAL = "PARTIAL"
INTENT_ABORTED = "ABORTED"

ADJUSTMENT_COMPLETED = "COMPLETED"
ADJUSTMENT_FAILED = "FAILED"


class TransitionRecord(db.Model):
    """
    Idempotency guard entry: the ledger side effects of (order, from -> to)
    have been applied.

    A record is ACTIVE while superseded_at is NULL. Marking a newer
    transition of the same kind supersedes the older ones, so an order can
    cycle (completed -> credit -> completed -> credit) and each leg is
    reconciled once. Superseded rows are kept for audit.
    """
    __tablename__ = "transition_records"
    __table_args__ = (
        db.Index("ix_transition_records_lookup", "order_id", "kind", "from_value", "to_value"),
        db.Index("ix_transition_records_active", "order_id", "kind", "superseded_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, nullable=False, index=True)
    kind = db.Column(db.String(32), nullable=False)  # status, payment_method, customer
    from_value = db.Column(db.String(64), nullable=True)
    to_value = db.Column(db.String(64), nullable=True)

    applied = db.Column(db.Boolean, nullable=False, default=True)
    applied_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    superseded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    intent_id = db.Column(db.Integer, db.ForeignKey("reconciliation_intents.id"), nullable=True)

    @property
    def is_active(self) -> bool:
        return self.applied and self.superseded_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "kind": self.kind,
            "from": self.from_value,
            "to": self.to_value,
            "applied": self.applied,
            "applied_at": to_utc_z(self.applied_at),
            "superseded_at": to_utc_z(self.superseded_at),
            "active": self.is_active,
            "intent_id": self.intent_id,
        }


class ReconciliationIntent(db.Model):
    """
    Saga log for one edit, written BEFORE the first ledger call.

    LIFECYCLE:
        PENDING -> COMPLETED   all steps done
        PENDING -> PARTIAL     stock applied, balance step failed
        PENDING -> ABORTED     stock step failed, nothing applied
        PARTIAL -> COMPLETED   reconciliation job re-applied the balance

    A PENDING intent older than a few minutes means the process died mid-saga;
    the reconciliation job compares it against the ledgers and finishes it.
    """
    __tablename__ = "reconciliation_intents"
    __table_args__ = (
        db.Index("ix_intents_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, nullable=False, index=True)
    order_number = db.Column(db.String(64), nullable=True)
    kind = db.Column(db.String(32), nullable=False)  # status, payment_method, customer
    from_value = db.Column(db.String(64), nullable=True)
    to_value = db.Column(db.String(64), nullable=True)
    expected_version = db.Column(db.Integer, nullable=True)

    customer_id = db.Column(db.Integer, nullable=True)
    order_total = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    # [{"product_id", "product_name", "quantity_delta"}]
    stock_plan = db.Column(db.JSON, nullable=False, default=list)
    # [{"customer_id", "amount", "type", "description", "applied"}]
    balance_plan = db.Column(db.JSON, nullable=False, default=list)

    stock_applied = db.Column(db.Boolean, nullable=False, default=False)
    balance_applied = db.Column(db.Boolean, nullable=False, default=False)
    order_updated = db.Column(db.Boolean, nullable=False, default=False)

    status = db.Column(db.String(16), nullable=False, default=INTENT_PENDING, index=True)
    last_error = db.Column(db.Text, nullable=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    movements = db.relationship("StockMovement", backref=db.backref("intent", lazy=True), lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    def pending_balance_entries(self) -> list[dict]:
        return [entry for entry in (self.balance_plan or []) if not entry.get("applied")]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "order_number": self.order_number,
            "kind": self.kind,
            "from": self.from_value,
            "to": self.to_value,
            "expected_version": self.expected_version,
            "customer_id": self.customer_id,
            "order_total": str(self.order_total),
            "stock_plan": self.stock_plan,
            "balance_plan": self.balance_plan,
            "stock_applied": self.stock_applied,
            "balance_applied": self.balance_applied,
            "order_updated": self.order_updated,
            "status": self.status,
            "last_error": self.last_error,
            "attempts": self.attempts,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class AdjustmentRecord(db.Model):
    """
    One processed return against an order.

    items: [{"product_id", "returned_quantity", "unit_price", "reason"}]
    request_key: optional client-supplied key; a repeated key for a
    COMPLETED adjustment is refused as already applied.
    """
    __tablename__ = "adjustment_records"
    __table_args__ = (
        db.UniqueConstraint("request_key", name="uq_adjustment_records_request_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, nullable=False, index=True)
    order_number = db.Column(db.String(64), nullable=True)
    request_key = db.Column(db.String(128), nullable=True)

    items = db.Column(db.JSON, nullable=False, default=list)
    refund_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    restocked = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=ADJUSTMENT_COMPLETED)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "order_number": self.order_number,
            "request_key": self.request_key,
            "items": self.items,
            "refund_amount": str(self.refund_amount),
            "restocked": self.restocked,
            "notes": self.notes,
            "status": self.status,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
        }
