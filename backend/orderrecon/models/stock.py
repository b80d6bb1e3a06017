from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


MOVEMENT_SALE = "sale"
MOVEMENT_RETURN = "return"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_RESTOCK = "restock"
MOVEMENT_COMPENSATION = "compensation"


class StockMovement(db.Model):
    """
    Append-only record of one stock ledger call.

    quantity_delta is signed: positive restores stock, negative deducts.
    balance_before/balance_after are the product's stock around the call as
    reported by the inventory service (NULL when a combined adjustment was
    applied remotely and the stock could not be read back).

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_order", "order_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=True)

    movement_type = db.Column(db.String(32), nullable=False, index=True)  # sale, return, adjustment, restock, compensation
    quantity_delta = db.Column(db.Numeric(14, 4), nullable=False)
    balance_before = db.Column(db.Numeric(14, 4), nullable=True)
    balance_after = db.Column(db.Numeric(14, 4), nullable=True)

    reason = db.Column(db.String(255), nullable=False)
    order_id = db.Column(db.Integer, nullable=True)
    order_number = db.Column(db.String(64), nullable=True)
    intent_id = db.Column(db.Integer, db.ForeignKey("reconciliation_intents.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<StockMovement id={self.id} product_id={self.product_id} delta={self.quantity_delta}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "movement_type": self.movement_type,
            "quantity_delta": str(self.quantity_delta),
            "balance_before": str(self.balance_before) if self.balance_before is not None else None,
            "balance_after": str(self.balance_after) if self.balance_after is not None else None,
            "reason": self.reason,
            "order_id": self.order_id,
            "order_number": self.order_number,
            "intent_id": self.intent_id,
            "created_at": to_utc_z(self.created_at),
        }
