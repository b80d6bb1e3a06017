"""
Domain types shared by the ledger clients, coordinators and reconciler.

Orders, customers and products are owned by remote services; these
dataclasses are read-only snapshots parsed from their JSON payloads.
Money and quantities are Decimal end to end (quantities may be fractional,
e.g. 2.5 m of cable).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import ValidationError, PartialFailureError, ConflictError
from .time_utils import parse_remote_timestamp, to_utc_z


# =============================================================================
# ORDER STATUS / PAYMENT METHOD (CONSTANTS)
# =============================================================================

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_CREDIT = "credit"
STATUS_CANCELLED = "cancelled"

VALID_STATUSES = {STATUS_PENDING, STATUS_COMPLETED, STATUS_CREDIT, STATUS_CANCELLED}

PAYMENT_CASH = "cash"
PAYMENT_CREDIT = "credit"
PAYMENT_CARD = "card"
PAYMENT_BANK_TRANSFER = "bank_transfer"

VALID_PAYMENT_METHODS = {PAYMENT_CASH, PAYMENT_CREDIT, PAYMENT_CARD, PAYMENT_BANK_TRANSFER}
ELECTRONIC_PAYMENT_METHODS = {PAYMENT_CARD, PAYMENT_BANK_TRANSFER}

# Balance transaction types. credit = customer owes more, debit = owes less.
TXN_CREDIT = "credit"
TXN_DEBIT = "debit"
TXN_ADJUSTMENT = "adjustment"

VALID_TXN_TYPES = {TXN_CREDIT, TXN_DEBIT, TXN_ADJUSTMENT}

# Transition kinds tracked by the idempotency guard and the intent log
KIND_STATUS = "status"
KIND_PAYMENT_METHOD = "payment_method"
KIND_CUSTOMER = "customer"
KIND_RETURN = "return"

# Reconcile outcomes
OUTCOME_APPLIED = "applied"
OUTCOME_NOOP = "noop"
OUTCOME_ALREADY_APPLIED = "already_applied"
OUTCOME_PARTIAL = "partial"

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")


# =============================================================================
# DECIMAL HELPERS
# =============================================================================

def to_decimal(value: Any, field_name: str = "value") -> Decimal:
    """Coerce JSON numbers/strings to Decimal. None -> 0."""
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        # str() keeps the shortest repr, so 0.1 stays 0.1
        result = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field_name} must be a number")
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field_name} must be a number")
    else:
        raise ValidationError(f"{field_name} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return result


def quantize_money(value: Any) -> Decimal:
    """Round to currency minor units (2 decimals, half-up)."""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _pick(payload: dict, *keys, default=None):
    """First present key wins; remote payloads mix camelCase and snake_case."""
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return default


def _optional_int(value) -> int | None:
    if value in (None, "", 0, "0"):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"expected an integer id, got {value!r}")


# =============================================================================
# ORDERS
# =============================================================================

@dataclass(frozen=True)
class OrderItem:
    product_id: int
    product_name: str
    quantity: Decimal
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price

    @classmethod
    def from_payload(cls, payload: dict) -> "OrderItem":
        product_id = _pick(payload, "productId", "product_id")
        if product_id is None:
            raise ValidationError("order item is missing productId", details={"item": payload})
        quantity = to_decimal(_pick(payload, "quantity", default=0), "quantity")
        if quantity < 0:
            raise ValidationError("order item quantity cannot be negative", details={"item": payload})
        return cls(
            product_id=int(product_id),
            product_name=str(_pick(payload, "productName", "product_name", "name", default="")),
            quantity=quantity,
            unit_price=to_decimal(_pick(payload, "unitPrice", "unit_price", "price", default=0), "unitPrice"),
        )

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": str(self.quantity),
            "unit_price": str(self.unit_price),
            "line_total": str(self.line_total),
        }


@dataclass(frozen=True)
class Order:
    id: int
    order_number: str
    customer_id: int | None
    items: tuple[OrderItem, ...]
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    status: str
    payment_method: str
    version: int | None = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == STATUS_CANCELLED

    @property
    def is_credit_bearing(self) -> bool:
        """True when the order currently contributes to the customer's receivable."""
        return self.status == STATUS_CREDIT or self.payment_method == PAYMENT_CREDIT

    def item_for(self, product_id: int) -> OrderItem | None:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def items_for(self, product_id: int) -> list[OrderItem]:
        """Every line for the product, in order; a product may appear on several lines."""
        return [item for item in self.items if item.product_id == product_id]

    @classmethod
    def from_payload(cls, payload: dict) -> "Order":
        order_id = _pick(payload, "id")
        if order_id is None:
            raise ValidationError("order payload is missing id")
        items = tuple(OrderItem.from_payload(i) for i in (_pick(payload, "items", default=[]) or []))
        version = _pick(payload, "version", "version_id")
        return cls(
            id=int(order_id),
            order_number=str(_pick(payload, "orderNumber", "order_number", default=order_id)),
            customer_id=_optional_int(_pick(payload, "customerId", "customer_id")),
            items=items,
            subtotal=to_decimal(_pick(payload, "subtotal", default=0), "subtotal"),
            discount=to_decimal(_pick(payload, "discount", default=0), "discount"),
            total=to_decimal(_pick(payload, "total", default=0), "total"),
            status=str(_pick(payload, "status", default=STATUS_PENDING)).lower(),
            payment_method=str(_pick(payload, "paymentMethod", "payment_method", default=PAYMENT_CASH)).lower(),
            version=int(version) if version is not None else None,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "items": [item.to_dict() for item in self.items],
            "subtotal": str(self.subtotal),
            "discount": str(self.discount),
            "total": str(self.total),
            "status": self.status,
            "payment_method": self.payment_method,
            "version": self.version,
        }


# =============================================================================
# STOCK
# =============================================================================

@dataclass(frozen=True)
class StockValidationResult:
    is_valid: bool
    available_stock: Decimal
    requested_quantity: Decimal
    message: str
    shortfall: Decimal | None = None

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "available_stock": str(self.available_stock),
            "requested_quantity": str(self.requested_quantity),
            "shortfall": str(self.shortfall) if self.shortfall is not None else None,
            "message": self.message,
        }


@dataclass(frozen=True)
class StockDelta:
    """One planned per-product stock change for a transition."""
    product_id: int
    product_name: str
    quantity_delta: Decimal

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity_delta": str(self.quantity_delta),
        }


@dataclass(frozen=True)
class StockDeltaResult:
    product_id: int
    quantity_delta: Decimal
    new_stock: Decimal
    movement_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity_delta": str(self.quantity_delta),
            "new_stock": str(self.new_stock),
            "movement_id": self.movement_id,
        }


@dataclass(frozen=True)
class StockAlert:
    product_id: int
    product_name: str
    current_stock: Decimal
    min_stock: Decimal
    type: str  # low_stock, out_of_stock
    severity: str  # warning, critical

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "current_stock": str(self.current_stock),
            "min_stock": str(self.min_stock),
            "type": self.type,
            "severity": self.severity,
        }


# =============================================================================
# RECEIVABLES
# =============================================================================

@dataclass(frozen=True)
class CustomerBalance:
    customer_id: int
    current_balance: Decimal
    credit_limit: Decimal
    total_purchases: Decimal = ZERO
    last_transaction_date: datetime | None = None

    @property
    def available_credit(self) -> Decimal:
        return self.credit_limit - self.current_balance

    @classmethod
    def from_payload(cls, customer_id: int, payload: dict) -> "CustomerBalance":
        last = _pick(payload, "lastTransactionDate", "last_transaction_date")
        return cls(
            customer_id=int(_pick(payload, "customerId", "customer_id", "id", default=customer_id)),
            current_balance=to_decimal(_pick(payload, "currentBalance", "current_balance", default=0), "currentBalance"),
            credit_limit=to_decimal(_pick(payload, "creditLimit", "credit_limit", default=0), "creditLimit"),
            total_purchases=to_decimal(_pick(payload, "totalPurchases", "total_purchases", default=0), "totalPurchases"),
            last_transaction_date=parse_remote_timestamp(last),
        )

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "current_balance": str(self.current_balance),
            "credit_limit": str(self.credit_limit),
            "available_credit": str(self.available_credit),
            "total_purchases": str(self.total_purchases),
            "last_transaction_date": to_utc_z(self.last_transaction_date),
        }


@dataclass(frozen=True)
class BalanceTransaction:
    customer_id: int
    amount: Decimal
    type: str
    description: str
    previous_balance: Decimal
    new_balance: Decimal
    id: int | None = None
    order_id: int | None = None
    order_number: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_payload(cls, payload: dict, *, fallback: "BalanceTransaction") -> "BalanceTransaction":
        """
        Build from the receivables response, filling gaps from the locally
        computed (read-then-write) transaction.
        """
        created = _pick(payload, "createdAt", "created_at")
        txn_id = _pick(payload, "id")
        return cls(
            id=int(txn_id) if txn_id is not None else None,
            customer_id=int(_pick(payload, "customerId", "customer_id", default=fallback.customer_id)),
            amount=to_decimal(_pick(payload, "amount", default=fallback.amount), "amount"),
            type=str(_pick(payload, "type", default=fallback.type)),
            description=str(_pick(payload, "description", default=fallback.description)),
            previous_balance=to_decimal(
                _pick(payload, "previousBalance", "previous_balance", default=fallback.previous_balance),
                "previousBalance",
            ),
            new_balance=to_decimal(
                _pick(payload, "newBalance", "new_balance", default=fallback.new_balance),
                "newBalance",
            ),
            order_id=_optional_int(_pick(payload, "orderId", "order_id", default=fallback.order_id)),
            order_number=_pick(payload, "orderNumber", "order_number", default=fallback.order_number),
            created_at=parse_remote_timestamp(created) or fallback.created_at,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "order_id": self.order_id,
            "order_number": self.order_number,
            "amount": str(self.amount),
            "type": self.type,
            "description": self.description,
            "previous_balance": str(self.previous_balance),
            "new_balance": str(self.new_balance),
            "created_at": to_utc_z(self.created_at),
        }


# =============================================================================
# RETURNS
# =============================================================================

@dataclass(frozen=True)
class ItemReturn:
    product_id: int
    return_quantity: Decimal
    reason: str = "customer_request"

    @classmethod
    def from_payload(cls, payload: dict) -> "ItemReturn":
        product_id = _pick(payload, "product_id", "productId")
        if product_id is None:
            raise ValidationError("return item is missing product_id", details={"item": payload})
        return cls(
            product_id=int(product_id),
            return_quantity=to_decimal(
                _pick(payload, "return_quantity", "returnQuantity", "quantity", default=0),
                "return_quantity",
            ),
            reason=str(_pick(payload, "reason", default="") or "customer_request"),
        )


@dataclass(frozen=True)
class ReturnResult:
    order_id: int
    refund_amount: Decimal
    restocked: bool
    items: tuple[dict, ...] = ()
    adjustment_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "refund_amount": str(self.refund_amount),
            "restocked": self.restocked,
            "items": list(self.items),
            "adjustment_id": self.adjustment_id,
        }


# =============================================================================
# RECONCILE RESULT
# =============================================================================

@dataclass
class ReconcileResult:
    """
    Outcome of one edit. Validation/state failures are raised; everything
    that got past them is described here, including partial failures.
    """
    order_id: int
    kind: str
    from_value: str | None
    to_value: str | None
    outcome: str
    stock_changes: list[StockDeltaResult] = field(default_factory=list)
    balance_transactions: list[BalanceTransaction] = field(default_factory=list)
    partial_failure: PartialFailureError | None = None
    conflict: ConflictError | None = None
    intent_id: int | None = None

    @property
    def ok(self) -> bool:
        return self.outcome != OUTCOME_PARTIAL

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "kind": self.kind,
            "from": self.from_value,
            "to": self.to_value,
            "outcome": self.outcome,
            "stock_changes": [c.to_dict() for c in self.stock_changes],
            "balance_transactions": [t.to_dict() for t in self.balance_transactions],
            "partial_failure": self.partial_failure.to_dict() if self.partial_failure else None,
            "conflict": self.conflict.to_dict() if self.conflict else None,
            "intent_id": self.intent_id,
        }
