# Overview: Pytest coverage for the stock ledger client and the stock adjustment coordinator.

from decimal import Decimal

import pytest

from orderrecon.domain import OrderItem
from orderrecon.errors import NetworkError, NotFoundError, ValidationError
from orderrecon.extensions import db
from orderrecon.models import StockMovement
from orderrecon.models.stock import MOVEMENT_COMPENSATION, MOVEMENT_RETURN, MOVEMENT_SALE
from orderrecon.services.stock_ledger_service import StockLedgerClient
from orderrecon.services.stock_service import (
    StockAdjustmentCoordinator,
    plan_stock_deltas,
    stock_delta_sign,
)


def _item(product_id, quantity, price="10"):
    return OrderItem(product_id, f"Product {product_id}", Decimal(str(quantity)), Decimal(price))


@pytest.fixture
def ledger(app, inventory):
    return StockLedgerClient(inventory)


@pytest.fixture
def coordinator(ledger):
    return StockAdjustmentCoordinator(ledger)


# =============================================================================
# PLANNING
# =============================================================================

@pytest.mark.parametrize("from_status,to_status,sign", [
    ("completed", "cancelled", 1),
    ("cancelled", "completed", -1),
    ("pending", "completed", 0),
    ("completed", "pending", 0),
    ("pending", "credit", 0),
    ("completed", "credit", 0),
    ("credit", "pending", 0),
    ("credit", "completed", 0),
    ("pending", "cancelled", 0),
])
def test_stock_delta_sign(from_status, to_status, sign):
    assert stock_delta_sign(from_status, to_status) == sign


def test_plan_sums_repeated_products():
    plan = plan_stock_deltas([_item(5, 2), _item(6, 1), _item(5, "1.5")], "cancelled", "completed")
    assert [(d.product_id, d.quantity_delta) for d in plan] == [(5, Decimal("-3.5")), (6, Decimal("-1"))]


def test_plan_is_empty_without_stock_effect():
    assert plan_stock_deltas([_item(5, 2)], "pending", "completed") == []


# =============================================================================
# COORDINATOR
# =============================================================================

class TestReconcileStock:
    def test_cancel_restores_stock(self, coordinator, inventory):
        """completed -> cancelled puts the quantity back (10 + 3 = 13)."""
        changes = coordinator.reconcile_stock(9, [_item(5, 3)], "completed", "cancelled", order_number="ORD-0009")

        assert inventory.stock(5) == Decimal("13")
        assert len(changes) == 1
        assert changes[0].new_stock == Decimal("13")

        movement = db.session.query(StockMovement).one()
        assert movement.movement_type == MOVEMENT_RETURN
        assert movement.quantity_delta == Decimal("3")
        assert movement.balance_before == Decimal("10")
        assert movement.balance_after == Decimal("13")
        assert movement.order_id == 9

    def test_recomplete_deducts_after_validation(self, coordinator, inventory):
        coordinator.reconcile_stock(9, [_item(5, 4), _item(6, 10)], "cancelled", "completed")

        assert inventory.stock(5) == Decimal("6")
        assert inventory.stock(6) == Decimal("30")
        types = {m.movement_type for m in db.session.query(StockMovement).all()}
        assert types == {MOVEMENT_SALE}

    def test_shortfall_blocks_everything(self, coordinator, inventory):
        """One short product aborts the whole re-deduction; nothing is applied."""
        with pytest.raises(ValidationError) as exc_info:
            coordinator.reconcile_stock(9, [_item(5, 4), _item(7, 5)], "cancelled", "completed")

        shortfalls = exc_info.value.details["shortfalls"]
        assert [s["product_id"] for s in shortfalls] == [7]
        assert shortfalls[0]["shortfall"] == "4"
        assert inventory.stock(5) == Decimal("10")
        assert inventory.calls_to("apply_stock_delta") == []
        assert db.session.query(StockMovement).count() == 0

    def test_no_stock_effect_makes_no_calls(self, coordinator, inventory):
        assert coordinator.reconcile_stock(9, [_item(5, 3)], "pending", "completed") == []
        assert inventory.calls == []

    def test_midway_failure_is_compensated(self, coordinator, inventory):
        inventory.fail_products[6] = NetworkError("inventory service timed out")

        with pytest.raises(NetworkError) as exc_info:
            coordinator.reconcile_stock(9, [_item(5, 3), _item(6, 2)], "completed", "cancelled")

        assert "uncompensated" not in exc_info.value.details
        assert inventory.stock(5) == Decimal("10")
        movements = db.session.query(StockMovement).order_by(StockMovement.id).all()
        assert [(m.movement_type, m.quantity_delta) for m in movements] == [
            (MOVEMENT_RETURN, Decimal("3")),
            (MOVEMENT_COMPENSATION, Decimal("-3")),
        ]

    def test_failed_compensation_is_reported(self, coordinator, inventory):
        inventory.fail_products[6] = NetworkError("inventory service timed out")
        original = inventory.apply_stock_delta

        def flaky(product_id, signed_quantity, notes, order_id=None, order_number=None):
            if product_id == 5 and signed_quantity < 0:
                raise NetworkError("inventory service timed out")
            return original(product_id, signed_quantity, notes, order_id=order_id, order_number=order_number)

        inventory.apply_stock_delta = flaky

        with pytest.raises(NetworkError) as exc_info:
            coordinator.reconcile_stock(9, [_item(5, 3), _item(6, 2)], "completed", "cancelled")

        uncompensated = exc_info.value.details["uncompensated"]
        assert [u["product_id"] for u in uncompensated] == [5]


# =============================================================================
# LEDGER CLIENT
# =============================================================================

class TestStockLedger:
    def test_validate_availability(self, ledger):
        ok = ledger.validate_availability(5, 10)
        assert ok.is_valid and ok.shortfall is None

        short = ledger.validate_availability(5, "12.5")
        assert not short.is_valid
        assert short.shortfall == Decimal("2.5")
        assert "Available: 10" in short.message

    def test_zero_delta_rejected(self, ledger):
        with pytest.raises(ValidationError):
            ledger.apply_delta(5, 0, "nothing")

    def test_unknown_product(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.apply_delta(999, 1, "restock")

    def test_negative_stock_refused_unless_validated(self, ledger, inventory):
        with pytest.raises(ValidationError) as exc_info:
            ledger.apply_delta(7, -2, "sale")
        assert exc_info.value.details["shortfall"] == "1"
        assert inventory.stock(7) == Decimal("1")

    def test_every_delta_appends_a_movement(self, ledger):
        ledger.apply_delta(5, 2, "restock")
        ledger.apply_delta(5, -1, "sale", order_id=3)

        assert [m.quantity_delta for m in ledger.movements(product_id=5)] == [Decimal("-1"), Decimal("2")]
        assert len(ledger.movements(order_id=3)) == 1

    def test_stock_alerts(self, ledger, inventory):
        inventory.products[6]["stock"] = Decimal("0")
        alerts = {a.product_id: a for a in ledger.check_stock_alerts()}

        assert alerts[6].type == "out_of_stock"
        assert alerts[6].severity == "critical"
        assert alerts[7].type == "low_stock"
        assert alerts[7].severity == "warning"
        assert 5 not in alerts

    def test_bulk_reports_each_operation(self, ledger, inventory):
        outcome = ledger.apply_bulk([
            {"product_id": 5, "quantity": 5, "type": "add"},
            {"product_id": 7, "quantity": 4, "type": "deduct"},
            {"product_id": 6, "quantity": 4, "type": "deduct", "reference": "WO-17"},
        ])

        assert outcome["success"] is False
        assert [r["success"] for r in outcome["results"]] == [True, False, True]
        assert inventory.stock(5) == Decimal("15")
        assert inventory.stock(7) == Decimal("1")
        assert inventory.stock(6) == Decimal("36")
