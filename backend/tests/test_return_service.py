# Overview: Pytest coverage for partial returns (clamping, refund exactness, combined adjustment).

import random
from decimal import Decimal, ROUND_HALF_UP

import pytest

from orderrecon.domain import ItemReturn
from orderrecon.errors import ConflictError, NetworkError, StateError, ValidationError
from orderrecon.extensions import db
from orderrecon.models import AdjustmentRecord, StockMovement
from orderrecon.models.reconciliation import ADJUSTMENT_COMPLETED, ADJUSTMENT_FAILED
from orderrecon.services.return_service import (
    ReturnProcessor,
    clamp_return_quantity,
    compute_refund,
)
from orderrecon.services.stock_ledger_service import StockLedgerClient


@pytest.fixture
def processor(app, orders, inventory):
    return ReturnProcessor(orders, StockLedgerClient(inventory))


def _returns(*pairs, reason="customer_request"):
    return [ItemReturn(product_id, Decimal(str(quantity)), reason) for product_id, quantity in pairs]


# =============================================================================
# PURE RULES
# =============================================================================

@pytest.mark.parametrize("requested,original,expected", [
    (4, 10, 4),
    (0, 10, 0),
    (10, 10, 10),
    (15, 10, 10),
    (-3, 10, 0),
    ("2.5", 3, "2.5"),
])
def test_clamp_bounds(requested, original, expected):
    clamped = clamp_return_quantity(requested, original)
    assert clamped == Decimal(str(expected))
    assert Decimal("0") <= clamped <= Decimal(str(original))


def test_refund_exactness_zero_to_ten_lines():
    rng = random.Random(20261019)
    for count in range(0, 11):
        lines = [
            (Decimal(rng.randint(0, 20)), Decimal(rng.randint(1, 99999)) / 100)
            for _ in range(count)
        ]
        expected = sum((q * p for q, p in lines), Decimal("0")).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        assert compute_refund(lines) == expected


def test_refund_rounds_half_up():
    assert compute_refund([(Decimal("1"), Decimal("0.125"))]) == Decimal("0.13")
    assert compute_refund([(Decimal("3"), Decimal("0.335"))]) == Decimal("1.01")


# =============================================================================
# PROCESSOR
# =============================================================================

class TestProcessReturn:
    def test_scenario_d(self, processor, orders, inventory):
        """originalQuantity 10, return 4 at 100 => refund 400.00, stock +4."""
        order = orders.add_order(20, items=[(6, 10, "100")], status="completed")

        result = processor.process_return(order, _returns((6, 4)), notes="Wrong size")

        assert result.refund_amount == Decimal("400.00")
        assert result.restocked is True
        assert inventory.stock(6) == Decimal("44")

        (order_id, adjustment), = orders.calls_to("adjust_order")
        assert order_id == 20
        assert adjustment["restockItems"] is True
        assert adjustment["refundAmount"] == Decimal("400.00")
        assert adjustment["adjustmentReason"] == "Wrong size"

        movement = db.session.query(StockMovement).one()
        assert movement.quantity_delta == Decimal("4")
        assert movement.balance_after == Decimal("44")

        record = db.session.get(AdjustmentRecord, result.adjustment_id)
        assert record.status == ADJUSTMENT_COMPLETED
        assert record.refund_amount == Decimal("400.00")

    def test_over_return_is_clamped(self, processor, orders, inventory):
        order = orders.add_order(21, items=[(5, 2, "15.50")], status="completed")

        result = processor.process_return(order, _returns((5, 9)))

        assert result.refund_amount == Decimal("31.00")
        assert inventory.stock(5) == Decimal("12")

    def test_all_zero_rejected(self, processor, orders):
        order = orders.add_order(22, items=[(5, 2, "10"), (6, 1, "5")], status="completed")
        with pytest.raises(ValidationError):
            processor.process_return(order, _returns((5, 0), (6, -1)))
        assert orders.calls_to("adjust_order") == []

    def test_unknown_product_rejected(self, processor, orders):
        order = orders.add_order(23, items=[(5, 2, "10")], status="completed")
        with pytest.raises(ValidationError):
            processor.process_return(order, _returns((99, 1)))

    def test_cancelled_order_rejected(self, processor, orders):
        order = orders.add_order(24, items=[(5, 2, "10")], status="cancelled")
        with pytest.raises(StateError):
            processor.process_return(order, _returns((5, 1)))

    def test_failed_adjustment_commits_nothing(self, processor, orders, inventory):
        order = orders.add_order(25, items=[(5, 2, "10")], status="completed")
        orders.fail("adjust_order", NetworkError("order service timed out"))

        with pytest.raises(NetworkError):
            processor.process_return(order, _returns((5, 1)), request_key="ret-25")

        assert inventory.stock(5) == Decimal("10")
        assert db.session.query(StockMovement).count() == 0
        record = db.session.query(AdjustmentRecord).one()
        assert record.status == ADJUSTMENT_FAILED
        assert record.restocked is False

        # retry with the same key succeeds and reuses the record
        result = processor.process_return(order, _returns((5, 1)), request_key="ret-25")
        assert result.adjustment_id == record.id
        assert db.session.query(AdjustmentRecord).count() == 1

    def test_repeated_request_key_is_conflict(self, processor, orders, inventory):
        order = orders.add_order(26, items=[(5, 2, "10")], status="completed")
        processor.process_return(order, _returns((5, 1)), request_key="ret-26")

        with pytest.raises(ConflictError):
            processor.process_return(order, _returns((5, 1)), request_key="ret-26")
        assert inventory.stock(5) == Decimal("11")

    def test_product_on_several_lines(self, processor, orders, inventory):
        order = orders.add_order(27, items=[(5, 3, "100"), (5, 2, "50")], status="completed")

        result = processor.process_return(order, _returns((5, 5)))

        assert result.refund_amount == Decimal("400.00")
        assert inventory.stock(5) == Decimal("15")
        (_, adjustment), = orders.calls_to("adjust_order")
        assert adjustment["items"] == [{"productId": 5, "quantity": Decimal("5"), "reason": "customer_request"}]
        lines = [(Decimal(i["returned_quantity"]), Decimal(i["unit_price"])) for i in result.items]
        assert lines == [(Decimal("3"), Decimal("100")), (Decimal("2"), Decimal("50"))]
        movement = db.session.query(StockMovement).one()
        assert movement.quantity_delta == Decimal("5")

    def test_over_return_clamped_to_all_lines_of_product(self, processor, orders, inventory):
        order = orders.add_order(28, items=[(5, 1, "10"), (6, 1, "5"), (5, 1, "20")], status="completed")

        result = processor.process_return(order, _returns((5, 7)))

        assert result.refund_amount == Decimal("30.00")
        assert inventory.stock(5) == Decimal("12")

    @pytest.mark.parametrize("status", ["pending", "credit"])
    def test_only_completed_orders_accept_returns(self, processor, orders, inventory, status):
        order = orders.add_order(29, items=[(5, 2, "10")], status=status)

        with pytest.raises(StateError) as exc_info:
            processor.process_return(order, _returns((5, 1)))

        assert exc_info.value.details["status"] == status
        assert orders.calls_to("adjust_order") == []
        assert inventory.stock(5) == Decimal("10")
