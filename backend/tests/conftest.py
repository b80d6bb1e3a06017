"""
Pytest fixtures for the reconciliation engine tests.

Provides an app on in-memory SQLite, in-memory fakes of the three remote
services (with failure injection), and a wired OrderReconciler.
"""

from decimal import Decimal

import pytest

from orderrecon import create_app
from orderrecon.domain import Order
from orderrecon.errors import NotFoundError, StaleOrderError
from orderrecon.extensions import db
from orderrecon.services.reconciliation_service import OrderReconciler


# =============================================================================
# FAKE REMOTE SERVICES
# =============================================================================

class FakeService:
    """Records calls; fail(name, exc) makes the next call(s) to `name` raise."""

    def __init__(self):
        self.calls = []
        self._failures = {}

    def fail(self, name, exc, times=1):
        self._failures[name] = [exc, times]

    def clear_failures(self):
        self._failures.clear()

    def _call(self, name, *args):
        self.calls.append((name, args))
        failure = self._failures.get(name)
        if failure:
            exc, times = failure
            if times is not None:
                failure[1] -= 1
                if failure[1] <= 0:
                    del self._failures[name]
            raise exc

    def calls_to(self, name):
        return [args for call, args in self.calls if call == name]


class FakeInventoryService(FakeService):
    def __init__(self):
        super().__init__()
        self.products = {}
        self.fail_products = {}

    def add_product(self, product_id, name, stock, min_stock=0):
        self.products[product_id] = {
            "id": product_id,
            "name": name,
            "stock": Decimal(str(stock)),
            "minStock": Decimal(str(min_stock)),
        }

    def stock(self, product_id):
        return self.products[product_id]["stock"]

    def get_product(self, product_id):
        self._call("get_product", product_id)
        if product_id not in self.products:
            raise NotFoundError(f"inventory: /products/{product_id} not found")
        return dict(self.products[product_id])

    def apply_stock_delta(self, product_id, signed_quantity, notes, order_id=None, order_number=None):
        self._call("apply_stock_delta", product_id, signed_quantity, notes)
        if product_id in self.fail_products:
            raise self.fail_products[product_id]
        if product_id not in self.products:
            raise NotFoundError(f"inventory: product {product_id} not found")
        product = self.products[product_id]
        product["stock"] += Decimal(signed_quantity)
        return {"productId": product_id, "newStock": product["stock"], "productName": product["name"]}

    def list_inventory(self, *, low_stock=False, product_id=None, limit=None):
        self._call("list_inventory", low_stock, product_id)
        rows = []
        for product in self.products.values():
            if product_id is not None and product["id"] != product_id:
                continue
            if low_stock and product["stock"] > product["minStock"]:
                continue
            rows.append({
                "productId": product["id"],
                "productName": product["name"],
                "currentStock": product["stock"],
                "minStock": product["minStock"],
            })
        return rows


class FakeReceivablesService(FakeService):
    def __init__(self):
        super().__init__()
        self.customers = {}
        self.transactions = []

    def add_customer(self, customer_id, balance=0, credit_limit=10000):
        self.customers[customer_id] = {
            "customerId": customer_id,
            "currentBalance": Decimal(str(balance)),
            "creditLimit": Decimal(str(credit_limit)),
            "totalPurchases": Decimal("0"),
        }

    def balance(self, customer_id):
        return self.customers[customer_id]["currentBalance"]

    def get_customer_balance(self, customer_id):
        self._call("get_customer_balance", customer_id)
        if customer_id not in self.customers:
            raise NotFoundError(f"receivables: /customers/{customer_id} not found")
        return dict(self.customers[customer_id])

    def apply_balance_delta(self, customer_id, signed_amount, txn_type, description, order_id=None, order_number=None):
        self._call("apply_balance_delta", customer_id, signed_amount, txn_type)
        if customer_id not in self.customers:
            raise NotFoundError(f"receivables: customer {customer_id} not found")
        customer = self.customers[customer_id]
        previous = customer["currentBalance"]
        customer["currentBalance"] = previous + Decimal(signed_amount)
        txn = {
            "id": len(self.transactions) + 1,
            "customerId": customer_id,
            "orderId": order_id,
            "orderNumber": order_number,
            "amount": Decimal(signed_amount),
            "type": txn_type,
            "description": description,
            "previousBalance": previous,
            "newBalance": customer["currentBalance"],
            "createdAt": "2026-10-19T10:00:00Z",
        }
        self.transactions.append(txn)
        return dict(txn)

    def get_history(self, customer_id, limit=50, offset=0):
        self._call("get_history", customer_id, limit, offset)
        rows = [t for t in reversed(self.transactions) if t["customerId"] == customer_id]
        return rows[offset:offset + limit]


class FakeOrderService(FakeService):
    def __init__(self, inventory):
        super().__init__()
        self.inventory = inventory
        self.orders = {}

    def add_order(
        self,
        order_id,
        *,
        items,
        status="pending",
        payment_method="cash",
        customer_id=None,
        total=None,
        version=1,
    ):
        """items: [(product_id, quantity, unit_price)]"""
        lines = [
            {
                "productId": product_id,
                "productName": f"Product {product_id}",
                "quantity": Decimal(str(quantity)),
                "unitPrice": Decimal(str(unit_price)),
            }
            for product_id, quantity, unit_price in items
        ]
        subtotal = sum((line["quantity"] * line["unitPrice"] for line in lines), Decimal("0"))
        self.orders[order_id] = {
            "id": order_id,
            "orderNumber": f"ORD-{order_id:04d}",
            "customerId": customer_id,
            "items": lines,
            "subtotal": subtotal,
            "discount": Decimal("0"),
            "total": Decimal(str(total)) if total is not None else subtotal,
            "status": status,
            "paymentMethod": payment_method,
            "version": version,
        }
        return self.snapshot(order_id)

    def snapshot(self, order_id):
        return Order.from_payload(self.orders[order_id])

    def _write(self, name, order_id, field, value, expected_version):
        self._call(name, order_id, value)
        order = self.orders.get(order_id)
        if order is None:
            raise NotFoundError(f"order: /sales/{order_id} not found")
        if expected_version is not None and expected_version != order["version"]:
            raise StaleOrderError("Order was modified by another session")
        order[field] = value
        order["version"] += 1
        return dict(order)

    def get_order(self, order_id):
        self._call("get_order", order_id)
        if order_id not in self.orders:
            raise NotFoundError(f"order: /sales/{order_id} not found")
        return self.snapshot(order_id)

    def update_status(self, order_id, status, expected_version=None):
        return self._write("update_status", order_id, "status", status, expected_version)

    def update_payment_method(self, order_id, payment_method, expected_version=None):
        return self._write("update_payment_method", order_id, "paymentMethod", payment_method, expected_version)

    def update_customer(self, order_id, customer_id, expected_version=None):
        return self._write("update_customer", order_id, "customerId", customer_id, expected_version)

    def adjust_order(self, order_id, adjustment):
        self._call("adjust_order", order_id, adjustment)
        results = []
        if adjustment.get("restockItems"):
            for item in adjustment["items"]:
                product = self.inventory.products[item["productId"]]
                product["stock"] += Decimal(item["quantity"])
                results.append({"productId": item["productId"], "newStock": product["stock"]})
        return {"orderId": order_id, "refundAmount": adjustment["refundAmount"], "items": results}


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def inventory():
    fake = FakeInventoryService()
    fake.add_product(5, "Cable 3m", 10, min_stock=2)
    fake.add_product(6, "Wall plug", 40, min_stock=5)
    fake.add_product(7, "Drill bit", 1, min_stock=3)
    return fake


@pytest.fixture
def receivables():
    fake = FakeReceivablesService()
    fake.add_customer(42, balance=0)
    fake.add_customer(7, balance=300)
    fake.add_customer(8, balance=0)
    return fake


@pytest.fixture
def orders(inventory):
    return FakeOrderService(inventory)


@pytest.fixture
def app(orders, inventory, receivables):
    """Create application for testing."""
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        },
        services={"orders": orders, "inventory": inventory, "receivables": receivables},
    )

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def reconciler(app, orders, inventory, receivables):
    return OrderReconciler(orders, inventory, receivables)
