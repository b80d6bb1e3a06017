# Overview: Pytest coverage for the HTTP API and the recon CLI commands.

from decimal import Decimal

from orderrecon.errors import NetworkError
from orderrecon.extensions import db
from orderrecon.models import ReconciliationIntent
from orderrecon.models.reconciliation import INTENT_COMPLETED, INTENT_PARTIAL


# =============================================================================
# ORDER EDITS
# =============================================================================

class TestStatusRoute:
    def test_completes_order(self, client, orders, inventory):
        orders.add_order(1, items=[(5, 2, "2500")], customer_id=42)

        response = client.put("/api/orders/1/status", json={"status": "Completed"})

        assert response.status_code == 200
        result = response.get_json()["result"]
        assert result["outcome"] == "applied"
        # pending -> completed has no stock effect
        assert result["stock_changes"] == []
        assert inventory.stock(5) == Decimal("10")
        assert orders.orders[1]["status"] == "completed"

    def test_missing_status(self, client, orders):
        orders.add_order(1, items=[(5, 1, "10")])
        response = client.put("/api/orders/1/status", json={})
        assert response.status_code == 400

    def test_cancel_needs_confirmation(self, client, orders):
        orders.add_order(2, items=[(5, 1, "10")], status="completed")

        response = client.put("/api/orders/2/status", json={"status": "cancelled"})

        assert response.status_code == 428
        assert response.get_json()["error_type"] == "ConfirmationRequiredError"
        assert orders.orders[2]["status"] == "completed"

    def test_confirm_must_be_json_true(self, client, orders):
        orders.add_order(2, items=[(5, 1, "10")], status="completed")

        for confirm in ("false", "true", 1):
            response = client.put("/api/orders/2/status", json={"status": "cancelled", "confirm": confirm})
            assert response.status_code == 428

        patched = client.patch("/api/orders/2", json={"status": "cancelled", "confirm": "false"})
        assert patched.status_code == 428
        assert orders.orders[2]["status"] == "completed"

    def test_cancel_confirmed(self, client, orders, inventory):
        orders.add_order(2, items=[(5, 1, "10")], status="completed")

        response = client.put("/api/orders/2/status", json={"status": "cancelled", "confirm": True})

        assert response.status_code == 200
        assert inventory.stock(5) == Decimal("11")

    def test_cancelled_order_is_locked(self, client, orders):
        orders.add_order(3, items=[(5, 1, "10")], status="cancelled")
        response = client.put("/api/orders/3/status", json={"status": "completed"})
        assert response.status_code == 409

    def test_unknown_order(self, client):
        response = client.put("/api/orders/404/status", json={"status": "completed"})
        assert response.status_code == 404

    def test_stale_version(self, client, orders):
        orders.add_order(4, items=[(5, 1, "10")], version=3)
        response = client.put("/api/orders/4/status", json={"status": "completed", "expected_version": 2})
        assert response.status_code == 409
        assert response.get_json()["error_type"] == "StaleOrderError"

    def test_bad_expected_version(self, client, orders):
        orders.add_order(4, items=[(5, 1, "10")])
        response = client.put("/api/orders/4/status", json={"status": "completed", "expected_version": "abc"})
        assert response.status_code == 400

    def test_stock_failure_aborts_cancel(self, client, orders, inventory, receivables):
        orders.add_order(5, items=[(5, 4, "10")], status="completed", payment_method="credit", customer_id=42)
        inventory.fail_products[5] = NetworkError("inventory service timed out")

        response = client.put("/api/orders/5/status", json={"status": "cancelled", "confirm": True})

        assert response.status_code == 503
        assert orders.orders[5]["status"] == "completed"
        assert receivables.calls_to("apply_balance_delta") == []

    def test_balance_failure_is_partial(self, client, orders, receivables):
        orders.add_order(6, items=[(5, 1, "100")], customer_id=42)
        receivables.fail("apply_balance_delta", NetworkError("receivables service timed out"))

        response = client.put("/api/orders/6/status", json={"status": "credit"})

        assert response.status_code == 202
        result = response.get_json()["result"]
        assert result["outcome"] == "partial"
        assert Decimal(result["partial_failure"]["details"]["intended_delta"]) == Decimal("100")
        assert orders.orders[6]["status"] == "credit"

    def test_remote_outage(self, client, orders):
        orders.add_order(7, items=[(5, 1, "10")])
        orders.fail("get_order", NetworkError("order service unreachable"))

        response = client.put("/api/orders/7/status", json={"status": "completed"})
        assert response.status_code == 503


class TestDetailRoutes:
    def test_payment_method(self, client, orders, receivables):
        orders.add_order(11, items=[(5, 1, "1200")], status="completed", customer_id=7)

        response = client.put("/api/orders/11/payment-method", json={"payment_method": "credit"})

        assert response.status_code == 200
        txn = response.get_json()["result"]["balance_transactions"][0]
        assert txn["amount"] == "1200.00"
        assert receivables.balance(7) == Decimal("1500")

    def test_customer_requires_key(self, client, orders):
        orders.add_order(12, items=[(5, 1, "10")], customer_id=7)
        response = client.put("/api/orders/12/customer", json={})
        assert response.status_code == 400

    def test_customer_to_walk_in(self, client, orders, receivables):
        orders.add_order(12, items=[(5, 1, "250")], status="credit", payment_method="credit", customer_id=7)

        response = client.put("/api/orders/12/customer", json={"customer_id": None})

        assert response.status_code == 200
        assert orders.orders[12]["customerId"] is None
        assert receivables.balance(7) == Decimal("50")

    def test_combined_edit(self, client, orders):
        orders.add_order(13, items=[(5, 1, "100")], customer_id=42)

        response = client.patch("/api/orders/13", json={"status": "completed", "payment_method": "card"})

        assert response.status_code == 200
        kinds = [r["kind"] for r in response.get_json()["results"]]
        assert kinds == ["status", "payment_method"]
        assert orders.orders[13]["paymentMethod"] == "card"

    def test_combined_edit_needs_a_field(self, client, orders):
        orders.add_order(13, items=[(5, 1, "100")])
        response = client.patch("/api/orders/13", json={"confirm": True})
        assert response.status_code == 400


class TestReturnRoute:
    def test_return_and_replay(self, client, orders, inventory):
        orders.add_order(20, items=[(6, 10, "100")], status="completed")
        body = {
            "items": [{"product_id": 6, "return_quantity": 4, "reason": "damaged"}],
            "notes": "Box crushed",
            "request_key": "ret-20",
        }

        first = client.post("/api/orders/20/returns", json=body)
        assert first.status_code == 201
        assert first.get_json()["return"]["refund_amount"] == "400.00"

        second = client.post("/api/orders/20/returns", json=body)
        assert second.status_code == 200
        assert second.get_json()["outcome"] == "already_applied"
        assert inventory.stock(6) == Decimal("44")

    def test_items_required(self, client, orders):
        orders.add_order(21, items=[(6, 1, "100")], status="completed")
        response = client.post("/api/orders/21/returns", json={"items": []})
        assert response.status_code == 400

    def test_nothing_to_return(self, client, orders):
        orders.add_order(22, items=[(6, 1, "100")], status="completed")
        response = client.post("/api/orders/22/returns", json={"items": [{"product_id": 6, "return_quantity": 0}]})
        assert response.status_code == 400

    def test_pending_order_refuses_returns(self, client, orders, inventory):
        orders.add_order(23, items=[(6, 2, "100")], status="pending")

        response = client.post("/api/orders/23/returns", json={"items": [{"product_id": 6, "return_quantity": 1}]})

        assert response.status_code == 409
        assert response.get_json()["error_type"] == "StateError"
        assert inventory.stock(6) == Decimal("40")


# =============================================================================
# LEDGERS
# =============================================================================

class TestStockRoutes:
    def test_current_stock(self, client):
        response = client.get("/api/stock/5")
        assert response.status_code == 200
        assert response.get_json()["current_stock"] == "10"

    def test_unknown_product(self, client):
        assert client.get("/api/stock/999").status_code == 404

    def test_movements_after_cancel(self, client, orders):
        orders.add_order(30, items=[(5, 3, "10")], status="completed")
        client.put("/api/orders/30/status", json={"status": "cancelled", "confirm": True})

        response = client.get("/api/stock/5/movements?order_id=30")

        movements = response.get_json()["movements"]
        assert len(movements) == 1
        assert Decimal(movements[0]["quantity_delta"]) == Decimal("3")

    def test_alerts(self, client):
        response = client.get("/api/stock/alerts")

        alerts = response.get_json()["alerts"]
        assert [(a["product_id"], a["type"], a["severity"]) for a in alerts] == [(7, "low_stock", "warning")]

    def test_bulk_reports_each_operation(self, client, inventory):
        response = client.post("/api/stock/bulk", json={"operations": [
            {"product_id": 5, "quantity": 5, "type": "add", "reason": "Supplier delivery"},
            {"product_id": 7, "quantity": 20, "type": "deduct"},
        ]})

        assert response.status_code == 207
        results = response.get_json()["results"]
        assert [r["success"] for r in results] == [True, False]
        assert inventory.stock(5) == Decimal("15")
        assert inventory.stock(7) == Decimal("1")


class TestCustomerRoutes:
    def test_balance(self, client):
        response = client.get("/api/customers/7/balance")
        assert response.status_code == 200
        assert response.get_json()["balance"]["current_balance"] == "300"

    def test_unknown_customer(self, client):
        assert client.get("/api/customers/404/balance").status_code == 404

    def test_payment_and_history(self, client, receivables):
        response = client.post("/api/customers/7/payments", json={"amount": 100, "payment_method": "cash"})

        assert response.status_code == 201
        assert response.get_json()["transaction"]["amount"] == "-100.00"
        assert receivables.balance(7) == Decimal("200")

        history = client.get("/api/customers/7/balance-history").get_json()["transactions"]
        assert history[0]["type"] == "debit"

    def test_payment_validation(self, client):
        assert client.post("/api/customers/7/payments", json={"amount": 5}).status_code == 400
        assert client.post("/api/customers/7/payments", json={"amount": -5, "payment_method": "cash"}).status_code == 400


# =============================================================================
# RECONCILIATION
# =============================================================================

class TestReconciliationRoutes:
    def _partial_order(self, client, orders, receivables):
        orders.add_order(40, items=[(5, 1, "100")], customer_id=42)
        receivables.fail("apply_balance_delta", NetworkError("receivables service timed out"))
        client.put("/api/orders/40/status", json={"status": "credit"})
        return db.session.query(ReconciliationIntent).filter_by(order_id=40).one()

    def test_list_intents(self, client, orders, receivables):
        intent = self._partial_order(client, orders, receivables)

        response = client.get("/api/reconciliation/intents?status=partial")

        assert response.status_code == 200
        assert [i["id"] for i in response.get_json()["intents"]] == [intent.id]

    def test_list_rejects_unknown_status(self, client):
        assert client.get("/api/reconciliation/intents?status=weird").status_code == 400

    def test_resume(self, client, orders, receivables):
        intent = self._partial_order(client, orders, receivables)

        response = client.post(f"/api/reconciliation/intents/{intent.id}/resume")

        assert response.status_code == 200
        assert response.get_json()["intent"]["status"] == INTENT_COMPLETED
        assert receivables.balance(42) == Decimal("100")

    def test_resume_unknown(self, client):
        assert client.post("/api/reconciliation/intents/999/resume").status_code == 404

    def test_run(self, client, orders, receivables):
        intent = self._partial_order(client, orders, receivables)
        assert intent.status == INTENT_PARTIAL

        response = client.post("/api/reconciliation/run", json={"limit": 10})

        summary = response.get_json()["summary"]
        assert summary["examined"] == 1
        assert summary["completed"] == 1

    def test_run_rejects_bad_limit(self, client):
        assert client.post("/api/reconciliation/run", json={"limit": 0}).status_code == 400


# =============================================================================
# CLI
# =============================================================================

class TestCli:
    def test_intents_empty(self, app):
        result = app.test_cli_runner().invoke(args=["recon", "intents"])
        assert "No intents found." in result.output

    def test_run_and_guard(self, app, client, orders, receivables):
        orders.add_order(50, items=[(5, 1, "100")], customer_id=42)
        receivables.fail("apply_balance_delta", NetworkError("receivables service timed out"))
        client.put("/api/orders/50/status", json={"status": "credit"})

        runner = app.test_cli_runner()
        listed = runner.invoke(args=["recon", "intents", "--status", "PARTIAL"])
        assert "pending -> credit" in listed.output

        ran = runner.invoke(args=["recon", "run"])
        assert "1 completed" in ran.output

        guard = runner.invoke(args=["recon", "guard", "50"])
        assert "pending -> credit" in guard.output

    def test_alerts(self, app):
        result = app.test_cli_runner().invoke(args=["recon", "alerts"])
        assert "WARNING" in result.output
        assert "Drill bit" in result.output
