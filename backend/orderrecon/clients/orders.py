# Overview: Client for the remote Order Service (read orders, request status/detail changes, adjustments).

from __future__ import annotations

from ..domain import Order
from .base import ServiceClient


def _with_version(payload: dict, expected_version: int | None) -> dict:
    if expected_version is not None:
        payload["version"] = expected_version
    return payload


class OrderServiceClient(ServiceClient):
    """
    The engine never writes orders directly: it reads a snapshot and asks the
    Order Service to apply the edit once the ledgers have been reconciled.
    expected_version is forwarded so the service can refuse stale writes (409).
    """

    service_name = "order"

    def get_order(self, order_id: int) -> Order:
        return Order.from_payload(self.get(f"/sales/{order_id}"))

    def update_status(self, order_id: int, status: str, expected_version: int | None = None) -> dict:
        payload = _with_version({"status": status}, expected_version)
        return self.put(f"/sales/{order_id}/status", json=payload) or {}

    def update_payment_method(self, order_id: int, payment_method: str, expected_version: int | None = None) -> dict:
        payload = _with_version({"paymentMethod": payment_method}, expected_version)
        return self.put(f"/sales/{order_id}/details", json=payload) or {}

    def update_customer(self, order_id: int, customer_id: int | None, expected_version: int | None = None) -> dict:
        # customerId=None (walk-in) is sent explicitly
        payload = _with_version({"customerId": customer_id}, expected_version)
        return self.put(f"/sales/{order_id}/details", json=payload) or {}

    def adjust_order(self, order_id: int, adjustment: dict) -> dict:
        """Combined restock + refund. The service applies it all-or-nothing."""
        return self.post(f"/sales/{order_id}/adjust", json=adjustment) or {}
