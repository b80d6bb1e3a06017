# Overview: Client for the remote Receivables Service (customer balances and balance transactions).

from __future__ import annotations

from decimal import Decimal

from ..errors import NotFoundError
from .base import ServiceClient


class ReceivablesServiceClient(ServiceClient):
    service_name = "receivables"

    def get_customer_balance(self, customer_id: int) -> dict:
        """
        Balance details for a customer.

        Older deployments lack the balance-details endpoint; fall back to the
        plain customer record, which carries currentBalance and creditLimit.
        """
        try:
            data = self.get(f"/customers/{customer_id}/balance-details")
        except NotFoundError:
            data = None
        if data:
            return data
        return self.get(f"/customers/{customer_id}") or {}

    def apply_balance_delta(
        self,
        customer_id: int,
        signed_amount: Decimal,
        txn_type: str,
        description: str,
        order_id: int | None = None,
        order_number: str | None = None,
    ) -> dict:
        payload = {
            "customerId": customer_id,
            "amount": signed_amount,
            "type": txn_type,
            "description": description,
        }
        if order_id is not None:
            payload["orderId"] = order_id
        if order_number is not None:
            payload["orderNumber"] = order_number
        return self.post("/customers/update-balance", json=payload) or {}

    def get_history(self, customer_id: int, limit: int = 50, offset: int = 0) -> list[dict]:
        data = self.get(
            f"/customers/{customer_id}/balance-history",
            params={"limit": limit, "offset": offset},
        )
        if isinstance(data, dict):
            data = data.get("transactions") or []
        return list(data or [])
