# Overview: Client for the remote Inventory Service (product stock reads, signed stock deltas).

from __future__ import annotations

from decimal import Decimal

from .base import ServiceClient


class InventoryServiceClient(ServiceClient):
    service_name = "inventory"

    def get_product(self, product_id: int) -> dict:
        """Product record including its current `stock`."""
        return self.get(f"/products/{product_id}") or {}

    def apply_stock_delta(
        self,
        product_id: int,
        signed_quantity: Decimal,
        notes: str,
        order_id: int | None = None,
        order_number: str | None = None,
    ) -> dict:
        """
        Apply a signed quantity change through the restock endpoint
        (negative quantity deducts). Returns {"newStock", "productName", ...}.
        """
        payload = {
            "productId": product_id,
            "quantity": signed_quantity,
            "notes": notes,
        }
        if order_id is not None:
            payload["orderId"] = order_id
        if order_number is not None:
            payload["orderNumber"] = order_number
        return self.post("/inventory/restock", json=payload) or {}

    def list_inventory(self, *, low_stock: bool = False, product_id: int | None = None, limit: int | None = None) -> list[dict]:
        params = {}
        if product_id is not None:
            params["productId"] = product_id
        elif low_stock:
            params["lowStock"] = "true"
        if limit is not None:
            params["limit"] = limit

        data = self.get("/inventory", params=params)
        if isinstance(data, dict):
            data = data.get("inventory") or []
        return list(data or [])
