# Overview: Shared HTTP plumbing for the remote order, inventory and receivables services.

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional, Dict

import httpx

from ..errors import (
    ReconcileError,
    ValidationError,
    NotFoundError,
    NetworkError,
    StaleOrderError,
)
from ..services.concurrency import run_with_retry


def _jsonable(value: Any) -> Any:
    """Decimal is not JSON serializable; the remote API expects plain numbers."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class ServiceClient:
    """
    HTTP client wrapper for one remote service.

    - Every call carries a timeout; transport failures become NetworkError.
    - GETs are retried with exponential backoff. Writes are sent once:
      replaying a ledger delta is not idempotent.
    - Responses use the envelope {"success": bool, "data": ..., "message": str}.
    """

    service_name = "remote"

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        read_attempts: int = 3,
        backoff_base: float = 0.2,
        token: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.read_attempts = max(1, int(read_attempts))
        self.backoff_base = backoff_base
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    # -------------------------------------------------------------------------
    # verbs
    # -------------------------------------------------------------------------

    def get(self, path: str, params: Optional[Dict] = None) -> Any:
        return run_with_retry(
            lambda: self._request("GET", path, params=params),
            attempts=self.read_attempts,
            backoff_base=self.backoff_base,
            retry_on=(NetworkError,),
        )

    def post(self, path: str, json: Optional[Dict] = None) -> Any:
        return self._request("POST", path, json=json)

    def put(self, path: str, json: Optional[Dict] = None) -> Any:
        return self._request("PUT", path, json=json)

    # -------------------------------------------------------------------------
    # transport
    # -------------------------------------------------------------------------

    def _request(self, method: str, path: str, *, json: Optional[Dict] = None, params: Optional[Dict] = None) -> Any:
        context = {"service": self.service_name, "method": method, "path": path}
        try:
            response = self.client.request(
                method,
                path,
                json=_jsonable(json) if json is not None else None,
                params=_jsonable(params) if params else None,
            )
        except httpx.TimeoutException as exc:
            raise NetworkError(f"{self.service_name} service timed out: {method} {path}", details=context) from exc
        except httpx.TransportError as exc:
            raise NetworkError(
                f"{self.service_name} service unreachable: {method} {path}",
                details={**context, "cause": str(exc)},
            ) from exc

        body = self._decode(response, context)
        message = body.get("message") if isinstance(body, dict) else None
        context["status_code"] = response.status_code

        if response.status_code == 404:
            raise NotFoundError(message or f"{self.service_name}: {path} not found", details=context)
        if response.status_code == 409:
            raise StaleOrderError(message or "Order was modified by another session", details=context)
        if response.status_code in (400, 422):
            raise ValidationError(message or f"{self.service_name} rejected the request", details=context)
        if response.status_code >= 500:
            raise NetworkError(message or f"{self.service_name} service error {response.status_code}", details=context)
        if response.status_code >= 400:
            raise ReconcileError(message or f"{self.service_name} request failed ({response.status_code})", details=context)

        if isinstance(body, dict) and "success" in body:
            if not body.get("success"):
                raise ValidationError(message or f"{self.service_name} reported failure", details=context)
            return body.get("data")
        return body

    def _decode(self, response: httpx.Response, context: dict) -> Any:
        if not response.content:
            return {}
        try:
            return response.json(parse_float=Decimal)
        except ValueError:
            if response.status_code >= 400:
                # Error pages are often HTML; the status code is enough
                return {}
            raise NetworkError(
                f"{self.service_name} returned a non-JSON response",
                details={**context, "status_code": response.status_code},
            )
