"""
Reconciliation error taxonomy.

Every error carries a human-readable message and a `details` dict so callers
(routes, the reconciliation job, the CLI) can report exactly what was refused
or what is left to reconcile.

PROPAGATION:
- ValidationError / StateError: raised before any ledger call, transition blocked.
- NetworkError on the stock step: transition aborted.
- Balance step failures: caught by the reconciler and returned as a
  PartialFailureError inside the result, never raised past it.
- ConflictError: non-fatal, the transition was already applied.
"""

from __future__ import annotations


class ReconcileError(Exception):
    """Base class for reconciliation engine errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "error_type": type(self).__name__,
            "details": self.details,
        }


class ValidationError(ReconcileError):
    """Bad input: insufficient stock, out-of-range quantity, missing field."""


class NotFoundError(ReconcileError):
    """Remote entity (order, product, customer) does not exist."""


class StateError(ReconcileError):
    """Edit not allowed in the order's current state."""


class ConfirmationRequiredError(StateError):
    """Cancelling an order needs an explicit confirmation step."""


class StaleOrderError(StateError):
    """Order changed since the caller read it (version mismatch)."""


class NetworkError(ReconcileError):
    """Transport failure or timeout. Safe to retry."""

    retryable = True


class ConflictError(ReconcileError):
    """Transition already applied; the request is a no-op."""


class PartialFailureError(ReconcileError):
    """
    Stock step committed but the balance step failed.

    details always include order_id and the intended balance delta so the
    reconciliation job (or a person) can finish the work.
    """

    def __init__(
        self,
        message: str,
        *,
        order_id: int,
        intended_delta,
        customer_id: int | None = None,
        intent_id: int | None = None,
        cause: Exception | None = None,
    ):
        details = {
            "order_id": order_id,
            "customer_id": customer_id,
            "intended_delta": str(intended_delta),
            "intent_id": intent_id,
        }
        if cause is not None:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__
        super().__init__(message, details)
        self.order_id = order_id
        self.customer_id = customer_id
        self.intended_delta = intended_delta
        self.intent_id = intent_id
        self.cause = cause


# API status codes; first match wins, so subclasses come before their bases
_HTTP_STATUS = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConfirmationRequiredError, 428),
    (StateError, 409),
    (ConflictError, 200),
    (NetworkError, 503),
    (PartialFailureError, 500),
)


def http_status(exc: ReconcileError) -> int:
    """Remote errors outside the taxonomy (401/403 from a service) surface as 502."""
    for exc_type, status in _HTTP_STATUS:
        if isinstance(exc, exc_type):
            return status
    return 502
