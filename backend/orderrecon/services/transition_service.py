# Overview: Order status state machine and payment-method legality; no ledger or network work.

"""
Order Transition Rules

================================================================================
STATE MACHINE:

    pending   <-> completed
    pending   ->  cancelled, credit
    completed ->  cancelled, credit
    credit    ->  pending, completed

    cancelled: TERMINAL. No status, payment-method, customer or return edit
               of any kind is accepted once an order is cancelled.

RULES:
1. Every edit is refused with StateError on a cancelled order.
2. Moving to `cancelled` requires an explicit confirmation (confirm=True);
   the first request without it is refused with ConfirmationRequiredError
   and nothing is committed.
3. Same-state "transitions" are not errors; the caller treats them as no-ops.
================================================================================
"""

from __future__ import annotations

from ..domain import (
    Order,
    STATUS_PENDING,
    STATUS_COMPLETED,
    STATUS_CREDIT,
    STATUS_CANCELLED,
    VALID_STATUSES,
    VALID_PAYMENT_METHODS,
)
from ..errors import ValidationError, StateError, ConfirmationRequiredError


ALLOWED_STATUS_TRANSITIONS: dict[str, set[str]] = {
    STATUS_PENDING: {STATUS_COMPLETED, STATUS_CANCELLED, STATUS_CREDIT},
    STATUS_COMPLETED: {STATUS_PENDING, STATUS_CANCELLED, STATUS_CREDIT},
    STATUS_CREDIT: {STATUS_PENDING, STATUS_COMPLETED},
    STATUS_CANCELLED: set(),
}

TERMINAL_STATUSES = {STATUS_CANCELLED}


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}",
            details={"status": status},
        )


def validate_payment_method(payment_method: str) -> None:
    if payment_method not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method '{payment_method}'. Must be one of: {', '.join(sorted(VALID_PAYMENT_METHODS))}",
            details={"payment_method": payment_method},
        )


def can_edit(order: Order) -> bool:
    """Cancelled orders are frozen."""
    return order.status not in TERMINAL_STATUSES


def ensure_editable(order: Order, action: str = "edit") -> None:
    if not can_edit(order):
        raise StateError(
            f"Cannot {action} order {order.order_number}: cancelled orders cannot be modified",
            details={"order_id": order.id, "status": order.status, "action": action},
        )


def can_transition(from_status: str, to_status: str) -> bool:
    validate_status(from_status)
    validate_status(to_status)

    if from_status == to_status:
        return True

    return to_status in ALLOWED_STATUS_TRANSITIONS[from_status]


def validate_status_transition(from_status: str, to_status: str) -> None:
    """
    Raises:
        ValidationError: unknown status value
        StateError: transition not allowed (including anything out of cancelled)
    """
    if not can_transition(from_status, to_status):
        raise StateError(
            f"Cannot change status from '{from_status}' to '{to_status}'",
            details={
                "from": from_status,
                "to": to_status,
                "allowed": sorted(ALLOWED_STATUS_TRANSITIONS.get(from_status, set())),
            },
        )


def require_confirmation(to_status: str, confirm: bool) -> None:
    """Two-phase gesture for cancellation: ask first, commit on confirm."""
    if to_status == STATUS_CANCELLED and not confirm:
        raise ConfirmationRequiredError(
            "Cancelling an order is irreversible and must be confirmed",
            details={"to": to_status, "confirm_required": True},
        )
