# Overview: Service-layer concurrency helpers: retry loops, row locking and per-order single-flight.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import StateError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    retry_on: tuple = (OperationalError, StaleDataError),
    rollback: bool | None = None,
):
    """
    Execute an operation with retry on transient failures.

    Defaults retry DB concurrency failures: OperationalError (deadlocks,
    locks) and StaleDataError (optimistic locking conflicts), rolling the
    session back between attempts. Remote reads pass retry_on=(NetworkError,).
    """
    if rollback is None:
        rollback = any(issubclass(exc, (OperationalError, StaleDataError)) for exc in retry_on)

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            if rollback:
                db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def commit_with_retry(*, attempts: int = 3, backoff_base: float = 0.1):
    """Commit current session with retry handling."""
    def _op():
        db.session.commit()
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)


# =============================================================================
# PER-ORDER SINGLE-FLIGHT
# =============================================================================

_inflight_lock = threading.Lock()
_inflight_orders: dict[int, str] = {}


@contextmanager
def order_guard(order_id: int, operation: str):
    """
    Allow one edit (status, payment method, customer, return) per order at a
    time in this process. A second caller is refused, not queued.

    This is cooperative: two processes editing the same order are caught by
    the order version check instead.
    """
    with _inflight_lock:
        running = _inflight_orders.get(order_id)
        if running is not None:
            raise StateError(
                f"Order {order_id} already has an edit in progress ({running})",
                details={"order_id": order_id, "in_progress": running, "requested": operation},
            )
        _inflight_orders[order_id] = operation
    try:
        yield
    finally:
        with _inflight_lock:
            _inflight_orders.pop(order_id, None)