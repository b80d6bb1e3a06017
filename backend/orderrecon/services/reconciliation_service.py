# Overview: Order reconciler; runs each order edit as a saga across the stock ledger, balance ledger and order store.

"""
Order Edit Saga

================================================================================
STATUS TRANSITION:
1. Transition validator (raises before any ledger call).
2. ReconciliationIntent recorded, then the stock coordinator runs.
   Failure: intent ABORTED, error re-raised, no balance call, no status change.
3. Idempotency guard marked for (order, from -> to).
4. Balance coordinator. Failure is logged and returned as a PartialFailureError
   inside the result; the intent stays PARTIAL for the reconciliation job.
5. Order Service update (forwarding the expected version).

PAYMENT METHOD / CUSTOMER CHANGE:
Same shape without the stock step; the guard is marked after the balance
attempt.

A retried edit that finds its transition pair already marked is a no-op
(outcome already_applied) and touches neither ledger. A retried edit that
finds an open intent for its pair resumes that intent instead of recording a
new one.

RECONCILIATION JOB:
Finishes PARTIAL intents and PENDING intents left behind by a dead process,
comparing the recorded plan against the stock movements and the order store.
An intent whose pair a later intent already completed is aborted untouched.
================================================================================
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Iterable

from flask import current_app

from ..extensions import db, remote_services
from ..domain import (
    ItemReturn,
    Order,
    ReconcileResult,
    ReturnResult,
    KIND_STATUS,
    KIND_PAYMENT_METHOD,
    KIND_CUSTOMER,
    OUTCOME_APPLIED,
    OUTCOME_NOOP,
    OUTCOME_ALREADY_APPLIED,
    OUTCOME_PARTIAL,
    ZERO,
)
from ..errors import (
    ConflictError,
    NotFoundError,
    PartialFailureError,
    ReconcileError,
    StaleOrderError,
    StateError,
)
from ..models import ReconciliationIntent, StockMovement
from ..models.reconciliation import (
    INTENT_PENDING,
    INTENT_COMPLETED,
    INTENT_PARTIAL,
    INTENT_ABORTED,
)
from ..models.stock import MOVEMENT_RETURN, MOVEMENT_SALE
from ..time_utils import stale_cutoff
from .balance_ledger_service import BalanceLedgerClient
from .balance_service import (
    BalanceEntry,
    BalanceReconciliationCoordinator,
    plan_status_balance,
    plan_payment_method_balance,
    plan_customer_change_balance,
)
from .concurrency import commit_with_retry, lock_for_update, order_guard
from .idempotency_service import IdempotencyGuard
from .return_service import ReturnProcessor
from .stock_ledger_service import StockLedgerClient
from .stock_service import StockAdjustmentCoordinator, plan_stock_deltas
from .transition_service import (
    ensure_editable,
    require_confirmation,
    validate_payment_method,
    validate_status,
    validate_status_transition,
)


# PENDING intents younger than this may still be running in another request
STALE_PENDING_AFTER = timedelta(minutes=5)


def _value(value) -> str | None:
    return None if value is None else str(value)


def _order_field(order: Order, kind: str) -> str | None:
    if kind == KIND_STATUS:
        return order.status
    if kind == KIND_PAYMENT_METHOD:
        return order.payment_method
    return _value(order.customer_id)


class OrderReconciler:
    def __init__(self, orders, inventory, receivables, *, guard: IdempotencyGuard | None = None):
        self.orders = orders
        self.stock_ledger = StockLedgerClient(inventory)
        self.balance_ledger = BalanceLedgerClient(receivables)
        self.stock = StockAdjustmentCoordinator(self.stock_ledger)
        self.balance = BalanceReconciliationCoordinator(self.balance_ledger)
        self.guard = guard or IdempotencyGuard()
        self.returns = ReturnProcessor(orders, self.stock_ledger)

    # =========================================================================
    # ORDER SNAPSHOT
    # =========================================================================

    def load_order(self, order_id: int, expected_version: int | None = None) -> Order:
        order = self.orders.get_order(order_id)
        self._check_version(order, expected_version)
        return order

    @staticmethod
    def _check_version(order: Order, expected_version: int | None) -> None:
        if expected_version is None or order.version is None:
            return
        if int(expected_version) != order.version:
            raise StaleOrderError(
                f"Order {order.order_number} was modified by someone else",
                details={"order_id": order.id, "expected_version": expected_version, "current_version": order.version},
            )

    # =========================================================================
    # STATUS
    # =========================================================================

    def change_status(
        self,
        order_id: int,
        to_status: str,
        *,
        confirm: bool = False,
        expected_version: int | None = None,
    ) -> ReconcileResult:
        validate_status(to_status)
        with order_guard(order_id, KIND_STATUS):
            order = self.load_order(order_id, expected_version)
            return self.reconcile_transition(order, to_status, confirm=confirm, expected_version=expected_version)

    def reconcile_transition(
        self,
        order: Order,
        to_status: str,
        *,
        confirm: bool = False,
        expected_version: int | None = None,
    ) -> ReconcileResult:
        """
        Reconcile both ledgers for order.status -> to_status and push the new
        status to the Order Service.

        `order` is the snapshot the edit was decided on. Replaying the same
        snapshot after a success returns outcome already_applied.

        Raises:
            ValidationError: unknown status, insufficient stock
            StateError: illegal transition, cancelled order, missing confirmation, stale version
            NotFoundError / NetworkError: from the stock step (transition aborted)
        """
        validate_status(to_status)
        self._check_version(order, expected_version)
        from_status = order.status
        result = ReconcileResult(
            order_id=order.id,
            kind=KIND_STATUS,
            from_value=from_status,
            to_value=to_status,
            outcome=OUTCOME_NOOP,
        )

        ensure_editable(order, "change status of")
        if from_status == to_status:
            return result
        validate_status_transition(from_status, to_status)
        require_confirmation(to_status, confirm)

        resumed = self._resume_open_intent(order, KIND_STATUS, from_status, to_status)
        if resumed is not None:
            return resumed
        if self._already_applied(order, KIND_STATUS, from_status, to_status, result):
            return result

        stock_plan = plan_stock_deltas(order.items, from_status, to_status)
        balance_plan = plan_status_balance(
            order.customer_id,
            order.total,
            from_status,
            to_status,
            order_number=order.order_number,
            payment_method=order.payment_method,
        )
        intent = self._record_intent(
            order, KIND_STATUS, from_status, to_status,
            expected_version=expected_version,
            stock_plan=[d.to_dict() for d in stock_plan],
            balance_plan=balance_plan,
        )
        result.intent_id = intent.id

        try:
            result.stock_changes = self.stock.reconcile_stock(
                order.id,
                order.items,
                from_status,
                to_status,
                order_number=order.order_number,
                intent_id=intent.id,
            )
        except ReconcileError as exc:
            self._abort(intent, exc)
            raise

        intent.stock_applied = True
        commit_with_retry()
        self.guard.mark_applied(order.id, from_status, to_status, KIND_STATUS, intent_id=intent.id)

        self._apply_balance(intent, result)
        self._push_order_update(intent, result)
        self._finish(intent, result)
        return result

    # =========================================================================
    # PAYMENT METHOD / CUSTOMER
    # =========================================================================

    def change_payment_method(
        self,
        order_id: int,
        to_method: str,
        *,
        expected_version: int | None = None,
    ) -> ReconcileResult:
        validate_payment_method(to_method)
        with order_guard(order_id, KIND_PAYMENT_METHOD):
            order = self.load_order(order_id, expected_version)
            return self.reconcile_payment_method(order, to_method, expected_version=expected_version)

    def reconcile_payment_method(
        self,
        order: Order,
        to_method: str,
        *,
        expected_version: int | None = None,
        apply_balance: bool = True,
    ) -> ReconcileResult:
        """
        apply_balance=False pushes the new method without a receivable change
        (combined edits, where the status-driven delta wins).
        """
        validate_payment_method(to_method)
        self._check_version(order, expected_version)
        from_method = order.payment_method
        result = ReconcileResult(
            order_id=order.id,
            kind=KIND_PAYMENT_METHOD,
            from_value=from_method,
            to_value=to_method,
            outcome=OUTCOME_NOOP,
        )

        ensure_editable(order, "change payment method of")
        if from_method == to_method:
            return result
        resumed = self._resume_open_intent(order, KIND_PAYMENT_METHOD, from_method, to_method)
        if resumed is not None:
            return resumed
        if self._already_applied(order, KIND_PAYMENT_METHOD, from_method, to_method, result):
            return result

        balance_plan = []
        if apply_balance:
            balance_plan = plan_payment_method_balance(
                order.customer_id, order.total, from_method, to_method, order_number=order.order_number,
            )
        return self._run_balance_edit(order, KIND_PAYMENT_METHOD, from_method, to_method, balance_plan, expected_version, result)

    def change_customer(
        self,
        order_id: int,
        to_customer: int | None,
        *,
        expected_version: int | None = None,
    ) -> ReconcileResult:
        with order_guard(order_id, KIND_CUSTOMER):
            order = self.load_order(order_id, expected_version)
            return self.reconcile_customer_change(order, to_customer, expected_version=expected_version)

    def reconcile_customer_change(
        self,
        order: Order,
        to_customer: int | None,
        *,
        expected_version: int | None = None,
    ) -> ReconcileResult:
        self._check_version(order, expected_version)
        from_customer = order.customer_id
        result = ReconcileResult(
            order_id=order.id,
            kind=KIND_CUSTOMER,
            from_value=_value(from_customer),
            to_value=_value(to_customer),
            outcome=OUTCOME_NOOP,
        )

        ensure_editable(order, "change customer of")
        if from_customer == to_customer:
            return result
        if to_customer is not None:
            # raises NotFoundError for an unknown customer
            self.balance_ledger.get_balance(to_customer)
        resumed = self._resume_open_intent(order, KIND_CUSTOMER, from_customer, to_customer)
        if resumed is not None:
            return resumed
        if self._already_applied(order, KIND_CUSTOMER, _value(from_customer), _value(to_customer), result):
            return result

        balance_plan = plan_customer_change_balance(order, from_customer, to_customer)
        return self._run_balance_edit(
            order, KIND_CUSTOMER, _value(from_customer), _value(to_customer), balance_plan, expected_version, result,
        )

    def _run_balance_edit(
        self,
        order: Order,
        kind: str,
        from_value: str | None,
        to_value: str | None,
        balance_plan: list[BalanceEntry],
        expected_version: int | None,
        result: ReconcileResult,
    ) -> ReconcileResult:
        intent = self._record_intent(
            order, kind, from_value, to_value,
            expected_version=expected_version,
            stock_plan=[],
            balance_plan=balance_plan,
        )
        intent.stock_applied = True
        result.intent_id = intent.id

        self._apply_balance(intent, result)
        self.guard.mark_applied(order.id, from_value, to_value, kind, intent_id=intent.id)
        self._push_order_update(intent, result)
        self._finish(intent, result)
        return result

    # =========================================================================
    # COMBINED EDIT / RETURNS
    # =========================================================================

    def edit_order(
        self,
        order_id: int,
        *,
        status: str | None = None,
        payment_method: str | None = None,
        confirm: bool = False,
        expected_version: int | None = None,
    ) -> list[ReconcileResult]:
        """
        Status and payment method in one request. When both change, only the
        status-driven balance delta is applied; the method is still saved.
        """
        if status is not None:
            validate_status(status)
        if payment_method is not None:
            validate_payment_method(payment_method)

        results = []
        with order_guard(order_id, "edit"):
            order = self.load_order(order_id, expected_version)
            status_changed = False

            if status is not None:
                status_result = self.reconcile_transition(
                    order, status, confirm=confirm, expected_version=expected_version,
                )
                results.append(status_result)
                status_changed = status_result.outcome in (OUTCOME_APPLIED, OUTCOME_PARTIAL)

            if payment_method is not None and payment_method != order.payment_method:
                if status_changed:
                    # the status update bumped the version; work on the fresh order
                    refreshed = self.orders.get_order(order_id)
                    if refreshed.is_cancelled:
                        current_app.logger.info(
                            "Order %s cancelled in the same edit; payment method left as %s",
                            order_id, refreshed.payment_method,
                        )
                        return results
                    results.append(self.reconcile_payment_method(
                        refreshed, payment_method, expected_version=refreshed.version, apply_balance=False,
                    ))
                else:
                    results.append(self.reconcile_payment_method(
                        order, payment_method, expected_version=expected_version,
                    ))
        return results

    def process_return(
        self,
        order_id: int,
        item_returns: Iterable[ItemReturn],
        notes: str | None = None,
        request_key: str | None = None,
    ) -> ReturnResult:
        with order_guard(order_id, "return"):
            order = self.load_order(order_id)
            return self.returns.process_return(order, list(item_returns), notes=notes, request_key=request_key)

    # =========================================================================
    # SAGA STEPS
    # =========================================================================

    def _resume_open_intent(self, order: Order, kind: str, from_value, to_value) -> ReconcileResult | None:
        """
        A retried edit finishes the order's open intent for the same pair
        instead of recording a second one. Returns None when there is nothing
        to resume and the edit should run normally.

        Raises:
            StateError: an open intent for a different pair never reached the
                Order Service; the job has to finish it first
        """
        latest = self._latest_intent(order.id, kind)
        if latest is None or latest.status not in (INTENT_PENDING, INTENT_PARTIAL):
            return None

        if (latest.from_value, latest.to_value) != (_value(from_value), _value(to_value)):
            if latest.order_updated:
                return None
            raise StateError(
                f"Order {order.order_number} has an unfinished edit (intent {latest.id}); run reconciliation first",
                details={
                    "order_id": order.id,
                    "intent_id": latest.id,
                    "kind": kind,
                    "from": latest.from_value,
                    "to": latest.to_value,
                },
            )

        current_app.logger.info(
            "Order %s %s %s -> %s: resuming open intent %s", order.id, kind, from_value, to_value, latest.id,
        )
        result = self._resume(latest)
        if latest.status == INTENT_ABORTED:
            return None
        return result

    def _latest_intent(self, order_id: int, kind: str) -> ReconciliationIntent | None:
        return (
            db.session.query(ReconciliationIntent)
            .filter(
                ReconciliationIntent.order_id == order_id,
                ReconciliationIntent.kind == kind,
                ReconciliationIntent.status != INTENT_ABORTED,
            )
            .order_by(ReconciliationIntent.id.desc())
            .first()
        )

    def _later_intent(self, intent: ReconciliationIntent) -> ReconciliationIntent | None:
        """The next live intent of the same kind recorded for the order, if any."""
        return (
            db.session.query(ReconciliationIntent)
            .filter(
                ReconciliationIntent.order_id == intent.order_id,
                ReconciliationIntent.kind == intent.kind,
                ReconciliationIntent.status != INTENT_ABORTED,
                ReconciliationIntent.id > intent.id,
            )
            .order_by(ReconciliationIntent.id.asc())
            .first()
        )

    def _already_applied(self, order: Order, kind: str, from_value, to_value, result: ReconcileResult) -> bool:
        """Replay of a reconciled transition: skip both ledgers and the order update."""
        if not self.guard.already_applied(order.id, from_value, to_value, kind):
            return False

        result.outcome = OUTCOME_ALREADY_APPLIED
        result.conflict = ConflictError(
            f"Transition {from_value} -> {to_value} already applied to order {order.order_number}",
            details={"order_id": order.id, "kind": kind, "from": from_value, "to": to_value},
        )

        intent = (
            db.session.query(ReconciliationIntent)
            .filter_by(order_id=order.id, kind=kind, from_value=from_value, to_value=to_value)
            .order_by(ReconciliationIntent.id.desc())
            .first()
        )
        if intent is not None:
            result.intent_id = intent.id

        current_app.logger.info(
            "Order %s %s %s -> %s already applied; ledgers untouched", order.id, kind, from_value, to_value,
        )
        return True

    def _record_intent(
        self,
        order: Order,
        kind: str,
        from_value,
        to_value,
        *,
        expected_version: int | None,
        stock_plan: list[dict],
        balance_plan: list[BalanceEntry],
    ) -> ReconciliationIntent:
        intent = ReconciliationIntent(
            order_id=order.id,
            order_number=order.order_number,
            kind=kind,
            from_value=_value(from_value),
            to_value=_value(to_value),
            expected_version=expected_version if expected_version is not None else order.version,
            customer_id=order.customer_id,
            order_total=order.total,
            stock_plan=stock_plan,
            balance_plan=[entry.to_dict() for entry in balance_plan],
            status=INTENT_PENDING,
            attempts=1,
        )
        db.session.add(intent)
        db.session.flush()
        commit_with_retry()
        return intent

    def _abort(self, intent: ReconciliationIntent, exc: ReconcileError) -> None:
        intent.status = INTENT_ABORTED
        intent.last_error = exc.message
        commit_with_retry()
        current_app.logger.warning(
            "Order %s %s %s -> %s aborted at stock step: %s",
            intent.order_id, intent.kind, intent.from_value, intent.to_value, exc.message,
        )

    def _apply_balance(self, intent: ReconciliationIntent, result: ReconcileResult) -> None:
        """Apply the intent's unapplied balance entries; failures become a PartialFailureError on the result."""
        plan = list(intent.balance_plan or [])
        pending_indexes = [i for i, entry in enumerate(plan) if not entry.get("applied")]
        entries = [BalanceEntry.from_dict(plan[i]) for i in pending_indexes]

        def _on_applied(position: int, txn) -> None:
            updated = [dict(entry) for entry in intent.balance_plan]
            updated[pending_indexes[position]]["applied"] = True
            intent.balance_plan = updated
            result.balance_transactions.append(txn)
            commit_with_retry()

        try:
            self.balance.apply_entries(
                entries,
                order_id=intent.order_id,
                order_number=intent.order_number,
                on_applied=_on_applied,
            )
        except ReconcileError as exc:
            remaining = intent.pending_balance_entries()
            intended = sum((Decimal(str(entry["amount"])) for entry in remaining), ZERO)
            result.partial_failure = PartialFailureError(
                f"Balance update failed for order {intent.order_number}; receivable needs reconciliation",
                order_id=intent.order_id,
                intended_delta=intended,
                customer_id=remaining[0]["customer_id"] if remaining else intent.customer_id,
                intent_id=intent.id,
                cause=exc,
            )
            result.outcome = OUTCOME_PARTIAL
            intent.last_error = exc.message
            commit_with_retry()
            current_app.logger.warning(
                "Partial failure on order %s (%s %s -> %s): balance delta %s not applied: %s",
                intent.order_id, intent.kind, intent.from_value, intent.to_value, intended, exc.message,
            )
            return

        intent.balance_applied = True
        commit_with_retry()

    def _push_order_update(self, intent: ReconciliationIntent, result: ReconcileResult) -> None:
        version = intent.expected_version
        try:
            if intent.kind == KIND_STATUS:
                self.orders.update_status(intent.order_id, intent.to_value, expected_version=version)
            elif intent.kind == KIND_PAYMENT_METHOD:
                self.orders.update_payment_method(intent.order_id, intent.to_value, expected_version=version)
            else:
                to_customer = int(intent.to_value) if intent.to_value is not None else None
                self.orders.update_customer(intent.order_id, to_customer, expected_version=version)
        except ReconcileError as exc:
            # ledgers are already reconciled; leave the order update to the job
            intent.last_error = exc.message
            if result.partial_failure is None:
                result.partial_failure = PartialFailureError(
                    f"Order {intent.order_number} ledgers reconciled but the order update failed",
                    order_id=intent.order_id,
                    intended_delta=ZERO,
                    customer_id=intent.customer_id,
                    intent_id=intent.id,
                    cause=exc,
                )
            result.outcome = OUTCOME_PARTIAL
            current_app.logger.warning(
                "Order %s update to %s=%s failed after ledgers were reconciled: %s",
                intent.order_id, intent.kind, intent.to_value, exc.message,
            )
            return

        intent.order_updated = True

    def _finish(self, intent: ReconciliationIntent, result: ReconcileResult) -> None:
        if intent.stock_applied and intent.balance_applied and intent.order_updated:
            intent.status = INTENT_COMPLETED
            intent.last_error = None
            if result.outcome != OUTCOME_ALREADY_APPLIED:
                result.outcome = OUTCOME_APPLIED
        else:
            intent.status = INTENT_PARTIAL
            result.outcome = OUTCOME_PARTIAL
        commit_with_retry()

        current_app.logger.info(
            "Order %s %s %s -> %s reconciled (%s): %d stock change(s), %d balance transaction(s)",
            intent.order_id, intent.kind, intent.from_value, intent.to_value, result.outcome,
            len(result.stock_changes), len(result.balance_transactions),
        )

    # =========================================================================
    # RECONCILIATION JOB
    # =========================================================================

    def list_intents(self, status: str | None = None, limit: int = 100) -> list[ReconciliationIntent]:
        q = db.session.query(ReconciliationIntent)
        if status:
            q = q.filter(ReconciliationIntent.status == status.upper())
        return q.order_by(ReconciliationIntent.created_at.desc(), ReconciliationIntent.id.desc()).limit(limit).all()

    def get_intent(self, intent_id: int, *, lock: bool = False) -> ReconciliationIntent:
        q = db.session.query(ReconciliationIntent).filter(ReconciliationIntent.id == intent_id)
        if lock:
            q = lock_for_update(q)
        intent = q.first()
        if intent is None:
            raise NotFoundError(f"Intent {intent_id} not found", details={"intent_id": intent_id})
        return intent

    def resume_intent(self, intent_id: int) -> ReconcileResult:
        """
        Drive one PENDING/PARTIAL intent to COMPLETED (or ABORTED when the
        process died before any ledger effect).

        Raises:
            NotFoundError: unknown intent
            StateError: intent already COMPLETED or ABORTED, or order edit in flight
        """
        intent = self.get_intent(intent_id, lock=True)
        if intent.status in (INTENT_COMPLETED, INTENT_ABORTED):
            raise StateError(
                f"Intent {intent_id} is {intent.status} and cannot be resumed",
                details={"intent_id": intent_id, "status": intent.status},
            )

        with order_guard(intent.order_id, "reconcile"):
            return self._resume(intent)

    def _resume(self, intent: ReconciliationIntent) -> ReconcileResult:
        result = ReconcileResult(
            order_id=intent.order_id,
            kind=intent.kind,
            from_value=intent.from_value,
            to_value=intent.to_value,
            outcome=OUTCOME_PARTIAL,
            intent_id=intent.id,
        )
        intent.attempts = (intent.attempts or 0) + 1

        later = self._later_intent(intent)
        if (
            later is not None
            and later.status == INTENT_COMPLETED
            and (later.from_value, later.to_value) == (intent.from_value, intent.to_value)
        ):
            intent.status = INTENT_ABORTED
            intent.last_error = f"Duplicate of intent {later.id}; not resumed"
            commit_with_retry()
            result.outcome = OUTCOME_NOOP
            current_app.logger.warning("Intent %s aborted: %s", intent.id, intent.last_error)
            return result

        if not intent.stock_applied and not self._resume_stock(intent, result):
            return result

        # a superseded record stays superseded; only an intent that never marked marks now
        if later is None and not self.guard.recorded_for_intent(intent.id):
            self.guard.mark_applied(
                intent.order_id, intent.from_value, intent.to_value, intent.kind, intent_id=intent.id,
            )

        if not intent.balance_applied:
            self._apply_balance(intent, result)

        if not intent.order_updated:
            self._resume_order_update(intent, result, later)

        self._finish(intent, result)
        return result

    def _resume_stock(self, intent: ReconciliationIntent, result: ReconcileResult) -> bool:
        """
        Compare the recorded stock plan with the movements logged for this
        intent. Returns False when the intent was aborted.
        """
        plan = intent.stock_plan or []
        if not plan:
            intent.stock_applied = True
            commit_with_retry()
            return True

        applied: dict[int, Decimal] = {}
        for movement in db.session.query(StockMovement).filter_by(intent_id=intent.id).all():
            applied[movement.product_id] = applied.get(movement.product_id, ZERO) + Decimal(str(movement.quantity_delta))

        if all(amount == 0 for amount in applied.values()):
            intent.status = INTENT_ABORTED
            intent.last_error = "No stock movement recorded; the edit never took effect"
            commit_with_retry()
            result.outcome = OUTCOME_NOOP
            current_app.logger.warning("Intent %s aborted: no ledger effect found", intent.id)
            return False

        for entry in plan:
            product_id = int(entry["product_id"])
            remaining = Decimal(str(entry["quantity_delta"])) - applied.get(product_id, ZERO)
            if remaining == 0:
                continue
            result.stock_changes.append(self.stock_ledger.apply_delta(
                product_id,
                remaining,
                f"Order {intent.order_number} {intent.to_value} - reconciliation job",
                order_id=intent.order_id,
                order_number=intent.order_number,
                movement_type=MOVEMENT_RETURN if remaining > 0 else MOVEMENT_SALE,
                intent_id=intent.id,
            ))

        intent.stock_applied = True
        commit_with_retry()
        return True

    def _resume_order_update(
        self,
        intent: ReconciliationIntent,
        result: ReconcileResult,
        later: ReconciliationIntent | None = None,
    ) -> None:
        if later is not None:
            intent.order_updated = True
            current_app.logger.info(
                "Intent %s: order %s is owned by later intent %s; not pushed", intent.id, intent.kind, later.id,
            )
            return
        order = self.orders.get_order(intent.order_id)
        current = _order_field(order, intent.kind)
        if current == intent.to_value:
            intent.order_updated = True
            return
        if current != intent.from_value:
            intent.last_error = (
                f"Order {intent.kind} is now {current!r}; expected {intent.from_value!r}. Needs manual review"
            )
            current_app.logger.warning("Intent %s: %s", intent.id, intent.last_error)
            return
        # the stored version is stale by now; push against the current one
        intent.expected_version = order.version
        self._push_order_update(intent, result)

    def run_reconciliation(self, limit: int | None = None, stale_after: timedelta = STALE_PENDING_AFTER) -> dict:
        """Resume every PARTIAL intent and every PENDING intent older than stale_after."""
        limit = limit or current_app.config.get("RECON_JOB_BATCH_SIZE", 50)
        cutoff = stale_cutoff(stale_after)

        intents = (
            db.session.query(ReconciliationIntent)
            .filter(
                (ReconciliationIntent.status == INTENT_PARTIAL)
                | ((ReconciliationIntent.status == INTENT_PENDING) & (ReconciliationIntent.created_at <= cutoff))
            )
            .order_by(ReconciliationIntent.created_at.asc(), ReconciliationIntent.id.asc())
            .limit(limit)
            .all()
        )

        summary = {"examined": 0, "completed": 0, "partial": 0, "aborted": 0, "errors": []}
        for intent in intents:
            summary["examined"] += 1
            try:
                self.resume_intent(intent.id)
            except ReconcileError as exc:
                db.session.rollback()
                summary["errors"].append({"intent_id": intent.id, **exc.to_dict()})
                continue

            status = db.session.get(ReconciliationIntent, intent.id).status
            if status == INTENT_COMPLETED:
                summary["completed"] += 1
            elif status == INTENT_ABORTED:
                summary["aborted"] += 1
            else:
                summary["partial"] += 1

        if summary["examined"]:
            current_app.logger.info(
                "Reconciliation run: %(examined)s examined, %(completed)s completed, "
                "%(partial)s still partial, %(aborted)s aborted", summary,
            )
        return summary


def build_reconciler() -> OrderReconciler:
    """Reconciler wired to the app's remote service clients."""
    return OrderReconciler(
        remote_services.orders,
        remote_services.inventory,
        remote_services.receivables,
    )
