# Overview: Idempotency guard; remembers which (order, from -> to) transitions already had their ledger effects applied.

"""
Keyed on the specific transition pair, per kind (status, payment_method,
customer). Marking a transition supersedes the order's earlier ACTIVE records
of the same kind:

    completed -> credit   marked           (active)
    credit -> completed   marked           (supersedes the first)
    completed -> credit   already_applied? -> False, reconciled again

A retried request for the transition that was just applied finds its record
active and is a no-op. Records live in the database, so they survive restarts
and are auditable; superseded rows are never deleted or re-activated.
"""

from __future__ import annotations

from ..extensions import db
from ..domain import KIND_STATUS
from ..errors import ConflictError
from ..models import TransitionRecord
from ..time_utils import utcnow
from .concurrency import commit_with_retry


def _value(value) -> str | None:
    return None if value is None else str(value)


class IdempotencyGuard:
    def _active_query(self, order_id: int, kind: str):
        return db.session.query(TransitionRecord).filter(
            TransitionRecord.order_id == order_id,
            TransitionRecord.kind == kind,
            TransitionRecord.applied.is_(True),
            TransitionRecord.superseded_at.is_(None),
        )

    def already_applied(self, order_id: int, from_value, to_value, kind: str = KIND_STATUS) -> bool:
        record = (
            self._active_query(order_id, kind)
            .filter(
                TransitionRecord.from_value == _value(from_value),
                TransitionRecord.to_value == _value(to_value),
            )
            .first()
        )
        return record is not None

    def recorded_for_intent(self, intent_id: int) -> bool:
        """True once the intent marked its transition, even if later superseded."""
        return (
            db.session.query(TransitionRecord.id)
            .filter(TransitionRecord.intent_id == intent_id)
            .first()
        ) is not None

    def ensure_not_applied(self, order_id: int, from_value, to_value, kind: str = KIND_STATUS) -> None:
        if self.already_applied(order_id, from_value, to_value, kind):
            raise ConflictError(
                f"Transition {from_value} -> {to_value} already applied to order {order_id}",
                details={"order_id": order_id, "kind": kind, "from": _value(from_value), "to": _value(to_value)},
            )

    def mark_applied(
        self,
        order_id: int,
        from_value,
        to_value,
        kind: str = KIND_STATUS,
        *,
        intent_id: int | None = None,
        commit: bool = True,
    ) -> TransitionRecord:
        now = utcnow()
        for previous in self._active_query(order_id, kind).all():
            previous.superseded_at = now

        record = TransitionRecord(
            order_id=order_id,
            kind=kind,
            from_value=_value(from_value),
            to_value=_value(to_value),
            applied=True,
            applied_at=now,
            intent_id=intent_id,
        )
        db.session.add(record)
        db.session.flush()
        if commit:
            commit_with_retry()
        return record

    def records_for(self, order_id: int, kind: str | None = None) -> list[TransitionRecord]:
        q = db.session.query(TransitionRecord).filter(TransitionRecord.order_id == order_id)
        if kind is not None:
            q = q.filter(TransitionRecord.kind == kind)
        return q.order_by(TransitionRecord.applied_at.asc(), TransitionRecord.id.asc()).all()
