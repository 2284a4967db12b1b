"""Step completion tracking and due-status classification."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from offerdesk import db, store
from offerdesk.errors import NotFoundError
from offerdesk.logging import get_logger
from offerdesk.models import DueStatus, Step, utcnow

log = get_logger(__name__)

DUE_SOON_WINDOW = timedelta(days=7)


def update_step_complete(transaction_id: str, step_id: str, completed: bool,
                         now: datetime | None = None) -> None:
    """Mark a step complete (stamped with now) or incomplete (cleared).

    The whole steps array is written back in one compare-and-swap, so a
    concurrent toggle on the same transaction fails with StaleWriteError
    instead of being silently overwritten.
    """
    now = now or utcnow()
    with db.conn() as c:
        txn = store.require_transaction(c, transaction_id)
        if txn.step(step_id) is None:
            raise NotFoundError(f"Step {step_id} not found",
                                context={"transaction_id": transaction_id, "step_id": step_id})
        txn.steps = [
            s if s.id != step_id else s.model_copy(update={
                "completed": bool(completed),
                "completed_at": now if completed else None,
            })
            for s in txn.steps
        ]
        store.update_transaction(c, txn)
        db.log(c, transaction_id, "step_completed" if completed else "step_reopened", step_id)
    log.info("step_updated", transaction_id=transaction_id, step_id=step_id, completed=bool(completed))


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def get_due_status(step: Step, now: datetime | None = None) -> DueStatus | None:
    if step.completed or step.due_at is None:
        return None
    now = _aware(now or utcnow())
    remaining = _aware(step.due_at) - now
    if remaining < timedelta(0):
        return DueStatus.OVERDUE
    if remaining <= DUE_SOON_WINDOW:
        return DueStatus.DUE_SOON
    return DueStatus.OK


def summarize(steps: list[Step], now: datetime | None = None) -> dict[str, int]:
    """Counts by due status plus completed, for dashboards and the CLI."""
    now = now or utcnow()
    counts = {"completed": 0, **{s.value: 0 for s in DueStatus}}
    for step in steps:
        status = get_due_status(step, now)
        if status is None:
            if step.completed:
                counts["completed"] += 1
            continue
        counts[status.value] += 1
    return counts
