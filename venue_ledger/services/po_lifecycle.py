"""
Purchase order lifecycle state machine.

Explicit events (submit, approve, cancel) go through `apply_event`.
Payment-driven moves (partially_paid, paid) only ever come out of
`status_after_reconcile`, which is a function of the current status and the
amounts. Both are pure so they can be tested without a store.

    draft ──submit──> pending
    draft/pending ──approve──> approved
    draft/pending/approved ──reconcile 0<paid<total──> partially_paid
    any but cancelled ──reconcile paid>=total──> paid   (terminal)
    draft/pending/approved/partially_paid ──cancel──> cancelled   (terminal)
"""

from decimal import Decimal
from enum import Enum

from venue_ledger.core.exceptions import InvalidStateTransitionError
from venue_ledger.models.enums import POStatus


class POEvent(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    CANCEL = "cancel"


_DRAFT = POStatus.DRAFT.value
_PENDING = POStatus.PENDING.value
_APPROVED = POStatus.APPROVED.value
_PARTIALLY_PAID = POStatus.PARTIALLY_PAID.value
_PAID = POStatus.PAID.value
_CANCELLED = POStatus.CANCELLED.value

PO_TRANSITIONS = {
    (_DRAFT, POEvent.SUBMIT.value): _PENDING,
    (_DRAFT, POEvent.APPROVE.value): _APPROVED,
    (_PENDING, POEvent.APPROVE.value): _APPROVED,
    (_DRAFT, POEvent.CANCEL.value): _CANCELLED,
    (_PENDING, POEvent.CANCEL.value): _CANCELLED,
    (_APPROVED, POEvent.CANCEL.value): _CANCELLED,
    (_PARTIALLY_PAID, POEvent.CANCEL.value): _CANCELLED,
}

TERMINAL_STATUSES = (_PAID, _CANCELLED)

# Statuses in which line items and totals may still be edited
EDITABLE_STATUSES = (_DRAFT, _PENDING, _APPROVED)


def apply_event(current: str, event: POEvent) -> str:
    target = PO_TRANSITIONS.get((current, event.value))
    if target is None:
        raise InvalidStateTransitionError("purchase order", current, event.value)
    return target


def status_after_reconcile(
    current: str,
    paid: Decimal,
    total: Decimal,
    was_approved: bool,
) -> str:
    if current in TERMINAL_STATUSES:
        return current
    if paid >= total:
        return _PAID
    if paid > 0:
        return _PARTIALLY_PAID
    if current == _PARTIALLY_PAID:
        # Every payment was refunded; fall back to the last explicit state
        return _APPROVED if was_approved else _DRAFT
    return current
