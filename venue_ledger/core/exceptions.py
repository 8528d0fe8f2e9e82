"""
Error taxonomy for the booking consistency engine.

Every engine error carries the HTTP status the API layer should answer with
and a dict of structured context that is logged and returned to the caller.
Only ConcurrencyError is expected to succeed on a bare retry.
"""

from typing import Any


class BookingEngineError(Exception):
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        body = {"detail": self.message, "error": type(self).__name__}
        if self.context:
            body["context"] = self.context
        return body


class ValidationError(BookingEngineError):
    """Malformed input: non-positive amount, missing field, inverted interval."""

    status_code = 400


class NotFoundError(BookingEngineError):
    status_code = 404


class ConflictError(BookingEngineError):
    """Slot unavailable, POs already generated, duplicate vendor PO."""

    status_code = 409


class InvalidStateTransitionError(BookingEngineError):
    status_code = 400

    def __init__(self, entity: str, current: str, target: str, **context: Any):
        super().__init__(
            f"Invalid {entity} transition: {current} -> {target}",
            current=current,
            target=target,
            **context,
        )


class ConcurrencyError(BookingEngineError):
    """An optimistic write lost to a concurrent writer on every attempt."""

    status_code = 409
    retryable = True


class ReconciliationPendingError(BookingEngineError):
    """
    The transaction was recorded but its owner could not be reconciled.
    The transaction stays flagged and is picked up by the reconciliation sweep.
    """

    status_code = 503
    retryable = True

    def __init__(self, transaction_id: int, reason: str):
        super().__init__(
            "Transaction recorded; reconciliation is pending",
            transaction_id=transaction_id,
            reason=reason,
        )
        self.transaction_id = transaction_id
