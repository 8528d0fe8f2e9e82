"""
Transaction ledger: append-only money movements.

Recording is two commits:

  1. INSERT the transaction with reconciliation_pending = true (if it counts)
  2. reconcile the owning booking (inbound) or purchase order (outbound)

If step 2 fails the transaction is still recorded, stays flagged, and the
caller gets ReconciliationPendingError carrying the transaction id. Since
reconciliation recomputes from the full ledger, running it again later (the
sweep, or the next payment on the same owner) repairs the derived totals.

`type` is always assigned here. Inbound money is classified against the
successful inbound total recorded before it; outbound money is always a
vendor payment.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from venue_ledger.core import metrics
from venue_ledger.core.config import get_settings
from venue_ledger.core.exceptions import (
    BookingEngineError,
    ConcurrencyError,
    InvalidStateTransitionError,
    ReconciliationPendingError,
    ValidationError,
)
from venue_ledger.core.logging import get_logger
from venue_ledger.core.retry import backoff
from venue_ledger.db.base import utcnow
from venue_ledger.models.enums import TransactionDirection, TransactionStatus, TransactionType
from venue_ledger.models.transaction import Transaction
from venue_ledger.schemas.transaction import TransactionCreate
from venue_ledger.services.queries import get_booking, get_purchase_order, get_transaction
from venue_ledger.services.reconciliation import classify_inbound_payment, reconcile_owner

logger = get_logger(__name__)

_SUCCESS = TransactionStatus.SUCCESS.value

STATUS_TRANSITIONS = {
    TransactionStatus.INITIATED.value: (TransactionStatus.SUCCESS.value, TransactionStatus.FAILED.value),
    TransactionStatus.SUCCESS.value: (TransactionStatus.REFUNDED.value,),
}


async def successful_inbound_total(db: AsyncSession, booking_id: int) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.booking_id == booking_id,
            Transaction.direction == TransactionDirection.INBOUND.value,
            Transaction.status == _SUCCESS,
        )
    )
    return Decimal(str(result.scalar_one()))


def _has_reconciled_owner(txn: Transaction) -> bool:
    return txn.direction == TransactionDirection.INBOUND.value or txn.purchase_order_id is not None


async def _reconcile_or_flag(db: AsyncSession, txn: Transaction) -> Transaction:
    txn_id = txn.id
    try:
        await reconcile_owner(db, txn)
    except (BookingEngineError, SQLAlchemyError) as e:
        await db.rollback()
        logger.error(
            "reconciliation_deferred",
            transaction_id=txn_id,
            error=str(e),
        )
        raise ReconciliationPendingError(txn_id, str(e)) from e

    # The reconciler cleared the flag with a bulk update
    await db.refresh(txn)
    return txn


async def record_transaction(db: AsyncSession, data: TransactionCreate) -> Transaction:
    if data.amount <= 0:
        raise ValidationError("Transaction amount must be positive", amount=str(data.amount))
    if data.status == TransactionStatus.REFUNDED:
        # Only a successful transaction can become refunded
        raise ValidationError("A transaction cannot be recorded as refunded", status=data.status.value)

    booking = await get_booking(db, data.booking_id)
    direction = data.direction.value

    if data.direction == TransactionDirection.OUTBOUND:
        if data.vendor_type is None:
            raise ValidationError("vendor_type is required for outbound transactions")
        if data.purchase_order_id is not None:
            po = await get_purchase_order(db, data.purchase_order_id)
            if po.booking_id != booking.id:
                raise ValidationError(
                    "Purchase order belongs to a different booking",
                    purchase_order_id=po.id,
                    booking_id=booking.id,
                )
        txn_type = TransactionType.VENDOR_PAYMENT.value
    else:
        if data.purchase_order_id is not None:
            raise ValidationError("Inbound transactions cannot reference a purchase order")
        prior = await successful_inbound_total(db, booking.id)
        txn_type = classify_inbound_payment(prior, data.amount, Decimal(booking.total_amount))

    txn = Transaction(
        booking_id=booking.id,
        purchase_order_id=data.purchase_order_id,
        amount=data.amount,
        mode=data.mode.value,
        status=data.status.value,
        type=txn_type,
        direction=direction,
        vendor_type=data.vendor_type.value if data.vendor_type else None,
        vendor_id=data.vendor_id,
        reference_id=data.reference_id,
        notes=data.notes,
        paid_at=data.paid_at or utcnow(),
        created_by=data.created_by,
        updated_by=data.created_by,
    )
    txn.reconciliation_pending = data.status.value == _SUCCESS and _has_reconciled_owner(txn)

    db.add(txn)
    await db.commit()
    await db.refresh(txn)

    metrics.record_transaction(direction, txn.status)
    logger.info(
        "transaction_recorded",
        transaction_id=txn.id,
        booking_id=txn.booking_id,
        purchase_order_id=txn.purchase_order_id,
        direction=direction,
        type=txn_type,
        amount=str(txn.amount),
        status=txn.status,
    )

    if txn.reconciliation_pending:
        txn = await _reconcile_or_flag(db, txn)
    return txn


async def update_transaction_status(
    db: AsyncSession,
    transaction_id: int,
    new_status: TransactionStatus,
    updated_by: Optional[str] = None,
) -> Transaction:
    """
    Move a transaction along initiated -> success|failed, success -> refunded.
    The write is guarded by the status that was read, so two concurrent
    updates cannot both apply; the loser re-reads and fails validation.
    """
    settings = get_settings()
    target = new_status.value

    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        txn = await get_transaction(db, transaction_id)
        current = txn.status
        if target not in STATUS_TRANSITIONS.get(current, ()):
            raise InvalidStateTransitionError("transaction", current, target, transaction_id=transaction_id)

        money_moved = (current == _SUCCESS) != (target == _SUCCESS)
        reconcile_after = money_moved and _has_reconciled_owner(txn)

        values = {"status": target, "updated_by": updated_by}
        if reconcile_after:
            values["reconciliation_pending"] = True

        result = await db.execute(
            update(Transaction)
            .where(Transaction.id == transaction_id, Transaction.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            logger.info(
                "transaction_status_retry",
                transaction_id=transaction_id,
                attempt=attempt,
                reason="status_conflict",
            )
            metrics.record_retry("update_transaction_status")
            await db.rollback()
            await backoff(attempt)
            continue

        await db.commit()
        await db.refresh(txn)

        metrics.record_transaction(txn.direction, target)
        logger.info(
            "transaction_status_updated",
            transaction_id=transaction_id,
            from_status=current,
            to_status=target,
        )

        if reconcile_after:
            txn = await _reconcile_or_flag(db, txn)
        return txn

    raise ConcurrencyError(
        "Transaction status was modified concurrently",
        transaction_id=transaction_id,
        attempts=settings.MAX_RETRY_ATTEMPTS,
    )


async def list_booking_transactions(
    db: AsyncSession,
    booking_id: int,
    direction: Optional[TransactionDirection] = None,
) -> list[Transaction]:
    await get_booking(db, booking_id, include_deleted=True)
    query = select(Transaction).where(Transaction.booking_id == booking_id)
    if direction is not None:
        query = query.where(Transaction.direction == direction.value)
    result = await db.execute(query.order_by(Transaction.paid_at.asc(), Transaction.id.asc()))
    return list(result.scalars().all())


async def list_purchase_order_transactions(db: AsyncSession, po_id: int) -> list[Transaction]:
    await get_purchase_order(db, po_id)
    result = await db.execute(
        select(Transaction)
        .where(Transaction.purchase_order_id == po_id)
        .order_by(Transaction.paid_at.asc(), Transaction.id.asc())
    )
    return list(result.scalars().all())
