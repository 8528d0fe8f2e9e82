"""
Payment reconciler.

RECONCILIATION STRATEGY: pure summary + compare-and-swap write
==============================================================

Derived financial state is a pure function of the ledger:

  booking.advance_amount  = sum(successful inbound amounts)
  po.paid_amount          = sum(successful outbound amounts for the PO)
  po.balance_amount       = po.total_amount - po.paid_amount

The summarize_* functions compute that without touching the store. The
reconcile_* coroutines load the aggregate and its transactions, summarize,
and write the result with

  UPDATE ... SET ..., version = version + 1 WHERE id = :id AND version = :read

If rows_affected == 0 a concurrent reconciliation (or status change) won the
race: roll back, back off, re-read and recompute. Because the summary is
recomputed from scratch on every attempt, reconciling twice without new
transactions gives the same result, and a crash between recording a
transaction and reconciling its owner is repaired by simply reconciling again
(see sweep_pending_reconciliations).

Callers must commit their own work before calling a reconcile_* coroutine:
a lost race rolls the session back.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from venue_ledger.core.config import get_settings
from venue_ledger.core.exceptions import BookingEngineError, ConcurrencyError
from venue_ledger.core.logging import get_logger
from venue_ledger.core.metrics import (
    reconciliation_latency,
    record_reconciliation,
    record_retry,
)
from venue_ledger.core.retry import backoff
from venue_ledger.db.base import utcnow
from venue_ledger.models.booking import Booking
from venue_ledger.models.enums import (
    PaymentStatus,
    POStatus,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
)
from venue_ledger.models.purchase_order import PurchaseOrder
from venue_ledger.models.transaction import Transaction
from venue_ledger.services.po_lifecycle import status_after_reconcile
from venue_ledger.services.queries import get_booking, get_purchase_order

logger = get_logger(__name__)

ZERO = Decimal("0")


# ---------------------------------------------------------------------------
# Pure functions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BookingPaymentSummary:
    paid_total: Decimal
    payment_status: str


@dataclass(frozen=True)
class PurchaseOrderPaymentSummary:
    paid_amount: Decimal
    balance_amount: Decimal
    status: str
    completed_at: Optional[datetime]


def successful_total(transactions: Iterable[Transaction], direction: TransactionDirection) -> Decimal:
    return sum(
        (
            Decimal(txn.amount)
            for txn in transactions
            if txn.counts_as_paid and txn.direction == direction.value
        ),
        ZERO,
    )


def payment_status_for(paid: Decimal, total: Decimal) -> str:
    if paid <= 0:
        return PaymentStatus.UNPAID.value
    if paid < total:
        return PaymentStatus.PARTIALLY_PAID.value
    return PaymentStatus.PAID.value


def summarize_booking_payments(
    total_amount: Decimal,
    transactions: Iterable[Transaction],
) -> BookingPaymentSummary:
    paid = successful_total(transactions, TransactionDirection.INBOUND)
    return BookingPaymentSummary(paid_total=paid, payment_status=payment_status_for(paid, total_amount))


def classify_inbound_payment(prior_paid: Decimal, amount: Decimal, total_amount: Decimal) -> str:
    """
    advance: first money in, short of the total
    partial: money already in, still short of the total
    full:    this payment reaches or passes the total
    """
    if prior_paid + amount >= total_amount:
        return TransactionType.FULL.value
    if prior_paid <= 0:
        return TransactionType.ADVANCE.value
    return TransactionType.PARTIAL.value


def summarize_purchase_order_payments(
    po: PurchaseOrder,
    transactions: Iterable[Transaction],
    now: Optional[datetime] = None,
) -> PurchaseOrderPaymentSummary:
    paid = successful_total(
        (t for t in transactions if t.purchase_order_id == po.id),
        TransactionDirection.OUTBOUND,
    )
    total = Decimal(po.total_amount)
    status = status_after_reconcile(po.status, paid, total, was_approved=po.approved_at is not None)

    completed_at = po.completed_at
    if status == POStatus.PAID.value and completed_at is None:
        completed_at = now or utcnow()

    return PurchaseOrderPaymentSummary(
        paid_amount=paid,
        balance_amount=total - paid,
        status=status,
        completed_at=completed_at,
    )


# ---------------------------------------------------------------------------
# Store operations
# ---------------------------------------------------------------------------


def _observed_pending(ledger: list[Transaction]) -> dict[str, list[int]]:
    observed: dict[str, list[int]] = {}
    for txn in ledger:
        if txn.reconciliation_pending:
            observed.setdefault(txn.status, []).append(txn.id)
    return observed


async def _clear_pending(db: AsyncSession, observed: dict[str, list[int]]) -> int:
    """
    Clear the flag only on rows whose status is still the one that was summed.
    A status change committed after the ledger read keeps its flag for the sweep.
    """
    cleared = 0
    for status, transaction_ids in observed.items():
        result = await db.execute(
            update(Transaction)
            .where(Transaction.id.in_(transaction_ids), Transaction.status == status)
            .values(reconciliation_pending=False)
            .execution_options(synchronize_session=False)
        )
        cleared += result.rowcount
    return cleared


async def reconcile_booking(db: AsyncSession, booking_id: int) -> Booking:
    """Recompute advance_amount and payment_status from inbound transactions."""
    settings = get_settings()
    started = time.perf_counter()

    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        booking = await get_booking(db, booking_id, include_deleted=True)
        expected_version = booking.version

        result = await db.execute(
            select(Transaction).where(
                Transaction.booking_id == booking_id,
                Transaction.direction == TransactionDirection.INBOUND.value,
            )
        )
        ledger = list(result.scalars().all())
        summary = summarize_booking_payments(Decimal(booking.total_amount), ledger)
        pending = _observed_pending(ledger)

        unchanged = (
            Decimal(booking.advance_amount) == summary.paid_total
            and booking.payment_status == summary.payment_status
        )
        if unchanged and not pending:
            record_reconciliation("booking", ok=True)
            return booking

        update_result = await db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.version == expected_version)
            .values(
                advance_amount=summary.paid_total,
                payment_status=summary.payment_status,
                version=Booking.version + 1,
            )
            .execution_options(synchronize_session=False)
        )

        if update_result.rowcount == 0:
            logger.info(
                "reconcile_retry",
                aggregate="booking",
                booking_id=booking_id,
                attempt=attempt,
                reason="version_conflict",
            )
            record_retry("reconcile_booking")
            await db.rollback()
            await backoff(attempt)
            continue

        cleared = await _clear_pending(db, pending)
        await db.commit()
        await db.refresh(booking)

        reconciliation_latency.labels(aggregate="booking").observe(time.perf_counter() - started)
        record_reconciliation("booking", ok=True)
        logger.info(
            "booking_reconciled",
            booking_id=booking_id,
            paid_total=str(summary.paid_total),
            payment_status=summary.payment_status,
            transactions_cleared=cleared,
            attempt=attempt,
        )
        return booking

    record_reconciliation("booking", ok=False)
    raise ConcurrencyError(
        "Booking reconciliation lost to concurrent writes",
        booking_id=booking_id,
        attempts=settings.MAX_RETRY_ATTEMPTS,
    )


async def reconcile_purchase_order(db: AsyncSession, po_id: int) -> PurchaseOrder:
    """Recompute paid/balance amounts and the payment-driven status of a PO."""
    settings = get_settings()
    started = time.perf_counter()

    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        po = await get_purchase_order(db, po_id)
        expected_version = po.version

        result = await db.execute(
            select(Transaction).where(
                Transaction.purchase_order_id == po_id,
                Transaction.direction == TransactionDirection.OUTBOUND.value,
            )
        )
        ledger = list(result.scalars().all())
        summary = summarize_purchase_order_payments(po, ledger)
        pending = _observed_pending(ledger)

        unchanged = (
            Decimal(po.paid_amount) == summary.paid_amount
            and Decimal(po.balance_amount) == summary.balance_amount
            and po.status == summary.status
        )
        if unchanged and not pending:
            record_reconciliation("purchase_order", ok=True)
            return po

        if po.status == POStatus.PAID.value and summary.balance_amount > 0:
            # Refund after full payment; paid stays terminal
            logger.warning(
                "paid_po_underfunded",
                purchase_order_id=po_id,
                po_number=po.po_number,
                balance_amount=str(summary.balance_amount),
            )

        update_result = await db.execute(
            update(PurchaseOrder)
            .where(PurchaseOrder.id == po_id, PurchaseOrder.version == expected_version)
            .values(
                paid_amount=summary.paid_amount,
                balance_amount=summary.balance_amount,
                status=summary.status,
                completed_at=summary.completed_at,
                version=PurchaseOrder.version + 1,
            )
            .execution_options(synchronize_session=False)
        )

        if update_result.rowcount == 0:
            logger.info(
                "reconcile_retry",
                aggregate="purchase_order",
                purchase_order_id=po_id,
                attempt=attempt,
                reason="version_conflict",
            )
            record_retry("reconcile_purchase_order")
            await db.rollback()
            await backoff(attempt)
            continue

        cleared = await _clear_pending(db, pending)
        await db.commit()
        await db.refresh(po)

        reconciliation_latency.labels(aggregate="purchase_order").observe(time.perf_counter() - started)
        record_reconciliation("purchase_order", ok=True)
        logger.info(
            "purchase_order_reconciled",
            purchase_order_id=po_id,
            po_number=po.po_number,
            paid_amount=str(summary.paid_amount),
            balance_amount=str(summary.balance_amount),
            status=summary.status,
            attempt=attempt,
        )
        return po

    record_reconciliation("purchase_order", ok=False)
    raise ConcurrencyError(
        "Purchase order reconciliation lost to concurrent writes",
        purchase_order_id=po_id,
        attempts=settings.MAX_RETRY_ATTEMPTS,
    )


async def reconcile_owner(db: AsyncSession, txn: Transaction) -> None:
    """Reconcile whichever aggregate the transaction's money belongs to."""
    if txn.direction == TransactionDirection.INBOUND.value:
        await reconcile_booking(db, txn.booking_id)
    elif txn.purchase_order_id is not None:
        await reconcile_purchase_order(db, txn.purchase_order_id)


async def sweep_pending_reconciliations(db: AsyncSession, limit: int = 100) -> dict:
    """
    Reconcile every owner that still has flagged transactions.
    One failing owner does not stop the sweep; it stays flagged for the next run.
    """
    booking_rows = await db.execute(
        select(Transaction.booking_id)
        .where(
            Transaction.reconciliation_pending.is_(True),
            Transaction.direction == TransactionDirection.INBOUND.value,
        )
        .distinct()
        .limit(limit)
    )
    booking_ids = list(booking_rows.scalars().all())

    po_rows = await db.execute(
        select(Transaction.purchase_order_id)
        .where(
            Transaction.reconciliation_pending.is_(True),
            Transaction.direction == TransactionDirection.OUTBOUND.value,
            Transaction.purchase_order_id.is_not(None),
        )
        .distinct()
        .limit(limit)
    )
    po_ids = list(po_rows.scalars().all())

    reconciled = {"bookings": 0, "purchase_orders": 0, "failed": 0}

    for booking_id in booking_ids:
        try:
            await reconcile_booking(db, booking_id)
            reconciled["bookings"] += 1
        except (BookingEngineError, SQLAlchemyError) as e:
            await db.rollback()
            reconciled["failed"] += 1
            logger.error("sweep_reconcile_failed", booking_id=booking_id, error=str(e))

    for po_id in po_ids:
        try:
            await reconcile_purchase_order(db, po_id)
            reconciled["purchase_orders"] += 1
        except (BookingEngineError, SQLAlchemyError) as e:
            await db.rollback()
            reconciled["failed"] += 1
            logger.error("sweep_reconcile_failed", purchase_order_id=po_id, error=str(e))

    logger.info("reconciliation_sweep_completed", **reconciled)
    return reconciled
