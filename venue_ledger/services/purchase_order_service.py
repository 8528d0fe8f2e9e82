"""
Purchase order service: manual creation, edits and explicit lifecycle events.

Every status write is a compare-and-swap on the PO's `version`, the same
pattern the reconciler uses, so an approval racing a payment reconciliation
cannot overwrite a partially_paid/paid status with a stale one.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from venue_ledger.core.config import get_settings
from venue_ledger.core.exceptions import (
    ConcurrencyError,
    ConflictError,
    InvalidStateTransitionError,
    ValidationError,
)
from venue_ledger.core.logging import get_logger
from venue_ledger.core.metrics import purchase_orders_created, record_retry
from venue_ledger.core.retry import backoff
from venue_ledger.db.base import utcnow
from venue_ledger.db.errors import violated_constraint
from venue_ledger.models.enums import POStatus
from venue_ledger.models.purchase_order import PurchaseOrder
from venue_ledger.schemas.purchase_order import PurchaseOrderCreate, PurchaseOrderUpdate
from venue_ledger.services.po_lifecycle import EDITABLE_STATUSES, POEvent, apply_event
from venue_ledger.services.po_number_service import next_po_number
from venue_ledger.services.queries import get_booking, get_purchase_order
from venue_ledger.services.reconciliation import reconcile_purchase_order

logger = get_logger(__name__)

VENDOR_REFERENCE_CONSTRAINT = ("uq_purchase_orders_booking_vendor", "purchase_orders.vendor_reference")
PO_NUMBER_CONSTRAINT = ("uq_purchase_orders_po_number", "purchase_orders.po_number")


def line_items_total(line_items) -> Decimal:
    return sum((Decimal(line.total_price) for line in line_items), Decimal("0"))


async def create_purchase_order(
    db: AsyncSession,
    data: PurchaseOrderCreate,
    source: str = "manual",
) -> PurchaseOrder:
    """
    Create a draft PO with a freshly allocated number.
    The number and the PO row commit together; a duplicate vendor_reference
    for the booking is a ConflictError.
    """
    settings = get_settings()
    booking = await get_booking(db, data.booking_id)
    # A rollback expires ORM state; keep plain values for the retry loop
    booking_id, venue_id, event_start = booking.id, booking.venue_id, booking.event_start

    total = data.total_amount if data.total_amount is not None else line_items_total(data.line_items)
    if total < 0:
        raise ValidationError("Purchase order total cannot be negative", total_amount=str(total))

    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        try:
            po_number = await next_po_number(db)
        except ConcurrencyError:
            record_retry("po_number")
            await backoff(attempt)
            continue

        po = PurchaseOrder(
            po_number=po_number,
            booking_id=booking_id,
            venue_id=venue_id,
            vendor_type=data.vendor_type.value,
            vendor_details=data.vendor_details.model_dump(mode="json"),
            vendor_reference=data.vendor_reference,
            line_items=[line.model_dump(mode="json") for line in data.line_items],
            total_amount=total,
            paid_amount=Decimal("0"),
            balance_amount=total,
            status=POStatus.DRAFT.value,
            issue_date=data.issue_date or utcnow(),
            due_date=data.due_date or event_start,
            terms_and_conditions=data.terms_and_conditions,
            notes=data.notes,
            internal_notes=data.internal_notes,
            created_by=data.created_by,
            updated_by=data.created_by,
        )
        db.add(po)

        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            if violated_constraint(e, *VENDOR_REFERENCE_CONSTRAINT):
                raise ConflictError(
                    "A purchase order already exists for this vendor on the booking",
                    booking_id=booking_id,
                    vendor_reference=data.vendor_reference,
                ) from e
            if violated_constraint(e, *PO_NUMBER_CONSTRAINT):
                logger.info("po_number_collision", po_number=po_number, attempt=attempt)
                record_retry("po_number")
                await backoff(attempt)
                continue
            raise

        await db.refresh(po)
        purchase_orders_created.labels(source=source).inc()
        logger.info(
            "purchase_order_created",
            purchase_order_id=po.id,
            po_number=po.po_number,
            booking_id=booking_id,
            vendor_type=po.vendor_type,
            total_amount=str(po.total_amount),
            source=source,
        )
        return po

    raise ConcurrencyError(
        "Could not allocate a purchase order number",
        booking_id=booking_id,
        attempts=settings.MAX_RETRY_ATTEMPTS,
    )


async def list_booking_purchase_orders(db: AsyncSession, booking_id: int) -> list[PurchaseOrder]:
    result = await db.execute(
        select(PurchaseOrder)
        .where(PurchaseOrder.booking_id == booking_id)
        .order_by(PurchaseOrder.created_at.asc(), PurchaseOrder.id.asc())
    )
    return list(result.scalars().all())


async def check_existing_pos(db: AsyncSession, booking_id: int) -> list[PurchaseOrder]:
    """All POs already issued for the booking; empty means generation may run."""
    await get_booking(db, booking_id)
    return await list_booking_purchase_orders(db, booking_id)


async def _compare_and_swap(
    db: AsyncSession,
    po_id: int,
    operation: str,
    build_changes,
) -> PurchaseOrder:
    """
    Read the PO, let `build_changes(po)` compute the new column values (and
    raise if the change is not allowed), then write them guarded by version.
    """
    settings = get_settings()

    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        po = await get_purchase_order(db, po_id)
        expected_version = po.version
        changes = build_changes(po)

        result = await db.execute(
            update(PurchaseOrder)
            .where(PurchaseOrder.id == po_id, PurchaseOrder.version == expected_version)
            .values(version=PurchaseOrder.version + 1, **changes)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            logger.info(
                "purchase_order_retry",
                purchase_order_id=po_id,
                operation=operation,
                attempt=attempt,
                reason="version_conflict",
            )
            record_retry(operation)
            await db.rollback()
            await backoff(attempt)
            continue

        await db.commit()
        await db.refresh(po)
        return po

    raise ConcurrencyError(
        "Purchase order was modified concurrently",
        purchase_order_id=po_id,
        operation=operation,
        attempts=settings.MAX_RETRY_ATTEMPTS,
    )


async def update_purchase_order(
    db: AsyncSession,
    po_id: int,
    data: PurchaseOrderUpdate,
) -> PurchaseOrder:
    """
    Edit vendor details, line items, totals or dates while the PO is still
    draft/pending/approved. A changed total is folded into paid/balance
    by reconciling right after the write.
    """
    fields = data.model_dump(exclude_unset=True)

    def build_changes(po: PurchaseOrder) -> dict:
        if po.status not in EDITABLE_STATUSES:
            raise InvalidStateTransitionError("purchase order", po.status, "update", purchase_order_id=po.id)

        changes: dict = {"updated_by": data.updated_by}
        if data.vendor_details is not None:
            changes["vendor_details"] = data.vendor_details.model_dump(mode="json")
        if data.line_items is not None:
            changes["line_items"] = [line.model_dump(mode="json") for line in data.line_items]
            if data.total_amount is None:
                changes["total_amount"] = line_items_total(data.line_items)
        if data.total_amount is not None:
            changes["total_amount"] = data.total_amount
        if "total_amount" in changes:
            if changes["total_amount"] < 0:
                raise ValidationError("Purchase order total cannot be negative")
            changes["balance_amount"] = changes["total_amount"] - Decimal(po.paid_amount)
        for name in ("due_date", "terms_and_conditions", "notes", "internal_notes"):
            if name in fields:
                changes[name] = fields[name]
        return changes

    po = await _compare_and_swap(db, po_id, "update_purchase_order", build_changes)
    logger.info("purchase_order_updated", purchase_order_id=po.id, fields=sorted(fields))

    if data.total_amount is not None or data.line_items is not None:
        po = await reconcile_purchase_order(db, po.id)
    return po


async def submit_purchase_order(
    db: AsyncSession,
    po_id: int,
    submitted_by: Optional[str] = None,
) -> PurchaseOrder:
    def build_changes(po: PurchaseOrder) -> dict:
        return {
            "status": apply_event(po.status, POEvent.SUBMIT),
            "updated_by": submitted_by,
        }

    po = await _compare_and_swap(db, po_id, "submit_purchase_order", build_changes)
    logger.info("purchase_order_submitted", purchase_order_id=po.id, po_number=po.po_number)
    return po


async def approve_purchase_order(db: AsyncSession, po_id: int, approved_by: str) -> PurchaseOrder:
    if not approved_by or not approved_by.strip():
        raise ValidationError("approved_by is required")

    def build_changes(po: PurchaseOrder) -> dict:
        return {
            "status": apply_event(po.status, POEvent.APPROVE),
            "approved_at": utcnow(),
            "approved_by": approved_by,
            "updated_by": approved_by,
        }

    po = await _compare_and_swap(db, po_id, "approve_purchase_order", build_changes)
    logger.info(
        "purchase_order_approved",
        purchase_order_id=po.id,
        po_number=po.po_number,
        approved_by=approved_by,
    )
    return po


async def cancel_purchase_order(
    db: AsyncSession,
    po_id: int,
    reason: str,
    cancelled_by: Optional[str] = None,
) -> PurchaseOrder:
    if not reason or not reason.strip():
        raise ValidationError("Cancellation reason is required", purchase_order_id=po_id)

    def build_changes(po: PurchaseOrder) -> dict:
        return {
            "status": apply_event(po.status, POEvent.CANCEL),
            "cancelled_at": utcnow(),
            "cancellation_reason": reason.strip(),
            "updated_by": cancelled_by,
        }

    po = await _compare_and_swap(db, po_id, "cancel_purchase_order", build_changes)
    logger.info(
        "purchase_order_cancelled",
        purchase_order_id=po.id,
        po_number=po.po_number,
        reason=po.cancellation_reason,
    )
    return po
