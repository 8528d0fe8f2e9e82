"""
Booking service with conflict-free slot reservation.

CONCURRENCY STRATEGY: per-venue calendar version + per-booking version
======================================================================

Problem:
  Two requests check the same slot at the same time. Both see it free,
  both insert. Result: double booking.

Solution:
  Every write that occupies (or moves into) a slot runs, in one transaction:

  1. Read the venue's calendar_version
  2. Overlap query: no ACTIVE booking with start < :end AND end > :start
  3. UPDATE venues SET calendar_version = calendar_version + 1
     WHERE id = :venue_id AND calendar_version = :read_version
  4. INSERT/UPDATE the booking, COMMIT

  If step 3 affects no row another booking write on the same venue got there
  first: roll back and start over from step 1, where the overlap query now
  sees the other booking. Writes on different venues never contend.

  Edits and status changes on an existing booking are additionally guarded by
  the booking's own `version` column (same pattern the reconciler uses), so a
  cancellation racing a payment reconciliation cannot lose either write.

  On PostgreSQL the migration adds an exclusion constraint on
  (venue_id, tstzrange(event_start, event_end, '[)')) for active bookings as
  the final safety net; its IntegrityError is reported as a ConflictError.
"""

from datetime import datetime
from typing import Awaitable, Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from venue_ledger.core.config import get_settings
from venue_ledger.core.exceptions import (
    BookingEngineError,
    ConcurrencyError,
    ConflictError,
    InvalidStateTransitionError,
    ValidationError,
)
from venue_ledger.core.logging import get_logger
from venue_ledger.core.metrics import record_booking_write, record_retry
from venue_ledger.core.retry import backoff
from venue_ledger.db.base import utcnow
from venue_ledger.db.errors import violated_constraint
from venue_ledger.models.booking import Booking
from venue_ledger.models.enums import BookingStatus
from venue_ledger.schemas.booking import BookingCreate, BookingUpdate
from venue_ledger.services.availability_service import assert_slot_free, validate_interval
from venue_ledger.services.po_generator import (
    catering_total,
    generate_pos_for_booking,
    refresh_catering_po,
    services_total,
)
from venue_ledger.services.queries import get_booking
from venue_ledger.services.reconciliation import payment_status_for, reconcile_booking
from venue_ledger.services.venue_service import claim_calendar, get_venue

logger = get_logger(__name__)

OVERLAP_CONSTRAINT = "ex_bookings_no_overlap"

BOOKING_TRANSITIONS = {
    BookingStatus.PENDING.value: (
        BookingStatus.CONFIRMED.value,
        BookingStatus.CANCELLED.value,
        BookingStatus.COMPLETED.value,
    ),
    BookingStatus.CONFIRMED.value: (
        BookingStatus.CANCELLED.value,
        BookingStatus.COMPLETED.value,
    ),
}

# Fields whose change makes the catering PO's lines stale
CATERING_INPUTS = {"number_of_guests", "food_package", "catering_vendor"}

_SCALAR_FIELDS = (
    "client_name",
    "contact_no",
    "email",
    "occasion_type",
    "number_of_guests",
    "total_amount",
    "notes",
    "internal_notes",
)

ChangeBuilder = Callable[[Booking], Awaitable[Optional[dict]]]


def _overlap_conflict(venue_id: int) -> ConflictError:
    record_booking_write("conflict")
    return ConflictError("Venue is already booked for this time range", venue_id=venue_id)


async def _claim_slot(
    db: AsyncSession,
    venue_id: int,
    start: datetime,
    end: datetime,
    exclude_booking_id: Optional[int] = None,
) -> bool:
    """
    Steps 1-3 above. Raises ConflictError if the slot is taken, returns False
    if the calendar moved underneath us and the caller must retry.
    """
    venue = await get_venue(db, venue_id)
    calendar_version = venue.calendar_version
    try:
        await assert_slot_free(db, venue_id, start, end, exclude_booking_id)
    except ConflictError:
        record_booking_write("conflict")
        raise
    return await claim_calendar(db, venue_id, calendar_version)


async def create_booking(
    db: AsyncSession,
    data: BookingCreate,
    generate_pos: bool = False,
) -> Booking:
    """
    Reserve the slot and persist the booking.

    With generate_pos, draft POs for the booking's vendors are created after
    the booking commits; a PO failure is logged and the booking is kept.
    """
    settings = get_settings()
    validate_interval(data.event_start, data.event_end)
    if data.advance_amount < 0:
        raise ValidationError("Advance amount cannot be negative")

    food_package = data.food_package.model_dump(mode="json") if data.food_package else None
    catering_vendor = data.catering_vendor.model_dump(mode="json") if data.catering_vendor else None
    services = [s.model_dump(mode="json") for s in data.services]

    total = data.total_amount
    if total is None:
        total = catering_total(food_package, data.number_of_guests) + services_total(services)
    if total < 0:
        raise ValidationError("Total amount cannot be negative", total_amount=str(total))

    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        if not await _claim_slot(db, data.venue_id, data.event_start, data.event_end):
            logger.info(
                "booking_retry",
                venue_id=data.venue_id,
                attempt=attempt,
                reason="calendar_version_conflict",
            )
            record_retry("create_booking")
            await db.rollback()
            await backoff(attempt)
            continue

        booking = Booking(
            venue_id=data.venue_id,
            client_name=data.client_name,
            contact_no=data.contact_no,
            email=str(data.email),
            occasion_type=data.occasion_type,
            number_of_guests=data.number_of_guests,
            event_start=data.event_start,
            event_end=data.event_end,
            booking_status=BookingStatus.PENDING.value,
            food_package=food_package,
            catering_vendor=catering_vendor,
            services=services,
            total_amount=total,
            advance_amount=data.advance_amount,
            payment_status=payment_status_for(data.advance_amount, total),
            payment_mode=data.payment_mode.value,
            notes=data.notes,
            internal_notes=data.internal_notes,
            created_by=data.created_by,
            updated_by=data.created_by,
        )
        db.add(booking)

        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            if violated_constraint(e, OVERLAP_CONSTRAINT):
                raise _overlap_conflict(data.venue_id) from e
            record_booking_write("error")
            raise

        await db.refresh(booking)
        record_booking_write("success")
        logger.info(
            "booking_created",
            booking_id=booking.id,
            venue_id=booking.venue_id,
            event_start=booking.event_start.isoformat(),
            event_end=booking.event_end.isoformat(),
            total_amount=str(booking.total_amount),
            attempt=attempt,
        )

        if generate_pos:
            booking_id = booking.id
            try:
                await generate_pos_for_booking(db, booking_id, data.created_by)
            except (BookingEngineError, SQLAlchemyError) as e:
                await db.rollback()
                logger.warning("booking_po_generation_failed", booking_id=booking_id, error=str(e))
            booking = await get_booking(db, booking_id)

        return booking

    record_booking_write("conflict")
    raise ConcurrencyError(
        "Booking failed due to concurrent writes on this venue. Please try again.",
        venue_id=data.venue_id,
        attempts=settings.MAX_RETRY_ATTEMPTS,
    )


async def _compare_and_swap(
    db: AsyncSession,
    booking_id: int,
    operation: str,
    build_changes: ChangeBuilder,
    include_deleted: bool = False,
) -> Booking:
    """
    Read the booking, let `build_changes` compute the new column values
    (raising if the change is not allowed, returning None if a calendar claim
    lost a race), then write them guarded by the booking's version.
    """
    settings = get_settings()

    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        booking = await get_booking(db, booking_id, include_deleted=include_deleted)
        venue_id = booking.venue_id
        expected_version = booking.version
        changes = await build_changes(booking)

        if changes is not None:
            result = await db.execute(
                update(Booking)
                .where(Booking.id == booking_id, Booking.version == expected_version)
                .values(version=Booking.version + 1, **changes)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                try:
                    await db.commit()
                except IntegrityError as e:
                    await db.rollback()
                    if violated_constraint(e, OVERLAP_CONSTRAINT):
                        raise _overlap_conflict(venue_id) from e
                    raise
                await db.refresh(booking)
                return booking

        logger.info(
            "booking_retry",
            booking_id=booking_id,
            operation=operation,
            attempt=attempt,
            reason="version_conflict",
        )
        record_retry(operation)
        await db.rollback()
        await backoff(attempt)

    raise ConcurrencyError(
        "Booking was modified concurrently",
        booking_id=booking_id,
        operation=operation,
        attempts=settings.MAX_RETRY_ATTEMPTS,
    )


def _check_transition(booking: Booking, target: str) -> None:
    if target not in BOOKING_TRANSITIONS.get(booking.booking_status, ()):
        raise InvalidStateTransitionError("booking", booking.booking_status, target, booking_id=booking.id)


async def update_booking(db: AsyncSession, booking_id: int, data: BookingUpdate) -> Booking:
    """
    Edit booking details. Moving the interval of an active booking re-checks
    the slot (excluding the booking itself) under the calendar lock.
    A changed total re-reconciles the payment status; a changed guest count
    or food package rebuilds the catering PO (best effort).
    """
    fields = data.model_fields_set - {"updated_by"}
    if data.total_amount is not None and data.total_amount < 0:
        raise ValidationError("Total amount cannot be negative", total_amount=str(data.total_amount))

    async def build_changes(booking: Booking) -> Optional[dict]:
        changes: dict = {"updated_by": data.updated_by}
        for name in _SCALAR_FIELDS:
            value = getattr(data, name)
            if name in fields and value is not None:
                changes[name] = str(value) if name == "email" else value
        if data.payment_mode is not None:
            changes["payment_mode"] = data.payment_mode.value
        if "food_package" in fields:
            changes["food_package"] = data.food_package.model_dump(mode="json") if data.food_package else None
        if "catering_vendor" in fields:
            changes["catering_vendor"] = (
                data.catering_vendor.model_dump(mode="json") if data.catering_vendor else None
            )
        if data.services is not None:
            changes["services"] = [s.model_dump(mode="json") for s in data.services]

        if data.event_start is not None or data.event_end is not None:
            start = data.event_start or booking.event_start
            end = data.event_end or booking.event_end
            validate_interval(start, end)
            changes["event_start"] = start
            changes["event_end"] = end
            if booking.occupies_slot and not await _claim_slot(
                db, booking.venue_id, start, end, exclude_booking_id=booking.id
            ):
                return None

        return changes

    booking = await _compare_and_swap(db, booking_id, "update_booking", build_changes)
    record_booking_write("success")
    logger.info("booking_updated", booking_id=booking_id, fields=sorted(fields))

    if data.total_amount is not None:
        booking = await reconcile_booking(db, booking_id)

    if CATERING_INPUTS & fields:
        try:
            await refresh_catering_po(db, booking_id, data.updated_by)
        except (BookingEngineError, SQLAlchemyError) as e:
            await db.rollback()
            logger.warning("catering_po_refresh_failed", booking_id=booking_id, error=str(e))
        booking = await get_booking(db, booking_id)

    return booking


async def confirm_booking(db: AsyncSession, booking_id: int, user_id: Optional[str] = None) -> Booking:
    async def build_changes(booking: Booking) -> dict:
        _check_transition(booking, BookingStatus.CONFIRMED.value)
        return {
            "booking_status": BookingStatus.CONFIRMED.value,
            "confirmed_at": utcnow(),
            "updated_by": user_id,
        }

    booking = await _compare_and_swap(db, booking_id, "confirm_booking", build_changes)
    logger.info("booking_confirmed", booking_id=booking_id)
    return booking


async def complete_booking(db: AsyncSession, booking_id: int, user_id: Optional[str] = None) -> Booking:
    async def build_changes(booking: Booking) -> dict:
        _check_transition(booking, BookingStatus.COMPLETED.value)
        return {
            "booking_status": BookingStatus.COMPLETED.value,
            "completed_at": utcnow(),
            "updated_by": user_id,
        }

    booking = await _compare_and_swap(db, booking_id, "complete_booking", build_changes)
    logger.info("booking_completed", booking_id=booking_id)
    return booking


async def cancel_booking(
    db: AsyncSession,
    booking_id: int,
    reason: str = "",
    cancelled_by: Optional[str] = None,
) -> Booking:
    """Cancel a booking; its slot is free again as soon as this commits."""

    async def build_changes(booking: Booking) -> dict:
        _check_transition(booking, BookingStatus.CANCELLED.value)
        return {
            "booking_status": BookingStatus.CANCELLED.value,
            "cancelled_at": utcnow(),
            "cancellation_reason": reason.strip(),
            "updated_by": cancelled_by,
        }

    booking = await _compare_and_swap(db, booking_id, "cancel_booking", build_changes)
    logger.info("booking_cancelled", booking_id=booking_id, venue_id=booking.venue_id, reason=reason)
    return booking


async def delete_booking(db: AsyncSession, booking_id: int, deleted_by: Optional[str] = None) -> Booking:
    """Soft delete. The row and its ledger stay; the slot is released."""

    async def build_changes(booking: Booking) -> dict:
        return {"is_deleted": True, "deleted_at": utcnow(), "deleted_by": deleted_by}

    booking = await _compare_and_swap(db, booking_id, "delete_booking", build_changes)
    logger.info("booking_deleted", booking_id=booking_id, deleted_by=deleted_by)
    return booking


async def restore_booking(db: AsyncSession, booking_id: int, restored_by: Optional[str] = None) -> Booking:
    """
    Undo a soft delete. A pending/confirmed booking takes its slot back, so
    the slot is re-validated: if another booking took it meanwhile this is a
    ConflictError and the booking stays deleted.
    """

    async def build_changes(booking: Booking) -> Optional[dict]:
        if not booking.is_deleted:
            raise ValidationError("Booking is not deleted", booking_id=booking.id)
        if booking.booking_status in BOOKING_TRANSITIONS and not await _claim_slot(
            db, booking.venue_id, booking.event_start, booking.event_end, exclude_booking_id=booking.id
        ):
            return None
        return {"is_deleted": False, "deleted_at": None, "deleted_by": None, "updated_by": restored_by}

    booking = await _compare_and_swap(db, booking_id, "restore_booking", build_changes, include_deleted=True)
    logger.info("booking_restored", booking_id=booking_id, restored_by=restored_by)
    return booking


async def list_venue_bookings(
    db: AsyncSession,
    venue_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    include_inactive: bool = False,
) -> list[Booking]:
    """
    Venue calendar. By default only bookings that occupy their slot; with
    include_inactive, cancelled and completed ones too (never soft-deleted).
    """
    await get_venue(db, venue_id)

    query = select(Booking).where(Booking.venue_id == venue_id, Booking.is_deleted.is_(False))
    if not include_inactive:
        query = query.where(Booking.occupies_slot)
    if start is not None:
        query = query.where(Booking.event_end > start)
    if end is not None:
        query = query.where(Booking.event_start < end)

    result = await db.execute(query.order_by(Booking.event_start.asc()))
    return list(result.scalars().all())

