"""
Availability checker.

A venue slot is the half-open interval [start, end). Two intervals overlap
iff stored_start < end AND stored_end > start, so back-to-back bookings
(A.end == B.start) never conflict.

Only bookings whose lifecycle is ACTIVE (pending/confirmed, not soft-deleted)
block a slot; that rule lives in Booking.occupies_slot and nowhere else.

This is a pure read. Callers that act on the answer must re-validate inside
the same transaction as their write (see booking_service).
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_ledger.core.exceptions import ConflictError, ValidationError
from venue_ledger.core.logging import get_logger
from venue_ledger.core.metrics import record_slot_check
from venue_ledger.models.booking import Booking
from venue_ledger.services.venue_service import get_venue

logger = get_logger(__name__)


def validate_interval(start: datetime, end: datetime) -> None:
    if start.tzinfo is None or end.tzinfo is None:
        raise ValidationError("Event datetimes must be timezone-aware")
    if end <= start:
        raise ValidationError(
            "End datetime must be after start datetime",
            event_start=start.isoformat(),
            event_end=end.isoformat(),
        )


async def find_conflicting_bookings(
    db: AsyncSession,
    venue_id: int,
    start: datetime,
    end: datetime,
    exclude_booking_id: Optional[int] = None,
) -> list[Booking]:
    """Active bookings on the venue whose interval overlaps [start, end)."""
    query = select(Booking).where(
        Booking.venue_id == venue_id,
        Booking.occupies_slot,
        Booking.event_start < end,
        Booking.event_end > start,
    )
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)

    result = await db.execute(query.order_by(Booking.event_start.asc()))
    return list(result.scalars().all())


async def is_slot_free(
    db: AsyncSession,
    venue_id: int,
    start: datetime,
    end: datetime,
    exclude_booking_id: Optional[int] = None,
) -> bool:
    """
    True iff no active booking on the venue overlaps [start, end).
    Raises ValidationError for an inverted interval and NotFoundError for an
    unknown venue; a taken slot is a normal False.
    """
    validate_interval(start, end)
    await get_venue(db, venue_id)

    conflicts = await find_conflicting_bookings(db, venue_id, start, end, exclude_booking_id)
    free = not conflicts
    record_slot_check(free)
    if not free:
        logger.debug(
            "slot_taken",
            venue_id=venue_id,
            conflicting_booking_ids=[b.id for b in conflicts],
        )
    return free


async def assert_slot_free(
    db: AsyncSession,
    venue_id: int,
    start: datetime,
    end: datetime,
    exclude_booking_id: Optional[int] = None,
) -> None:
    """Like is_slot_free, but a taken slot raises ConflictError."""
    validate_interval(start, end)
    conflicts = await find_conflicting_bookings(db, venue_id, start, end, exclude_booking_id)
    record_slot_check(not conflicts)
    if conflicts:
        raise ConflictError(
            "Venue is already booked for this time range",
            venue_id=venue_id,
            conflicting_booking_ids=[b.id for b in conflicts],
        )
