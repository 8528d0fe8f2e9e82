"""
Venue calendar endpoints: slot availability and the cached booking calendar.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from venue_ledger.db.session import get_db
from venue_ledger.schemas.booking import AvailabilityResponse, CalendarEntryResponse
from venue_ledger.services.availability_service import find_conflicting_bookings, is_slot_free
from venue_ledger.services.booking_service import list_venue_bookings
from venue_ledger.services.cache_service import get_cached_calendar, make_calendar_key, set_cached_calendar
from venue_ledger.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/venues", tags=["Venues"])


@router.get("/{venue_id}/availability", response_model=AvailabilityResponse)
async def check_availability(
    venue_id: int,
    start: datetime = Query(...),
    end: datetime = Query(...),
    exclude_booking_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Is [start, end) free on the venue? A taken slot is a normal 200 with
    available=false. Never cached.
    """
    available = await is_slot_free(db, venue_id, start, end, exclude_booking_id)
    conflicting = []
    if not available:
        conflicting = [b.id for b in await find_conflicting_bookings(db, venue_id, start, end, exclude_booking_id)]
    return AvailabilityResponse(
        venue_id=venue_id,
        event_start=start,
        event_end=end,
        available=available,
        conflicting_booking_ids=conflicting,
    )


@router.get("/{venue_id}/bookings", response_model=list[CalendarEntryResponse])
async def venue_calendar(
    venue_id: int,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """
    Bookings of the venue, optionally within a window.
    Cached in Redis; invalidated by every booking write on the venue.
    Entries carry no payment state, so ledger writes need no invalidation.
    """
    key = make_calendar_key(venue_id, start, end, include_inactive)
    cached = await get_cached_calendar(key)
    if cached is not None:
        logger.info("venue_calendar_cache_hit", venue_id=venue_id)
        return cached

    bookings = await list_venue_bookings(db, venue_id, start, end, include_inactive)
    data = [CalendarEntryResponse.model_validate(b).model_dump(mode="json") for b in bookings]
    await set_cached_calendar(key, data)
    return data
