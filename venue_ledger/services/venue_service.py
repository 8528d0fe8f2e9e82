"""
Venue collaborator: existence checks and the per-venue calendar lock.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from venue_ledger.core.exceptions import NotFoundError
from venue_ledger.models.venue import Venue


async def get_venue(db: AsyncSession, venue_id: int) -> Venue:
    result = await db.execute(
        select(Venue)
        .where(Venue.id == venue_id)
        .execution_options(populate_existing=True)
    )
    venue = result.scalar_one_or_none()
    if venue is None or not venue.is_active:
        raise NotFoundError(f"Venue {venue_id} not found", venue_id=venue_id)
    return venue


async def claim_calendar(db: AsyncSession, venue_id: int, expected_version: int) -> bool:
    """
    Compare-and-swap the venue's calendar version inside the caller's
    transaction. False means another booking write on this venue committed
    (or is committing) since `expected_version` was read.
    """
    result = await db.execute(
        update(Venue)
        .where(Venue.id == venue_id, Venue.calendar_version == expected_version)
        .values(calendar_version=Venue.calendar_version + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
