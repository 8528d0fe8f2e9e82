"""
Purchase order number allocator: PO-YYYY-MM-NNNN, per UTC month.

Allocation runs inside the caller's transaction:

  UPDATE po_number_sequences SET last_value = last_value + 1
  WHERE period = :period RETURNING last_value

The row lock taken by the UPDATE is held until the caller commits or rolls
back, so a PO insert that fails also gives its number back. Numbers are
therefore unique and gap-free within a month.

The first allocation of a month seeds the counter from the greatest existing
number with that month's prefix (numbers created before the counter table
existed). Two first allocators racing on the seed INSERT collide on the
primary key; the loser rolls back and raises ConcurrencyError so the caller
retries, and the retry finds the row.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from venue_ledger.core.config import get_settings
from venue_ledger.core.exceptions import ConcurrencyError
from venue_ledger.core.logging import get_logger
from venue_ledger.db.base import utcnow
from venue_ledger.models.po_sequence import PONumberSequence
from venue_ledger.models.purchase_order import PurchaseOrder

logger = get_logger(__name__)


def po_period(now: datetime) -> str:
    return now.astimezone(timezone.utc).strftime("%Y-%m")


def po_number_prefix(period: str) -> str:
    return f"{get_settings().PO_NUMBER_PREFIX}-{period}-"


def format_po_number(prefix: str, value: int) -> str:
    return f"{prefix}{value:04d}"


async def _highest_existing_suffix(db: AsyncSession, prefix: str) -> int:
    result = await db.execute(
        select(func.max(PurchaseOrder.po_number)).where(PurchaseOrder.po_number.like(f"{prefix}%"))
    )
    last = result.scalar_one_or_none()
    if not last:
        return 0
    try:
        return int(last[len(prefix):])
    except ValueError:
        logger.warning("po_number_unparseable", po_number=last, prefix=prefix)
        return 0


async def next_po_number(db: AsyncSession, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    period = po_period(now)
    prefix = po_number_prefix(period)

    result = await db.execute(
        update(PONumberSequence)
        .where(PONumberSequence.period == period)
        .values(last_value=PONumberSequence.last_value + 1)
        .returning(PONumberSequence.last_value)
        .execution_options(synchronize_session=False)
    )
    value = result.scalar_one_or_none()

    if value is None:
        seed = await _highest_existing_suffix(db, prefix)
        value = seed + 1
        db.add(PONumberSequence(period=period, last_value=value))
        try:
            await db.flush()
        except IntegrityError as e:
            await db.rollback()
            logger.info("po_sequence_seed_conflict", period=period)
            raise ConcurrencyError("PO number counter was seeded concurrently", period=period) from e
        logger.info("po_sequence_seeded", period=period, seeded_from=seed)

    return format_po_number(prefix, value)
