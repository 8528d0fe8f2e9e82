"""
Aggregate loaders shared by the services.

Loaders always refresh from the database (populate_existing): sessions use
expire_on_commit=False, so an identity-mapped row could otherwise carry a
version read before another writer's commit.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_ledger.core.exceptions import NotFoundError
from venue_ledger.models.booking import Booking
from venue_ledger.models.purchase_order import PurchaseOrder
from venue_ledger.models.transaction import Transaction


async def get_booking(db: AsyncSession, booking_id: int, include_deleted: bool = False) -> Booking:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if booking is None or (booking.is_deleted and not include_deleted):
        raise NotFoundError(f"Booking {booking_id} not found", booking_id=booking_id)
    return booking


async def get_purchase_order(db: AsyncSession, po_id: int) -> PurchaseOrder:
    result = await db.execute(
        select(PurchaseOrder)
        .where(PurchaseOrder.id == po_id)
        .execution_options(populate_existing=True)
    )
    po = result.scalar_one_or_none()
    if po is None:
        raise NotFoundError(f"Purchase Order {po_id} not found", purchase_order_id=po_id)
    return po


async def get_transaction(db: AsyncSession, transaction_id: int) -> Transaction:
    result = await db.execute(
        select(Transaction)
        .where(Transaction.id == transaction_id)
        .execution_options(populate_existing=True)
    )
    txn = result.scalar_one_or_none()
    if txn is None:
        raise NotFoundError(f"Transaction {transaction_id} not found", transaction_id=transaction_id)
    return txn
