"""
Operational reconciliation endpoints: repair derived totals on demand.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from venue_ledger.db.session import get_db
from venue_ledger.schemas.booking import BookingResponse
from venue_ledger.schemas.purchase_order import PurchaseOrderResponse
from venue_ledger.services.reconciliation import (
    reconcile_booking,
    reconcile_purchase_order,
    sweep_pending_reconciliations,
)

router = APIRouter(prefix="/reconciliation", tags=["Reconciliation"])


@router.post("/sweep")
async def sweep_endpoint(
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Reconcile every owner that still has transactions flagged pending."""
    return await sweep_pending_reconciliations(db, limit)


@router.post("/bookings/{booking_id}", response_model=BookingResponse)
async def reconcile_booking_endpoint(booking_id: int, db: AsyncSession = Depends(get_db)):
    return await reconcile_booking(db, booking_id)


@router.post("/purchase-orders/{po_id}", response_model=PurchaseOrderResponse)
async def reconcile_purchase_order_endpoint(po_id: int, db: AsyncSession = Depends(get_db)):
    return await reconcile_purchase_order(db, po_id)
