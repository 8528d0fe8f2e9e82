"""
Booking endpoints: conflict-free creation, lifecycle and the booking's
ledger and purchase orders.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from venue_ledger.db.session import get_db
from venue_ledger.models.enums import TransactionDirection
from venue_ledger.schemas.booking import (
    BookingActor,
    BookingCancel,
    BookingCreate,
    BookingResponse,
    BookingUpdate,
)
from venue_ledger.schemas.purchase_order import ExistingPOsResponse, POGenerateRequest, PurchaseOrderResponse
from venue_ledger.schemas.transaction import TransactionResponse
from venue_ledger.services import booking_service
from venue_ledger.services.cache_service import invalidate_venue_calendar
from venue_ledger.services.po_generator import generate_po_for_vendor, generate_pos_for_booking
from venue_ledger.services.purchase_order_service import check_existing_pos, list_booking_purchase_orders
from venue_ledger.services.queries import get_booking
from venue_ledger.services.transaction_service import list_booking_transactions

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    generate_pos: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """
    Reserve a venue slot.

    Returns 409 if an active booking overlaps the interval, or if concurrent
    writes on the same venue kept winning for every retry.
    """
    booking = await booking_service.create_booking(db, booking_data, generate_pos=generate_pos)
    await invalidate_venue_calendar(booking.venue_id)
    return booking


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(booking_id: int, db: AsyncSession = Depends(get_db)):
    return await get_booking(db, booking_id)


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking_endpoint(
    booking_id: int,
    booking_data: BookingUpdate,
    db: AsyncSession = Depends(get_db),
):
    booking = await booking_service.update_booking(db, booking_id, booking_data)
    await invalidate_venue_calendar(booking.venue_id)
    return booking


@router.delete("/{booking_id}", response_model=BookingResponse)
async def delete_booking_endpoint(
    booking_id: int,
    deleted_by: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Soft delete: the slot is released, the ledger is kept."""
    booking = await booking_service.delete_booking(db, booking_id, deleted_by)
    await invalidate_venue_calendar(booking.venue_id)
    return booking


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking_endpoint(
    booking_id: int,
    actor: BookingActor = BookingActor(),
    db: AsyncSession = Depends(get_db),
):
    booking = await booking_service.confirm_booking(db, booking_id, actor.user_id)
    await invalidate_venue_calendar(booking.venue_id)
    return booking


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking_endpoint(
    booking_id: int,
    actor: BookingActor = BookingActor(),
    db: AsyncSession = Depends(get_db),
):
    booking = await booking_service.complete_booking(db, booking_id, actor.user_id)
    await invalidate_venue_calendar(booking.venue_id)
    return booking


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    cancel_data: BookingCancel = BookingCancel(),
    db: AsyncSession = Depends(get_db),
):
    booking = await booking_service.cancel_booking(db, booking_id, cancel_data.reason, cancel_data.cancelled_by)
    await invalidate_venue_calendar(booking.venue_id)
    return booking


@router.post("/{booking_id}/restore", response_model=BookingResponse)
async def restore_booking_endpoint(
    booking_id: int,
    actor: BookingActor = BookingActor(),
    db: AsyncSession = Depends(get_db),
):
    """Undo a soft delete; 409 if the slot was taken in the meantime."""
    booking = await booking_service.restore_booking(db, booking_id, actor.user_id)
    await invalidate_venue_calendar(booking.venue_id)
    return booking


@router.get("/{booking_id}/transactions", response_model=list[TransactionResponse])
async def list_transactions_endpoint(
    booking_id: int,
    direction: Optional[TransactionDirection] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await list_booking_transactions(db, booking_id, direction)


@router.get("/{booking_id}/purchase-orders", response_model=list[PurchaseOrderResponse])
async def list_purchase_orders_endpoint(booking_id: int, db: AsyncSession = Depends(get_db)):
    await get_booking(db, booking_id)
    return await list_booking_purchase_orders(db, booking_id)


@router.get("/{booking_id}/purchase-orders/exists", response_model=ExistingPOsResponse)
async def existing_purchase_orders_endpoint(booking_id: int, db: AsyncSession = Depends(get_db)):
    pos = await check_existing_pos(db, booking_id)
    return ExistingPOsResponse(
        has_existing_pos=bool(pos),
        po_count=len(pos),
        purchase_orders=[PurchaseOrderResponse.model_validate(po) for po in pos],
    )


@router.post(
    "/{booking_id}/purchase-orders/generate",
    response_model=list[PurchaseOrderResponse],
    status_code=status.HTTP_201_CREATED,
)
async def generate_purchase_orders_endpoint(
    booking_id: int,
    request: POGenerateRequest = POGenerateRequest(),
    db: AsyncSession = Depends(get_db),
):
    """
    Create draft POs for the booking's vendors (409 if POs already exist).
    With vendor_type, only that vendor's PO is created.
    """
    if request.vendor_type is not None:
        po = await generate_po_for_vendor(
            db, booking_id, request.vendor_type, request.service_index, request.created_by
        )
        return [po]
    return await generate_pos_for_booking(db, booking_id, request.created_by)
