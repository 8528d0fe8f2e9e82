"""
Purchase order endpoints: manual creation, edits and lifecycle events.
Payment-driven statuses are never set here; they follow from transactions.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from venue_ledger.db.session import get_db
from venue_ledger.schemas.purchase_order import (
    POApprove,
    POCancel,
    POSubmit,
    PurchaseOrderCreate,
    PurchaseOrderResponse,
    PurchaseOrderUpdate,
)
from venue_ledger.schemas.transaction import TransactionResponse
from venue_ledger.services import purchase_order_service
from venue_ledger.services.queries import get_purchase_order
from venue_ledger.services.transaction_service import list_purchase_order_transactions

router = APIRouter(prefix="/purchase-orders", tags=["Purchase Orders"])


@router.post("/", response_model=PurchaseOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_purchase_order_endpoint(
    po_data: PurchaseOrderCreate,
    db: AsyncSession = Depends(get_db),
):
    return await purchase_order_service.create_purchase_order(db, po_data)


@router.get("/{po_id}", response_model=PurchaseOrderResponse)
async def get_purchase_order_endpoint(po_id: int, db: AsyncSession = Depends(get_db)):
    return await get_purchase_order(db, po_id)


@router.patch("/{po_id}", response_model=PurchaseOrderResponse)
async def update_purchase_order_endpoint(
    po_id: int,
    po_data: PurchaseOrderUpdate,
    db: AsyncSession = Depends(get_db),
):
    return await purchase_order_service.update_purchase_order(db, po_id, po_data)


@router.post("/{po_id}/submit", response_model=PurchaseOrderResponse)
async def submit_purchase_order_endpoint(
    po_id: int,
    submit_data: POSubmit = POSubmit(),
    db: AsyncSession = Depends(get_db),
):
    return await purchase_order_service.submit_purchase_order(db, po_id, submit_data.submitted_by)


@router.post("/{po_id}/approve", response_model=PurchaseOrderResponse)
async def approve_purchase_order_endpoint(
    po_id: int,
    approve_data: POApprove,
    db: AsyncSession = Depends(get_db),
):
    return await purchase_order_service.approve_purchase_order(db, po_id, approve_data.approved_by)


@router.post("/{po_id}/cancel", response_model=PurchaseOrderResponse)
async def cancel_purchase_order_endpoint(
    po_id: int,
    cancel_data: POCancel,
    db: AsyncSession = Depends(get_db),
):
    return await purchase_order_service.cancel_purchase_order(
        db, po_id, cancel_data.reason, cancel_data.cancelled_by
    )


@router.get("/{po_id}/transactions", response_model=list[TransactionResponse])
async def list_purchase_order_transactions_endpoint(po_id: int, db: AsyncSession = Depends(get_db)):
    return await list_purchase_order_transactions(db, po_id)
