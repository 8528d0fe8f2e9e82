"""
Ledger endpoints. Recording a payment reconciles its owner before returning;
503 means the payment is recorded but the owner's totals are not updated yet.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from venue_ledger.db.session import get_db
from venue_ledger.schemas.transaction import TransactionCreate, TransactionResponse, TransactionStatusUpdate
from venue_ledger.services.queries import get_transaction
from venue_ledger.services.transaction_service import record_transaction, update_transaction_status

router = APIRouter(prefix="/transactions", tags=["Transactions"])


@router.post("/", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def record_transaction_endpoint(
    transaction_data: TransactionCreate,
    db: AsyncSession = Depends(get_db),
):
    return await record_transaction(db, transaction_data)


@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_transaction_endpoint(transaction_id: int, db: AsyncSession = Depends(get_db)):
    return await get_transaction(db, transaction_id)


@router.patch("/{transaction_id}/status", response_model=TransactionResponse)
async def update_transaction_status_endpoint(
    transaction_id: int,
    status_data: TransactionStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    return await update_transaction_status(db, transaction_id, status_data.status, status_data.updated_by)
