"""
Pydantic schemas for ledger transactions.

`type` is deliberately absent from the create schema: the ledger classifies
every transaction itself.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from venue_ledger.models.enums import (
    PaymentMode,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
    VendorType,
)


class TransactionCreate(BaseModel):
    booking_id: int
    amount: Decimal
    mode: PaymentMode
    status: TransactionStatus = TransactionStatus.SUCCESS
    direction: TransactionDirection = TransactionDirection.INBOUND
    vendor_type: Optional[VendorType] = None
    vendor_id: Optional[str] = None
    purchase_order_id: Optional[int] = None
    reference_id: Optional[str] = None
    notes: str = ""
    paid_at: Optional[datetime] = None
    created_by: Optional[str] = None


class TransactionStatusUpdate(BaseModel):
    status: TransactionStatus
    updated_by: Optional[str] = None


class TransactionResponse(BaseModel):
    id: int
    booking_id: int
    purchase_order_id: Optional[int] = None
    amount: Decimal
    mode: PaymentMode
    status: TransactionStatus
    type: TransactionType
    direction: TransactionDirection
    vendor_type: Optional[VendorType] = None
    vendor_id: Optional[str] = None
    reference_id: Optional[str] = None
    notes: str
    paid_at: datetime
    reconciliation_pending: bool
    created_at: datetime

    model_config = {"from_attributes": True}
