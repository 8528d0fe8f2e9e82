"""
Pydantic schemas for purchase orders.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from venue_ledger.models.enums import POStatus, VendorType
from venue_ledger.schemas.booking import VendorContact


class POLineItem(BaseModel):
    description: str = Field(..., min_length=1)
    service_type: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=0)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    total_price: Decimal = Field(..., ge=0)


class PurchaseOrderCreate(BaseModel):
    booking_id: int
    vendor_type: VendorType
    vendor_details: VendorContact
    vendor_reference: Optional[str] = None
    line_items: list[POLineItem] = Field(default_factory=list)
    total_amount: Optional[Decimal] = None  # defaults to the sum of line items
    issue_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    terms_and_conditions: Optional[str] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    created_by: Optional[str] = None


class PurchaseOrderUpdate(BaseModel):
    vendor_details: Optional[VendorContact] = None
    line_items: Optional[list[POLineItem]] = None
    total_amount: Optional[Decimal] = None
    due_date: Optional[datetime] = None
    terms_and_conditions: Optional[str] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    updated_by: Optional[str] = None


class POApprove(BaseModel):
    approved_by: str = Field(..., min_length=1)


class POCancel(BaseModel):
    reason: str
    cancelled_by: Optional[str] = None


class POSubmit(BaseModel):
    submitted_by: Optional[str] = None


class POGenerateRequest(BaseModel):
    created_by: Optional[str] = None
    vendor_type: Optional[VendorType] = None  # restrict to one vendor
    service_index: Optional[int] = Field(None, ge=0)


class PurchaseOrderResponse(BaseModel):
    id: int
    po_number: str
    booking_id: int
    venue_id: int
    vendor_type: VendorType
    vendor_details: VendorContact
    vendor_reference: Optional[str] = None
    line_items: list[POLineItem]
    total_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    status: POStatus
    issue_date: datetime
    due_date: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    notes: Optional[str] = None
    version: int
    created_at: datetime

    model_config = {"from_attributes": True}


class ExistingPOsResponse(BaseModel):
    has_existing_pos: bool
    po_count: int
    purchase_orders: list[PurchaseOrderResponse]
