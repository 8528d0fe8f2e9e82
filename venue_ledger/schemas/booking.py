"""
Pydantic schemas for booking-related request/response validation.

Interval and money rules are enforced by the services (they map to 400);
these schemas only check shape and types (422).
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from venue_ledger.models.enums import BookingStatus, PaymentMode, PaymentStatus


class BankDetails(BaseModel):
    account_number: Optional[str] = None
    account_holder_name: Optional[str] = None
    ifsc_code: Optional[str] = None
    bank_name: Optional[str] = None
    branch_name: Optional[str] = None
    upi_id: Optional[str] = None


class VendorContact(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    bank_details: Optional[BankDetails] = None


class FoodItem(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price_per_person: Decimal = Field(default=Decimal("0"), ge=0)
    is_custom: bool = False


class FoodPackageSection(BaseModel):
    section_name: str = Field(..., min_length=1)
    selection_type: str = Field(default="free", pattern=r"^(free|limit|all_included)$")
    max_selectable: Optional[int] = Field(None, ge=1)
    items: list[FoodItem] = Field(default_factory=list)
    section_total_per_person: Decimal = Field(default=Decimal("0"), ge=0)


class FoodPackage(BaseModel):
    name: str = Field(..., min_length=1)
    sections: list[FoodPackageSection] = Field(default_factory=list)
    total_price_per_person: Decimal = Field(default=Decimal("0"), ge=0)
    flat_price: Optional[Decimal] = Field(None, ge=0)
    inclusions: list[str] = Field(default_factory=list)


class ServiceAssignment(BaseModel):
    service: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(default=Decimal("0"), ge=0)
    vendor: Optional[VendorContact] = None


class BookingCreate(BaseModel):
    venue_id: int
    client_name: str = Field(..., min_length=1, max_length=255)
    contact_no: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    occasion_type: str = Field(..., min_length=1, max_length=100)
    number_of_guests: int = Field(..., gt=0)
    event_start: datetime
    event_end: datetime
    food_package: Optional[FoodPackage] = None
    catering_vendor: Optional[VendorContact] = None
    services: list[ServiceAssignment] = Field(default_factory=list)
    total_amount: Optional[Decimal] = None
    advance_amount: Decimal = Decimal("0")
    payment_mode: PaymentMode = PaymentMode.CASH
    notes: str = ""
    internal_notes: str = ""
    created_by: Optional[str] = None


class BookingUpdate(BaseModel):
    client_name: Optional[str] = Field(None, min_length=1, max_length=255)
    contact_no: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    occasion_type: Optional[str] = Field(None, min_length=1, max_length=100)
    number_of_guests: Optional[int] = Field(None, gt=0)
    event_start: Optional[datetime] = None
    event_end: Optional[datetime] = None
    food_package: Optional[FoodPackage] = None
    catering_vendor: Optional[VendorContact] = None
    services: Optional[list[ServiceAssignment]] = None
    total_amount: Optional[Decimal] = None
    payment_mode: Optional[PaymentMode] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    updated_by: Optional[str] = None


class BookingCancel(BaseModel):
    reason: str = ""
    cancelled_by: Optional[str] = None


class BookingActor(BaseModel):
    user_id: Optional[str] = None


class BookingResponse(BaseModel):
    id: int
    venue_id: int
    client_name: str
    contact_no: str
    email: str
    occasion_type: str
    number_of_guests: int
    event_start: datetime
    event_end: datetime
    booking_status: BookingStatus
    food_package: Optional[FoodPackage] = None
    catering_vendor: Optional[VendorContact] = None
    services: list[ServiceAssignment]
    total_amount: Decimal
    advance_amount: Decimal
    payment_status: PaymentStatus
    payment_mode: PaymentMode
    notes: str
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: str
    is_deleted: bool
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CalendarEntryResponse(BaseModel):
    """
    One booking as the venue calendar shows it. Payment state and the row
    version are left out: the reconciler changes them without invalidating
    the cached calendar.
    """

    id: int
    venue_id: int
    client_name: str
    occasion_type: str
    number_of_guests: int
    event_start: datetime
    event_end: datetime
    booking_status: BookingStatus
    total_amount: Decimal
    is_deleted: bool

    model_config = {"from_attributes": True}


class AvailabilityResponse(BaseModel):
    venue_id: int
    event_start: datetime
    event_end: datetime
    available: bool
    conflicting_booking_ids: list[int] = Field(default_factory=list)
