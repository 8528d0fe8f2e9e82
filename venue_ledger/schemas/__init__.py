from venue_ledger.schemas.booking import (
    AvailabilityResponse,
    BookingCancel,
    CalendarEntryResponse,
    BookingCreate,
    BookingResponse,
    BookingUpdate,
)
from venue_ledger.schemas.transaction import TransactionCreate, TransactionResponse, TransactionStatusUpdate
from venue_ledger.schemas.purchase_order import (
    POLineItem,
    PurchaseOrderCreate,
    PurchaseOrderResponse,
    PurchaseOrderUpdate,
)

__all__ = [
    "AvailabilityResponse", "BookingCancel", "CalendarEntryResponse", "BookingCreate", "BookingResponse", "BookingUpdate",
    "TransactionCreate", "TransactionResponse", "TransactionStatusUpdate",
    "POLineItem", "PurchaseOrderCreate", "PurchaseOrderResponse", "PurchaseOrderUpdate",
]
