from enum import Enum


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class BookingLifecycle(str, Enum):
    ACTIVE = "active"  # pending or confirmed, occupies its slot
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    DELETED = "deleted"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"


class PaymentMode(str, Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    OTHER = "other"


class TransactionStatus(str, Enum):
    INITIATED = "initiated"
    SUCCESS = "success"
    FAILED = "failed"
    REFUNDED = "refunded"


class TransactionDirection(str, Enum):
    INBOUND = "inbound"    # customer -> venue
    OUTBOUND = "outbound"  # venue -> vendor


class TransactionType(str, Enum):
    ADVANCE = "advance"
    PARTIAL = "partial"
    FULL = "full"
    VENDOR_PAYMENT = "vendor_payment"


class VendorType(str, Enum):
    CATERING = "catering"
    SERVICE = "service"


class POStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    CANCELLED = "cancelled"


def values(enum_cls) -> tuple:
    return tuple(member.value for member in enum_cls)


def sql_in(column: str, enum_cls) -> str:
    """CHECK constraint body restricting a string column to the enum's values."""
    quoted = ", ".join(f"'{value}'" for value in values(enum_cls))
    return f"{column} IN ({quoted})"


ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)
