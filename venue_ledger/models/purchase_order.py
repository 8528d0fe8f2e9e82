"""
Purchase order model: a commitment to pay one vendor for a booking.

paid_amount, balance_amount and the payment-driven statuses are derived by
the reconciler from outbound transactions. `vendor_reference` is unique per
booking so generating twice for the same vendor cannot create duplicates.
"""

from decimal import Decimal

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from venue_ledger.db.base import Base, Money, TimestampMixin, UTCDateTime, utcnow
from venue_ledger.models.enums import POStatus, VendorType, sql_in


class PurchaseOrder(Base, TimestampMixin):
    __tablename__ = "purchase_orders"

    id = Column(Integer, primary_key=True, index=True)
    po_number = Column(String(32), nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False, index=True)

    # Vendor
    vendor_type = Column(String(20), nullable=False)
    vendor_details = Column(JSON, nullable=False)
    vendor_reference = Column(String(255), nullable=True)

    # Amounts
    line_items = Column(JSON, nullable=False, default=list)
    total_amount = Money(nullable=False)
    paid_amount = Money(nullable=False, default=Decimal("0"))
    balance_amount = Money(nullable=False)

    # Status & dates
    status = Column(String(20), nullable=False, default=POStatus.DRAFT.value)
    issue_date = Column(UTCDateTime, nullable=False, default=utcnow)
    due_date = Column(UTCDateTime, nullable=True)
    approved_at = Column(UTCDateTime, nullable=True)
    approved_by = Column(String(64), nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    terms_and_conditions = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)

    created_by = Column(String(64), nullable=True)
    updated_by = Column(String(64), nullable=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("po_number", name="uq_purchase_orders_po_number"),
        UniqueConstraint("booking_id", "vendor_reference", name="uq_purchase_orders_booking_vendor"),
        CheckConstraint("total_amount >= 0", name="check_po_total_non_negative"),
        CheckConstraint("paid_amount >= 0", name="check_po_paid_non_negative"),
        CheckConstraint(sql_in("status", POStatus), name="check_po_status"),
        CheckConstraint(sql_in("vendor_type", VendorType), name="check_po_vendor_type"),
        Index("ix_purchase_orders_booking_vendor_type", "booking_id", "vendor_type"),
        Index("ix_purchase_orders_venue_status", "venue_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<PurchaseOrder(id={self.id}, number={self.po_number}, "
            f"paid={self.paid_amount}/{self.total_amount}, status={self.status})>"
        )
