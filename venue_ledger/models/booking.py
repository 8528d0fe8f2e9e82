"""
Booking model: one reservation of a venue for a half-open interval
[event_start, event_end).

Key design decisions:
- Lifecycle is read through `lifecycle`/`occupies_slot` only, so the
  availability checker and every listing agree on which rows block a slot
- advance_amount and payment_status are derived from the transaction ledger
  by the reconciler; they are never written from caller input after creation
- `version` column enables optimistic locking for reconciliation and status
  changes
- Vendor assignments and the food package are stored as JSON documents; they
  are read-only input to the purchase order generator
"""

from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    and_,
)
from sqlalchemy.ext.hybrid import hybrid_property

from venue_ledger.db.base import Base, Money, TimestampMixin, UTCDateTime
from venue_ledger.models.enums import (
    ACTIVE_BOOKING_STATUSES,
    BookingLifecycle,
    BookingStatus,
    PaymentMode,
    PaymentStatus,
    sql_in,
)


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False, index=True)

    # Client
    client_name = Column(String(255), nullable=False)
    contact_no = Column(String(50), nullable=False)
    email = Column(String(255), nullable=False)
    occasion_type = Column(String(100), nullable=False)
    number_of_guests = Column(Integer, nullable=False)

    # Slot
    event_start = Column(UTCDateTime, nullable=False)
    event_end = Column(UTCDateTime, nullable=False)
    booking_status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)

    # Vendors and catering
    food_package = Column(JSON, nullable=True)
    catering_vendor = Column(JSON, nullable=True)
    services = Column(JSON, nullable=False, default=list)

    # Payment summary (derived from transactions)
    total_amount = Money(nullable=False)
    advance_amount = Money(nullable=False, default=Decimal("0"))
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.UNPAID.value)
    payment_mode = Column(String(20), nullable=False, default=PaymentMode.CASH.value)

    notes = Column(Text, nullable=False, default="")
    internal_notes = Column(Text, nullable=False, default="")

    # Lifecycle audit
    confirmed_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=False, default="")
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(UTCDateTime, nullable=True)
    deleted_by = Column(String(64), nullable=True)
    created_by = Column(String(64), nullable=True)
    updated_by = Column(String(64), nullable=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("event_end > event_start", name="check_booking_interval"),
        CheckConstraint("number_of_guests > 0", name="check_booking_guests_positive"),
        CheckConstraint("total_amount >= 0", name="check_booking_total_non_negative"),
        CheckConstraint("advance_amount >= 0", name="check_booking_advance_non_negative"),
        CheckConstraint(sql_in("booking_status", BookingStatus), name="check_booking_status"),
        CheckConstraint(sql_in("payment_status", PaymentStatus), name="check_booking_payment_status"),
        # Overlap queries: WHERE venue_id = ? AND event_start < ? AND event_end > ?
        Index("ix_bookings_venue_start", "venue_id", "event_start"),
        Index("ix_bookings_venue_status", "venue_id", "booking_status"),
    )

    @property
    def lifecycle(self) -> BookingLifecycle:
        if self.is_deleted:
            return BookingLifecycle.DELETED
        if self.booking_status == BookingStatus.CANCELLED.value:
            return BookingLifecycle.CANCELLED
        if self.booking_status == BookingStatus.COMPLETED.value:
            return BookingLifecycle.COMPLETED
        return BookingLifecycle.ACTIVE

    @hybrid_property
    def occupies_slot(self) -> bool:
        return self.lifecycle is BookingLifecycle.ACTIVE

    @occupies_slot.inplace.expression
    @classmethod
    def _occupies_slot_expression(cls):
        return and_(
            cls.is_deleted.is_(False),
            cls.booking_status.in_(ACTIVE_BOOKING_STATUSES),
        )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, venue={self.venue_id}, "
            f"[{self.event_start}, {self.event_end}), status={self.booking_status})>"
        )
