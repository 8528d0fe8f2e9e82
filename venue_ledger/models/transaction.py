"""
Transaction model: one immutable money movement.

Only `status` (and the reconciliation flag) ever changes after insert.
`reconciliation_pending` marks a transaction whose effect on its owner has
not been folded into the owner's derived totals yet; the reconciler clears it
for the rows it summed whose status has not changed since, and the sweep
picks up anything left behind.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)

from venue_ledger.db.base import Base, Money, TimestampMixin, UTCDateTime, utcnow
from venue_ledger.models.enums import (
    PaymentMode,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
    VendorType,
    sql_in,
)


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=True, index=True)

    amount = Money(nullable=False)
    mode = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=TransactionStatus.SUCCESS.value)
    type = Column(String(20), nullable=False)
    direction = Column(String(10), nullable=False, default=TransactionDirection.INBOUND.value)

    # Outbound only
    vendor_type = Column(String(20), nullable=True)
    vendor_id = Column(String(64), nullable=True)

    reference_id = Column(String(255), nullable=True)
    notes = Column(Text, nullable=False, default="")
    paid_at = Column(UTCDateTime, nullable=False, default=utcnow)

    reconciliation_pending = Column(Boolean, nullable=False, default=False, index=True)

    created_by = Column(String(64), nullable=True)
    updated_by = Column(String(64), nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="check_transaction_amount_positive"),
        CheckConstraint(sql_in("mode", PaymentMode), name="check_transaction_mode"),
        CheckConstraint(sql_in("status", TransactionStatus), name="check_transaction_status"),
        CheckConstraint(sql_in("type", TransactionType), name="check_transaction_type"),
        CheckConstraint(sql_in("direction", TransactionDirection), name="check_transaction_direction"),
        CheckConstraint(
            f"vendor_type IS NULL OR {sql_in('vendor_type', VendorType)}",
            name="check_transaction_vendor_type",
        ),
        # Reconciliation reads: all successful inbound money for a booking
        Index("ix_transactions_booking_direction_status", "booking_id", "direction", "status"),
        Index("ix_transactions_po_status", "purchase_order_id", "status"),
    )

    @property
    def counts_as_paid(self) -> bool:
        return self.status == TransactionStatus.SUCCESS.value

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id}, booking={self.booking_id}, {self.direction} "
            f"{self.amount} {self.status})>"
        )
