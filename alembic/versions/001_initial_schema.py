"""Initial schema: venues, bookings, purchase orders, transactions, PO counters.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Venues (minimal: existence + calendar lock)
    op.create_table(
        "venues",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("calendar_version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("calendar_version > 0", name="check_venue_calendar_version_positive"),
    )
    op.create_index("ix_venues_id", "venues", ["id"])

    # Bookings
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("venue_id", sa.Integer(), sa.ForeignKey("venues.id"), nullable=False),
        sa.Column("client_name", sa.String(255), nullable=False),
        sa.Column("contact_no", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("occasion_type", sa.String(100), nullable=False),
        sa.Column("number_of_guests", sa.Integer(), nullable=False),
        sa.Column("event_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("event_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("booking_status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("food_package", sa.JSON(), nullable=True),
        sa.Column("catering_vendor", sa.JSON(), nullable=True),
        sa.Column("services", sa.JSON(), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("advance_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'unpaid'")),
        sa.Column("payment_mode", sa.String(20), nullable=False, server_default=sa.text("'cash'")),
        sa.Column("notes", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("internal_notes", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.String(64), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("updated_by", sa.String(64), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("event_end > event_start", name="check_booking_interval"),
        sa.CheckConstraint("number_of_guests > 0", name="check_booking_guests_positive"),
        sa.CheckConstraint("total_amount >= 0", name="check_booking_total_non_negative"),
        sa.CheckConstraint("advance_amount >= 0", name="check_booking_advance_non_negative"),
        sa.CheckConstraint(
            "booking_status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="check_booking_status",
        ),
        sa.CheckConstraint(
            "payment_status IN ('unpaid', 'partially_paid', 'paid')",
            name="check_booking_payment_status",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_venue_id", "bookings", ["venue_id"])
    # Overlap query: WHERE venue_id = ? AND event_start < :end AND event_end > :start
    op.create_index("ix_bookings_venue_start", "bookings", ["venue_id", "event_start"])
    op.create_index("ix_bookings_venue_status", "bookings", ["venue_id", "booking_status"])

    # NO-OVERLAP EXCLUSION CONSTRAINT: last line of defence behind the
    # calendar_version lock. Two active bookings of one venue may not have
    # intersecting [start, end) ranges; back-to-back ranges do not intersect.
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
    op.execute(
        """
        ALTER TABLE bookings ADD CONSTRAINT ex_bookings_no_overlap
        EXCLUDE USING gist (
            venue_id WITH =,
            tstzrange(event_start, event_end, '[)') WITH &&
        )
        WHERE (NOT is_deleted AND booking_status IN ('pending', 'confirmed'))
        """
    )

    # Purchase orders
    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("po_number", sa.String(32), nullable=False),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("venue_id", sa.Integer(), sa.ForeignKey("venues.id"), nullable=False),
        sa.Column("vendor_type", sa.String(20), nullable=False),
        sa.Column("vendor_details", sa.JSON(), nullable=False),
        sa.Column("vendor_reference", sa.String(255), nullable=True),
        sa.Column("line_items", sa.JSON(), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("paid_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("balance_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("issue_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.String(64), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("terms_and_conditions", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("internal_notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("updated_by", sa.String(64), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.UniqueConstraint("po_number", name="uq_purchase_orders_po_number"),
        # One PO per vendor per booking; repeated generation cannot duplicate
        sa.UniqueConstraint("booking_id", "vendor_reference", name="uq_purchase_orders_booking_vendor"),
        sa.CheckConstraint("total_amount >= 0", name="check_po_total_non_negative"),
        sa.CheckConstraint("paid_amount >= 0", name="check_po_paid_non_negative"),
        sa.CheckConstraint(
            "status IN ('draft', 'pending', 'approved', 'partially_paid', 'paid', 'cancelled')",
            name="check_po_status",
        ),
        sa.CheckConstraint("vendor_type IN ('catering', 'service')", name="check_po_vendor_type"),
    )
    op.create_index("ix_purchase_orders_id", "purchase_orders", ["id"])
    op.create_index("ix_purchase_orders_booking_id", "purchase_orders", ["booking_id"])
    op.create_index("ix_purchase_orders_venue_id", "purchase_orders", ["venue_id"])
    op.create_index("ix_purchase_orders_booking_vendor_type", "purchase_orders", ["booking_id", "vendor_type"])
    op.create_index("ix_purchase_orders_venue_status", "purchase_orders", ["venue_id", "status"])

    # Transactions
    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("purchase_order_id", sa.Integer(), sa.ForeignKey("purchase_orders.id"), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("mode", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'success'")),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("direction", sa.String(10), nullable=False, server_default=sa.text("'inbound'")),
        sa.Column("vendor_type", sa.String(20), nullable=True),
        sa.Column("vendor_id", sa.String(64), nullable=True),
        sa.Column("reference_id", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("reconciliation_pending", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("updated_by", sa.String(64), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="check_transaction_amount_positive"),
        sa.CheckConstraint(
            "mode IN ('cash', 'card', 'upi', 'bank_transfer', 'cheque', 'other')",
            name="check_transaction_mode",
        ),
        sa.CheckConstraint(
            "status IN ('initiated', 'success', 'failed', 'refunded')",
            name="check_transaction_status",
        ),
        sa.CheckConstraint(
            "type IN ('advance', 'partial', 'full', 'vendor_payment')",
            name="check_transaction_type",
        ),
        sa.CheckConstraint("direction IN ('inbound', 'outbound')", name="check_transaction_direction"),
        sa.CheckConstraint(
            "vendor_type IS NULL OR vendor_type IN ('catering', 'service')",
            name="check_transaction_vendor_type",
        ),
    )
    op.create_index("ix_transactions_id", "transactions", ["id"])
    op.create_index("ix_transactions_booking_id", "transactions", ["booking_id"])
    op.create_index("ix_transactions_purchase_order_id", "transactions", ["purchase_order_id"])
    op.create_index("ix_transactions_reconciliation_pending", "transactions", ["reconciliation_pending"])
    # Reconciliation reads: SUM(amount) per booking/direction/status and per PO/status
    op.create_index(
        "ix_transactions_booking_direction_status",
        "transactions",
        ["booking_id", "direction", "status"],
    )
    op.create_index("ix_transactions_po_status", "transactions", ["purchase_order_id", "status"])

    # Per-month PO number counters
    op.create_table(
        "po_number_sequences",
        sa.Column("period", sa.String(7), primary_key=True),
        sa.Column("last_value", sa.Integer(), nullable=False),
        sa.CheckConstraint("last_value > 0", name="check_po_sequence_positive"),
    )


def downgrade() -> None:
    op.drop_table("po_number_sequences")
    op.drop_table("transactions")
    op.drop_table("purchase_orders")
    op.execute("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS ex_bookings_no_overlap")
    op.drop_table("bookings")
    op.drop_table("venues")
