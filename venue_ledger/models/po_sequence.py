"""
Per-month purchase order counter.

One row per `YYYY-MM` period. Allocation is a single
UPDATE ... SET last_value = last_value + 1 RETURNING, so the row lock taken by
the update serializes concurrent allocators until their transaction ends.
"""

from sqlalchemy import CheckConstraint, Column, Integer, String

from venue_ledger.db.base import Base


class PONumberSequence(Base):
    __tablename__ = "po_number_sequences"

    period = Column(String(7), primary_key=True)
    last_value = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("last_value > 0", name="check_po_sequence_positive"),
    )

    def __repr__(self) -> str:
        return f"<PONumberSequence(period={self.period}, last_value={self.last_value})>"
