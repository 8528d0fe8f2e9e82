"""
Venue model. Venue CRUD lives elsewhere; the engine only needs existence
and the calendar version.

`calendar_version` is bumped by every write that occupies or moves a slot on
the venue. Two bookings racing for the same venue both read the same version
and only one compare-and-swap can win, so the loser re-checks availability.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, String

from venue_ledger.db.base import Base, TimestampMixin


class Venue(Base, TimestampMixin):
    __tablename__ = "venues"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # Optimistic lock over the venue's calendar
    calendar_version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("calendar_version > 0", name="check_venue_calendar_version_positive"),
    )

    def __repr__(self) -> str:
        return f"<Venue(id={self.id}, name={self.name}, calendar_version={self.calendar_version})>"
