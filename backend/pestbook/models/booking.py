"""
Bookings, their technician assignment history, and the audit event log.

Key design decisions:
- Owner is exactly one of customer_user_id / lead_id (CHECK constraint)
- Status changes only through the transition service; cancellation is a
  terminal status, rows are never deleted
- Active bookings may not overlap in time (PostgreSQL exclusion constraint);
  the company's crew is the single shared resource
- Assignments are history rows; the newest row is the current assignee
- booking_events is append-only
"""

import enum

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    literal_column,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, ExcludeConstraint

from pestbook.db.base import Base, TimestampMixin, PublicIdMixin, utcnow

ID = BigInteger().with_variant(Integer, "sqlite")


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = (BookingStatus.PENDING.value, BookingStatus.ACCEPTED.value, BookingStatus.ASSIGNED.value)
TERMINAL_STATUSES = (BookingStatus.COMPLETED.value, BookingStatus.CANCELLED.value)


class Booking(Base, TimestampMixin, PublicIdMixin):
    __tablename__ = "bookings"

    id = Column(ID, primary_key=True, autoincrement=True)
    customer_user_id = Column(ID, ForeignKey("users.id"), nullable=True, index=True)
    lead_id = Column(ID, ForeignKey("leads.id"), nullable=True, index=True)
    service_id = Column(ID, ForeignKey("services.id"), nullable=False)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    address = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)

    accepted_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "(customer_user_id IS NULL) <> (lead_id IS NULL)",
            name="ck_bookings_owner_xor",
        ),
        CheckConstraint("ends_at > starts_at", name="ck_bookings_time_order"),
        CheckConstraint(
            "status IN ('pending', 'accepted', 'assigned', 'completed', 'cancelled')",
            name="ck_bookings_status",
        ),
        Index("ix_bookings_status_starts", "status", "starts_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, status={self.status}, starts={self.starts_at})>"


# Overlap guard for active bookings; SQLite test databases emulate it with a trigger
Booking.__table__.append_constraint(
    ExcludeConstraint(
        (
            func.tstzrange(
                Booking.__table__.c.starts_at,
                Booking.__table__.c.ends_at,
                literal_column("'[)'"),
            ),
            "&&",
        ),
        name="bookings_no_overlap",
        using="gist",
        where=text("status IN ('pending', 'accepted', 'assigned')"),
    ).ddl_if(dialect="postgresql")
)


class BookingAssignment(Base):
    __tablename__ = "booking_assignments"

    id = Column(ID, primary_key=True, autoincrement=True)
    booking_id = Column(ID, ForeignKey("bookings.id"), nullable=False)
    worker_user_id = Column(ID, ForeignKey("users.id"), nullable=False)
    assigned_by_user_id = Column(ID, ForeignKey("users.id"), nullable=True)
    assigned_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_booking_assignments_booking_time", "booking_id", "assigned_at"),
        Index("ix_booking_assignments_worker_time", "worker_user_id", "assigned_at"),
    )

    def __repr__(self) -> str:
        return f"<BookingAssignment(booking={self.booking_id}, worker={self.worker_user_id})>"


class BookingEvent(Base):
    __tablename__ = "booking_events"

    id = Column(ID, primary_key=True, autoincrement=True)
    booking_id = Column(ID, ForeignKey("bookings.id"), nullable=False)
    actor_user_id = Column(ID, ForeignKey("users.id"), nullable=True)
    event_type = Column(String(40), nullable=False)
    event_metadata = Column(
        "metadata",
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_booking_events_booking_time", "booking_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<BookingEvent(booking={self.booking_id}, type={self.event_type})>"
