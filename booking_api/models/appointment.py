"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, text
from booking_api.database import Base


STATUS_SCHEDULED = "scheduled"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"

APPOINTMENT_STATUSES = (STATUS_SCHEDULED, STATUS_CONFIRMED, STATUS_CANCELLED, STATUS_COMPLETED)
INACTIVE_STATUSES = (STATUS_CANCELLED, STATUS_COMPLETED)

DEFAULT_DURATION_MINUTES = 60

_ACTIVE_SLOT_PREDICATE = text("status NOT IN ('cancelled', 'completed')")


class Appointment(Base):
    """Represents a booked customer appointment."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_scheduled_date", "scheduled_date"),
        # At most one active appointment may start at a given time.
        Index(
            "uq_appointments_active_slot",
            "scheduled_date",
            unique=True,
            postgresql_where=_ACTIVE_SLOT_PREDICATE,
            sqlite_where=_ACTIVE_SLOT_PREDICATE,
        ),
    )

    id = Column(Integer, primary_key=True)
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False)
    customer_address = Column(String)
    service_type = Column(String)
    scheduled_date = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, default=DEFAULT_DURATION_MINUTES)
    status = Column(String, nullable=False, default=STATUS_SCHEDULED)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
