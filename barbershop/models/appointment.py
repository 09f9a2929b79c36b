"""Appointment model definitions."""

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, String, Uuid

from barbershop.database import Base, UTCDateTime, utc_now

CONFIRMED = "confirmed"
COMPLETED = "completed"
CANCELLED = "cancelled"
NO_SHOW = "no_show"
APPOINTMENT_STATUSES = (CONFIRMED, COMPLETED, CANCELLED, NO_SHOW)


class Appointment(Base):
    """Represents a booked chair for a barber over [start_at, end_at)."""
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("end_at > start_at", name="ck_appointments_time_order"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    barber_id = Column(Uuid, ForeignKey("barbers.id"), nullable=False)
    service_id = Column(Uuid, ForeignKey("services.id"), nullable=False)
    client_name = Column(String, nullable=False)
    client_phone = Column(String)
    client_email = Column(String)
    start_at = Column(UTCDateTime, nullable=False)
    end_at = Column(UTCDateTime, nullable=False)
    is_walk_in = Column(Boolean, nullable=False, default=False)
    status = Column(String, nullable=False, default=CONFIRMED)
    notes = Column(String)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now)
