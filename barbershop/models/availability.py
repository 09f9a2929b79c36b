"""Availability model definitions."""

import uuid

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, Uuid

from barbershop.database import Base, UTCDateTime, utc_now


class AvailabilityWindow(Base):
    """Recurring weekly working window for a barber, in store-local minutes."""
    __tablename__ = "availability_windows"
    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_day_of_week"),
        CheckConstraint("end_minutes > start_minutes", name="ck_availability_window_order"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    barber_id = Column(Uuid, ForeignKey("barbers.id", ondelete="CASCADE"), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday .. 6=Saturday
    start_minutes = Column(Integer, nullable=False)
    end_minutes = Column(Integer, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now)
