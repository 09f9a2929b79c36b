"""Time-off model definitions."""

import uuid

from sqlalchemy import CheckConstraint, Column, Date, ForeignKey, String, Uuid

from barbershop.database import Base, UTCDateTime, utc_now

TIME_OFF_KINDS = ("time_off", "sick", "other")


class TimeOff(Base):
    """Whole days a barber is not taking appointments (end date inclusive)."""
    __tablename__ = "time_off"
    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_time_off_date_order"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    barber_id = Column(Uuid, ForeignKey("barbers.id", ondelete="CASCADE"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    kind = Column(String, nullable=False, default="time_off")
    notes = Column(String)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now)
