"""Barber model definitions."""

import uuid

from sqlalchemy import Boolean, Column, Integer, String, Uuid
from sqlalchemy.orm import relationship

from barbershop.database import Base, UTCDateTime, utc_now


class Barber(Base):
    """A bookable member of staff."""
    __tablename__ = "barbers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False)
    avatar_url = Column(String)
    email = Column(String)
    bio = Column(String)
    sort_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now)

    availability_windows = relationship(
        "AvailabilityWindow",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    time_off = relationship(
        "TimeOff",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
