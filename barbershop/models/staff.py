"""Staff allow-list model definitions."""

from sqlalchemy import Column, String

from barbershop.database import Base, UTCDateTime, utc_now


class StaffMember(Base):
    """An email allowed into the staff endpoints."""
    __tablename__ = "staff_allowlist"

    email = Column(String, primary_key=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
