# inklink/models/profile.py
import uuid
from sqlalchemy import Column, String, Boolean, Integer, DateTime, text
from sqlalchemy.sql import func
from inklink.db.base_class import Base


class Profile(Base):
    """
    Artist or studio profile as seen by the transaction engine.

    Profiles are managed by the profile service; this service only reads them
    and bumps ``booking_version`` to serialize bookings per profile.
    """

    __tablename__ = "profiles"

    id = Column(
        String, primary_key=True, default=lambda: f"prof_{uuid.uuid4().hex[:12]}"
    )
    profile_type = Column(String(20), nullable=False)  # 'artist' or 'studio'
    display_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, server_default=text("true"), default=True)

    # Incremented inside every booking transaction; the row lock it takes
    # is what serializes concurrent bookings for the same profile.
    booking_version = Column(Integer, nullable=False, server_default=text("0"), default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
