# inklink/models/appointment.py
import uuid
from sqlalchemy import (
    Column,
    String,
    Text,
    Float,
    Numeric,
    DateTime,
    ForeignKey,
    CheckConstraint,
    Index,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from inklink.db.base_class import Base


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(
        String, primary_key=True, default=lambda: f"appt_{uuid.uuid4().hex[:12]}"
    )
    profile_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    client_id = Column(String, nullable=False, index=True)
    offer_id = Column(
        String, ForeignKey("tattoo_offers.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Half-open interval [start_at, end_at)
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False)
    duration_hours = Column(Float, nullable=False)

    status = Column(String(20), nullable=False, server_default=text("'pending'"), default="pending")
    # Values: 'pending', 'confirmed', 'completed', 'cancelled', 'no_show'

    service_type = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    estimated_price = Column(Numeric(10, 2), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    profile = relationship("Profile")
    offer = relationship("TattooOffer")

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="ck_appointments_interval"),
        # WHERE profile_id = ? AND status IN (...) AND start_at < ? AND end_at > ?
        Index("ix_appointments_profile_status_start", "profile_id", "status", "start_at"),
    )
