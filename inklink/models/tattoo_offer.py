# inklink/models/tattoo_offer.py
import uuid
from sqlalchemy import (
    Column,
    String,
    Text,
    Float,
    Numeric,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    CheckConstraint,
    UniqueConstraint,
    Index,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from inklink.db.base_class import Base


class TattooOffer(Base):
    __tablename__ = "tattoo_offers"

    id = Column(
        String, primary_key=True, default=lambda: f"offer_{uuid.uuid4().hex[:12]}"
    )
    request_id = Column(
        String, ForeignKey("tattoo_requests.id"), nullable=False, index=True
    )

    # Exactly one artist or one studio responds
    responder_id = Column(String, nullable=False, index=True)
    responder_type = Column(String(20), nullable=False)  # 'artist' or 'studio'

    message = Column(Text, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    estimated_duration = Column(Float, nullable=False)  # hours
    availability_start = Column(DateTime(timezone=True), nullable=True)
    availability_end = Column(DateTime(timezone=True), nullable=True)
    portfolio_images = Column(JSON, nullable=True, default=list)
    terms_conditions = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, server_default=text("'pending'"), default="pending")
    # Values: 'pending', 'accepted', 'rejected', 'withdrawn', 'completed', 'cancelled'

    # Payment marker, orthogonal to the workflow status above.
    # Only set while status is 'accepted' or 'completed'.
    is_paid = Column(Boolean, nullable=False, server_default=text("false"), default=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    request = relationship("TattooRequest", back_populates="offers")

    __table_args__ = (
        UniqueConstraint("request_id", "responder_id", name="uq_tattoo_offers_request_responder"),
        CheckConstraint("price > 0", name="ck_tattoo_offers_price_positive"),
        CheckConstraint("estimated_duration > 0", name="ck_tattoo_offers_duration_positive"),
        Index("ix_tattoo_offers_request_status", "request_id", "status"),
    )
