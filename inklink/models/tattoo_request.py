# inklink/models/tattoo_request.py
import uuid
from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    JSON,
    CheckConstraint,
    Index,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from inklink.db.base_class import Base


class TattooRequest(Base):
    __tablename__ = "tattoo_requests"

    id = Column(
        String, primary_key=True, default=lambda: f"req_{uuid.uuid4().hex[:12]}"
    )
    client_id = Column(String, nullable=False, index=True)

    # Optional targeting: only this artist/studio may respond
    artist_id = Column(String, nullable=True, index=True)
    studio_id = Column(String, nullable=True, index=True)

    # Descriptive fields (opaque to the transaction engine)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    style = Column(String(100), nullable=False)
    size = Column(String(100), nullable=False)
    placement = Column(String(100), nullable=False)
    reference_images = Column(JSON, nullable=True, default=list)
    preferred_date = Column(DateTime(timezone=True), nullable=True)
    deadline = Column(DateTime(timezone=True), nullable=True)

    # Budget in whole currency units
    budget_min = Column(Integer, nullable=True)
    budget_max = Column(Integer, nullable=True)

    status = Column(String(20), nullable=False, server_default=text("'open'"), default="open")
    # Values: 'open', 'in_progress', 'completed', 'cancelled'

    # Soft delete
    is_active = Column(Boolean, nullable=False, server_default=text("true"), default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    offers = relationship("TattooOffer", back_populates="request")

    __table_args__ = (
        CheckConstraint(
            "budget_min IS NULL OR budget_max IS NULL OR budget_min <= budget_max",
            name="ck_tattoo_requests_budget_range",
        ),
        Index("ix_tattoo_requests_status_active", "status", "is_active"),
    )

    @property
    def is_targeted(self) -> bool:
        return bool(self.artist_id or self.studio_id)
