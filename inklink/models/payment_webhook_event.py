# inklink/models/payment_webhook_event.py
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    Text,
    ForeignKey,
    JSON,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from inklink.db.base_class import Base
import uuid


class PaymentWebhookEvent(Base):
    __tablename__ = "payment_webhook_events"

    id = Column(
        String, primary_key=True, default=lambda: f"whe_{uuid.uuid4().hex[:12]}"
    )

    # Provider information
    provider_code = Column(String(50), nullable=False)
    provider_event_id = Column(String(255), nullable=False)  # Provider's event ID
    provider_event_type = Column(String(100), nullable=False)  # e.g., 'payment_intent.succeeded'
    external_id = Column(String(255), nullable=True, index=True)  # payment reference it concerns

    # Processing status
    status = Column(String(50), nullable=False, server_default=text("'pending'"), default="pending")
    # Values: 'pending', 'processing', 'processed', 'failed', 'skipped'

    payload = Column(JSON, nullable=False)
    signature_verified = Column(Boolean, server_default=text("false"), default=False, nullable=False)

    # Processing details
    processed_at = Column(DateTime(timezone=True), nullable=True)
    processing_error = Column(Text, nullable=True)

    related_payment_intent_id = Column(
        String, ForeignKey("payment_intents.id", ondelete="SET NULL"), nullable=True
    )

    # Request metadata
    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    ip_address = Column(String(45), nullable=True)

    payment_intent = relationship("PaymentIntent", foreign_keys=[related_payment_intent_id])

    __table_args__ = (
        UniqueConstraint(
            "provider_code", "provider_event_id", name="uq_payment_webhook_events_provider_event"
        ),
    )

    @property
    def is_processed(self) -> bool:
        """Check if event has been processed."""
        return self.status in ("processed", "skipped")
