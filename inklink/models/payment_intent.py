# inklink/models/payment_intent.py
from sqlalchemy import (
    Column,
    String,
    Integer,
    Text,
    DateTime,
    JSON,
    CheckConstraint,
    text,
)
from sqlalchemy.sql import func
from inklink.db.base_class import Base
import uuid


class PaymentIntent(Base):
    """
    Local record of an attempted payment, whichever processor executes it.

    The offer/appointment links live in ``intent_metadata`` on purpose: they
    are back-references, so deleting an intent never touches an offer.
    """

    __tablename__ = "payment_intents"

    id = Column(
        String, primary_key=True, default=lambda: f"pint_{uuid.uuid4().hex[:12]}"
    )
    user_id = Column(String, nullable=False, index=True)  # paying client

    # Financial
    amount = Column(Integer, nullable=False)  # minor currency units
    currency = Column(String(3), nullable=False)
    description = Column(Text, nullable=True)

    # Provider information
    processor = Column(String(20), nullable=False)  # 'stripe' or 'paypal'
    external_id = Column(String(255), nullable=True, unique=True)  # immutable once set

    status = Column(String(20), nullable=False, server_default=text("'pending'"), default="pending")
    # Values: 'pending', 'processing', 'completed', 'failed', 'cancelled'

    # Back-references: client_id, artist_id, offer_id, appointment_id, service_type
    intent_metadata = Column("metadata", JSON, nullable=False, default=dict)

    failure_reason = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_intents_amount_positive"),
    )

    @property
    def offer_id(self):
        return (self.intent_metadata or {}).get("offer_id")

    @property
    def responder_id(self):
        return (self.intent_metadata or {}).get("artist_id")

    @property
    def client_id(self):
        return (self.intent_metadata or {}).get("client_id")
