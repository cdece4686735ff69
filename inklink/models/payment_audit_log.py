# inklink/models/payment_audit_log.py
from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.sql import func
from inklink.db.base_class import Base
import uuid


class PaymentAuditLog(Base):
    __tablename__ = "payment_audit_logs"

    id = Column(
        String, primary_key=True, default=lambda: f"pal_{uuid.uuid4().hex[:12]}"
    )

    # What happened
    action = Column(String(100), nullable=False, index=True)
    # Values: 'payment.intent_created', 'payment.failed', 'payment.succeeded',
    #         'payment.cancelled', 'payment.reconciliation_discrepancy', ...

    # Who did it
    actor_type = Column(String(50), nullable=False)  # 'user', 'system', 'webhook', 'capture'
    actor_id = Column(String, nullable=True)

    # What was affected
    entity_type = Column(String(50), nullable=False)  # 'payment_intent', 'offer'
    entity_id = Column(String, nullable=False)
    external_id = Column(String(255), nullable=True)

    previous_state = Column(JSON, nullable=True)
    new_state = Column(JSON, nullable=True)
    change_details = Column(JSON, nullable=True)

    # Immutable timestamp
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
