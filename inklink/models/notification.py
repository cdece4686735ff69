# inklink/models/notification.py
"""
Notification intents produced by state transitions.

Delivery (push, email) belongs to an external worker that reads these rows;
the only mutation allowed afterwards is the recipient flipping ``is_read``.
"""
import uuid
from sqlalchemy import Column, String, Text, Boolean, DateTime, JSON, Index, text
from sqlalchemy.sql import func
from inklink.db.base_class import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(
        String, primary_key=True, default=lambda: f"ntf_{uuid.uuid4().hex[:12]}"
    )
    recipient_id = Column(String, nullable=False, index=True)
    sender_id = Column(String, nullable=True)

    type = Column(String(50), nullable=False)  # see NotificationType
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    payload = Column(JSON, nullable=True, default=dict)

    is_read = Column(Boolean, nullable=False, server_default=text("false"), default=False)

    # One row per (type, subject); a replayed transition cannot notify twice
    dedupe_key = Column(String(255), nullable=True, unique=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_notifications_recipient_read_created", "recipient_id", "is_read", "created_at"),
    )
