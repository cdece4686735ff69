# inklink/models/__init__.py
# Import all models to ensure SQLAlchemy can resolve relationships
# Order matters for dependencies - import base models first

from inklink.db.base_class import Base
from inklink.models.profile import Profile
from inklink.models.tattoo_request import TattooRequest
from inklink.models.tattoo_offer import TattooOffer
from inklink.models.appointment import Appointment

# Payment models
from inklink.models.payment_intent import PaymentIntent
from inklink.models.payment_webhook_event import PaymentWebhookEvent
from inklink.models.payment_audit_log import PaymentAuditLog

from inklink.models.notification import Notification

__all__ = [
    "Base",
    "Profile",
    "TattooRequest",
    "TattooOffer",
    "Appointment",
    "PaymentIntent",
    "PaymentWebhookEvent",
    "PaymentAuditLog",
    "Notification",
]
