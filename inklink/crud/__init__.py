# inklink/crud/__init__.py

from .crud_appointment import appointment
from .crud_audit_log import audit_log
from .crud_notification import notification
from .crud_payment_intent import payment_intent
from .crud_profile import profile
from .crud_tattoo_offer import tattoo_offer
from .crud_tattoo_request import tattoo_request
from .crud_webhook_event import webhook_event
