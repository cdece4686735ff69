# inklink/constants/statuses.py
"""
Status values and allowed-transition tables for every workflow entity.

Anything not listed in a transition table is rejected, whoever the caller is.
"""

from enum import Enum
from typing import Dict, FrozenSet


class RequestStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OfferStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class PaymentIntentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentProcessor(str, Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"


class ResponderType(str, Enum):
    ARTIST = "artist"
    STUDIO = "studio"


class UserRole(str, Enum):
    CLIENT = "client"
    ARTIST = "artist"
    STUDIO = "studio"


class NotificationType(str, Enum):
    NEW_OFFER = "new_offer"
    OFFER_ACCEPTED = "offer_accepted"
    OFFER_REJECTED = "offer_rejected"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_CANCELLED = "payment_cancelled"
    APPOINTMENT_REMINDER = "appointment_reminder"
    APPOINTMENT_CONFIRMED = "appointment_confirmed"
    SYSTEM_NOTIFICATION = "system_notification"


OFFER_TRANSITIONS: Dict[OfferStatus, FrozenSet[OfferStatus]] = {
    OfferStatus.PENDING: frozenset(
        {OfferStatus.ACCEPTED, OfferStatus.REJECTED, OfferStatus.WITHDRAWN}
    ),
    OfferStatus.ACCEPTED: frozenset({OfferStatus.COMPLETED, OfferStatus.CANCELLED}),
    OfferStatus.REJECTED: frozenset(),
    OfferStatus.WITHDRAWN: frozenset(),
    OfferStatus.COMPLETED: frozenset(),
    OfferStatus.CANCELLED: frozenset(),
}

REQUEST_TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.OPEN: frozenset({RequestStatus.IN_PROGRESS, RequestStatus.CANCELLED}),
    RequestStatus.IN_PROGRESS: frozenset(
        {RequestStatus.COMPLETED, RequestStatus.CANCELLED}
    ),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

APPOINTMENT_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {
            AppointmentStatus.COMPLETED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.NO_SHOW,
        }
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

# Appointments in these states occupy their slot
BLOCKING_APPOINTMENT_STATUSES = (
    AppointmentStatus.PENDING.value,
    AppointmentStatus.CONFIRMED.value,
)

# Offers that may carry the paid marker
PAYABLE_OFFER_STATUSES = (
    OfferStatus.ACCEPTED.value,
    OfferStatus.COMPLETED.value,
)

# Intents their payer may still delete
DELETABLE_PAYMENT_STATUSES = (
    PaymentIntentStatus.PENDING.value,
    PaymentIntentStatus.FAILED.value,
    PaymentIntentStatus.CANCELLED.value,
)


def can_transition(table: Dict, current: str, target: str) -> bool:
    """Check a transition against one of the tables above."""
    enum_type = type(next(iter(table)))
    try:
        current_status = enum_type(current)
        target_status = enum_type(target)
    except ValueError:
        return False
    return target_status in table.get(current_status, frozenset())
