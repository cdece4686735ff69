# inklink/services/notification_emitter.py
"""
Builds notification rows as a side effect of state transitions.

Every emit stages the row in the caller's session, so the notification
commits or rolls back together with the transition that caused it. The
dedupe key is unique in the store: a transition replayed by a racing
request fails on commit instead of notifying twice.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from inklink import crud
from inklink.constants.statuses import NotificationType
from inklink.models.notification import Notification
from inklink.models.payment_intent import PaymentIntent
from inklink.models.tattoo_offer import TattooOffer
from inklink.models.tattoo_request import TattooRequest
from inklink.models.appointment import Appointment
from inklink.utils.currency import minor_to_decimal_string

logger = logging.getLogger(__name__)


def format_amount(amount_minor: int, currency: str) -> str:
    return f"{minor_to_decimal_string(amount_minor, currency)} {currency}"


class NotificationEmitter:
    def __init__(self, db: Session):
        self.db = db

    def _emit(
        self,
        *,
        recipient_id: Optional[str],
        type: NotificationType,
        title: str,
        message: str,
        dedupe_key: str,
        sender_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[Notification]:
        if not recipient_id:
            logger.warning(f"No recipient for {type.value} notification ({dedupe_key})")
            return None

        existing = crud.notification.get_by_dedupe_key(self.db, dedupe_key=dedupe_key)
        if existing:
            logger.info(f"Notification {dedupe_key} already recorded, skipping")
            return existing

        notification = crud.notification.add(
            self.db,
            recipient_id=recipient_id,
            sender_id=sender_id,
            type=type.value,
            title=title,
            message=message,
            payload=payload,
            dedupe_key=dedupe_key,
        )
        logger.info(f"Staged {type.value} notification for {recipient_id}")
        return notification

    def new_offer(self, offer: TattooOffer, request: TattooRequest) -> Optional[Notification]:
        return self._emit(
            recipient_id=request.client_id,
            sender_id=offer.responder_id,
            type=NotificationType.NEW_OFFER,
            title="New offer received",
            message=f"You have a new offer for \"{request.title}\"",
            dedupe_key=f"new_offer:{offer.id}",
            payload={
                "offer_id": offer.id,
                "request_id": request.id,
                "price": str(offer.price),
            },
        )

    def offer_accepted(self, offer: TattooOffer, request: TattooRequest) -> Optional[Notification]:
        return self._emit(
            recipient_id=offer.responder_id,
            sender_id=request.client_id,
            type=NotificationType.OFFER_ACCEPTED,
            title="Offer accepted",
            message=f"Your offer for \"{request.title}\" was accepted",
            dedupe_key=f"offer_accepted:{offer.id}",
            payload={"offer_id": offer.id, "request_id": request.id},
        )

    def offer_rejected(self, offer: TattooOffer, request: TattooRequest) -> Optional[Notification]:
        return self._emit(
            recipient_id=offer.responder_id,
            sender_id=request.client_id,
            type=NotificationType.OFFER_REJECTED,
            title="Offer declined",
            message=f"Your offer for \"{request.title}\" was declined",
            dedupe_key=f"offer_rejected:{offer.id}",
            payload={"offer_id": offer.id, "request_id": request.id},
        )

    def appointment_confirmed(self, appointment: Appointment) -> Optional[Notification]:
        return self._emit(
            recipient_id=appointment.client_id,
            sender_id=appointment.profile_id,
            type=NotificationType.APPOINTMENT_CONFIRMED,
            title="Appointment confirmed",
            message=f"Your appointment on {appointment.start_at:%Y-%m-%d %H:%M} UTC is confirmed",
            dedupe_key=f"appointment_confirmed:{appointment.id}",
            payload={"appointment_id": appointment.id},
        )

    def payment_received(self, intent: PaymentIntent) -> Optional[Notification]:
        metadata = intent.intent_metadata or {}
        return self._emit(
            recipient_id=metadata.get("artist_id"),
            sender_id=intent.user_id,
            type=NotificationType.PAYMENT_RECEIVED,
            title="Payment received",
            message=f"You have received a payment of {format_amount(intent.amount, intent.currency)}",
            dedupe_key=f"payment_received:{intent.id}",
            payload={
                "payment_intent_id": intent.id,
                "amount": intent.amount,
                "currency": intent.currency,
                "client_id": metadata.get("client_id"),
                "offer_id": metadata.get("offer_id"),
            },
        )

    def payment_cancelled(self, intent: PaymentIntent, outcome: str) -> Optional[Notification]:
        metadata = intent.intent_metadata or {}
        return self._emit(
            recipient_id=metadata.get("client_id") or intent.user_id,
            type=NotificationType.PAYMENT_CANCELLED,
            title="Payment not completed",
            message=(
                f"Your payment of {format_amount(intent.amount, intent.currency)} "
                f"was not completed ({outcome})"
            ),
            dedupe_key=f"payment_cancelled:{intent.id}:{outcome}",
            payload={
                "payment_intent_id": intent.id,
                "offer_id": metadata.get("offer_id"),
                "outcome": outcome,
            },
        )
