# inklink/crud/crud_webhook_event.py
from typing import Any, Dict, Optional
from datetime import datetime, timezone
from sqlalchemy.orm import Session
from sqlalchemy import and_

from inklink.models.payment_webhook_event import PaymentWebhookEvent
from inklink.schemas.payment import WebhookEventStatus


class CRUDWebhookEvent:
    """CRUD operations for PaymentWebhookEvent model."""

    def __init__(self, model):
        self.model = model

    def get(self, db: Session, *, id: str) -> Optional[PaymentWebhookEvent]:
        return db.query(self.model).filter(self.model.id == id).first()

    def get_by_provider_event_id(
        self, db: Session, *, provider_code: str, provider_event_id: str
    ) -> Optional[PaymentWebhookEvent]:
        """Get a webhook event by provider's event ID."""
        return (
            db.query(self.model)
            .filter(
                and_(
                    self.model.provider_code == provider_code,
                    self.model.provider_event_id == provider_event_id,
                )
            )
            .first()
        )

    def create_event(
        self,
        db: Session,
        *,
        provider_code: str,
        provider_event_id: str,
        provider_event_type: str,
        external_id: Optional[str],
        payload: Dict[str, Any],
        signature_verified: bool,
        ip_address: Optional[str] = None,
    ) -> PaymentWebhookEvent:
        """
        Create a new webhook event record.

        Raises IntegrityError when the same provider event was stored by a
        concurrent delivery; the caller treats that as a duplicate.
        """
        db_obj = self.model(
            provider_code=provider_code,
            provider_event_id=provider_event_id,
            provider_event_type=provider_event_type,
            external_id=external_id,
            payload=payload,
            signature_verified=signature_verified,
            ip_address=ip_address,
            status=WebhookEventStatus.processing.value,
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def mark_processed(
        self,
        db: Session,
        *,
        event_id: str,
        related_payment_intent_id: Optional[str] = None,
    ) -> Optional[PaymentWebhookEvent]:
        """Mark an event as processed."""
        event = self.get(db, id=event_id)
        if not event:
            return None

        event.status = WebhookEventStatus.processed.value
        event.processed_at = datetime.now(timezone.utc)
        event.processing_error = None
        if related_payment_intent_id:
            event.related_payment_intent_id = related_payment_intent_id

        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    def mark_failed(
        self, db: Session, *, event_id: str, error: str
    ) -> Optional[PaymentWebhookEvent]:
        """Mark an event as failed so a provider redelivery can retry it."""
        event = self.get(db, id=event_id)
        if not event:
            return None

        event.status = WebhookEventStatus.failed.value
        event.processing_error = error

        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    def mark_skipped(
        self, db: Session, *, event_id: str, reason: str
    ) -> Optional[PaymentWebhookEvent]:
        """Mark an event as skipped."""
        event = self.get(db, id=event_id)
        if not event:
            return None

        event.status = WebhookEventStatus.skipped.value
        event.processing_error = reason
        event.processed_at = datetime.now(timezone.utc)

        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    def reset_for_retry(
        self, db: Session, *, db_obj: PaymentWebhookEvent
    ) -> PaymentWebhookEvent:
        """A failed event redelivered by the provider is processed again."""
        db_obj.status = WebhookEventStatus.processing.value
        db_obj.processing_error = None
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj


webhook_event = CRUDWebhookEvent(PaymentWebhookEvent)
