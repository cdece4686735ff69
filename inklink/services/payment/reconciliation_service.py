# inklink/services/payment/reconciliation_service.py
"""
Payment intent creation and reconciliation.

Every confirmation (a capture response or a webhook delivery) is reduced to
a ``ProviderEvent`` and applied by ``reconcile``. The apply step is one
conditional UPDATE keyed on the external id: of any number of concurrent or
repeated deliveries, exactly one moves the intent, and only that one marks
the offer paid and stages the notification, all in the same commit.
"""
import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from inklink import crud
from inklink.constants.statuses import DELETABLE_PAYMENT_STATUSES, PaymentIntentStatus
from inklink.core.config import Settings
from inklink.core.exceptions import (
    AuthorizationError,
    ExternalDependencyError,
    IntegrityFailure,
    NotFoundError,
    ValidationError,
)
from inklink.models.payment_intent import PaymentIntent
from inklink.schemas.payment import (
    PaymentIntentCreate,
    ReconcileResult,
    WebhookAck,
    WebhookEventStatus,
)
from inklink.schemas.token import TokenPayload
from inklink.services.notification_emitter import NotificationEmitter
from inklink.utils.time import utcnow
from .provider_factory import PaymentProviderFactory
from .provider_interface import (
    CreatePaymentParams,
    CreatePaymentResult,
    PaymentError,
    PaymentOutcome,
    ProviderEvent,
)

logger = logging.getLogger(__name__)

DISCREPANCY_ACTION = "payment.reconciliation_discrepancy"

OUTCOME_TO_STATUS = {
    PaymentOutcome.SUCCEEDED: PaymentIntentStatus.COMPLETED,
    PaymentOutcome.FAILED: PaymentIntentStatus.FAILED,
    PaymentOutcome.CANCELLED: PaymentIntentStatus.CANCELLED,
}

# A fresh success may still complete an intent an earlier event failed;
# nothing moves a completed intent.
SUCCESS_FROM = (
    PaymentIntentStatus.PENDING.value,
    PaymentIntentStatus.PROCESSING.value,
    PaymentIntentStatus.FAILED.value,
    PaymentIntentStatus.CANCELLED.value,
)
FAILURE_FROM = (
    PaymentIntentStatus.PENDING.value,
    PaymentIntentStatus.PROCESSING.value,
)


def _provider_metadata(metadata: Dict[str, Any]) -> Dict[str, str]:
    # Processors only accept flat string metadata
    return {key: str(value) for key, value in metadata.items() if value is not None}


class PaymentReconciliationService:
    def __init__(
        self,
        db: Session,
        providers: PaymentProviderFactory,
        settings: Settings,
        emitter: Optional[NotificationEmitter] = None,
    ):
        self.db = db
        self.providers = providers
        self.settings = settings
        self.emitter = emitter or NotificationEmitter(db)

    # ------------------------------------------------------------------
    # Intent creation
    # ------------------------------------------------------------------

    async def create_intent(
        self, *, caller: TokenPayload, obj_in: PaymentIntentCreate
    ) -> Tuple[PaymentIntent, CreatePaymentResult]:
        """
        Persist a pending intent, then create the payment with the processor.

        On return the intent is ``processing`` with its external id set; on
        any processor failure or timeout it is ``failed`` and
        ExternalDependencyError is raised. It is never left ``pending``.
        """
        if obj_in.amount < self.settings.PAYMENT_MIN_AMOUNT:
            raise ValidationError(
                f"Minimum amount is {self.settings.PAYMENT_MIN_AMOUNT} "
                f"(smallest currency unit)",
                field="amount",
            )
        if obj_in.metadata.client_id != caller.sub:
            raise AuthorizationError("You are not authorized to create this payment")

        processor = obj_in.processor.value
        try:
            provider = self.providers.get_provider(processor)
        except ValueError as e:
            logger.error(str(e))
            raise ExternalDependencyError(processor, reason="provider not configured")

        metadata = obj_in.metadata.model_dump()
        intent = crud.payment_intent.create_pending(
            self.db,
            user_id=caller.sub,
            amount=obj_in.amount,
            currency=obj_in.currency,
            processor=processor,
            description=obj_in.description,
            metadata=metadata,
        )
        crud.audit_log.log_action(
            self.db,
            action="payment.intent_created",
            actor_type="user",
            actor_id=caller.sub,
            entity_type="payment_intent",
            entity_id=intent.id,
            new_state={"status": intent.status, "amount": intent.amount, "processor": processor},
        )

        params = CreatePaymentParams(
            payment_intent_id=intent.id,
            amount=intent.amount,
            currency=intent.currency,
            description=intent.description,
            metadata=_provider_metadata(metadata),
            return_url=f"{self.settings.APP_URL}/payments/success",
            cancel_url=f"{self.settings.APP_URL}/payments/cancel",
        )

        try:
            result = await asyncio.wait_for(
                provider.create_payment(params),
                timeout=self.settings.PAYMENT_PROVIDER_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            self._mark_creation_failed(intent.id, "timeout")
            logger.error(f"{processor} did not answer within the timeout for intent {intent.id}")
            raise ExternalDependencyError(processor, reason="timeout")
        except asyncio.CancelledError:
            self._mark_creation_failed(intent.id, "cancelled")
            raise
        except PaymentError as e:
            self._mark_creation_failed(intent.id, e.code)
            logger.error(f"{processor} rejected intent {intent.id}: {e.code} {e.message}")
            raise ExternalDependencyError(processor, reason=e.code)
        except Exception as e:
            self._mark_creation_failed(intent.id, "provider_error")
            logger.exception(f"Unexpected {processor} error for intent {intent.id}")
            raise ExternalDependencyError(processor, reason=type(e).__name__)

        try:
            intent.external_id = result.external_id
            intent.status = PaymentIntentStatus.PROCESSING.value
            self.db.add(intent)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            # The processor holds a payment we could not record
            self._record_discrepancy(
                reason="persistence_failed_after_create",
                payment_intent_id=intent.id,
                external_id=result.external_id,
                details={"error": str(e)},
            )
            self._mark_creation_failed(
                intent.id, "local_persistence_failed", external_id=result.external_id
            )
            raise IntegrityFailure("create_payment_intent")

        self.db.refresh(intent)
        logger.info(f"Payment intent {intent.id} created with {processor} as {intent.external_id}")
        return intent, result

    def _mark_creation_failed(
        self, intent_id: str, reason: str, external_id: Optional[str] = None
    ) -> None:
        """
        Flip a just-created intent to failed. Keeping the external id lets a
        later success confirmation for it still complete the intent.
        """
        try:
            intent = crud.payment_intent.get(self.db, id=intent_id)
            intent.status = PaymentIntentStatus.FAILED.value
            intent.failure_reason = reason
            if external_id and not intent.external_id:
                intent.external_id = external_id
            self.db.add(intent)
            crud.audit_log.log_action(
                self.db,
                action="payment.failed",
                actor_type="system",
                entity_type="payment_intent",
                entity_id=intent_id,
                external_id=external_id,
                new_state={"status": intent.status},
                change_details={"reason": reason},
                commit=False,
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.critical(
                f"Could not mark payment intent {intent_id} as failed ({reason}); "
                f"it needs manual repair",
                exc_info=True,
            )
            raise IntegrityFailure("mark_payment_failed")

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(
        self, event: ProviderEvent, *, source: str, actor_id: Optional[str] = None
    ) -> ReconcileResult:
        """
        Apply one confirmation to local state, exactly once per outcome.

        Repeated deliveries return ``duplicate=True`` and change nothing.
        Unknown external ids return an empty result.
        """
        intent = crud.payment_intent.get_by_external_id(self.db, external_id=event.external_id)
        if not intent:
            logger.warning(
                f"{source}: no payment intent for external id {event.external_id} "
                f"({event.event_type})"
            )
            return ReconcileResult()

        if event.outcome == PaymentOutcome.PENDING:
            logger.info(f"{source}: intent {intent.id} still pending at the processor")
            return ReconcileResult(payment_intent_id=intent.id, status=intent.status)

        try:
            if event.outcome == PaymentOutcome.SUCCEEDED:
                result = self._apply_success(intent, event, source, actor_id)
            else:
                result = self._apply_failure(intent, event, source, actor_id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            if event.outcome == PaymentOutcome.SUCCEEDED:
                self._record_discrepancy(
                    reason="persistence_failed_after_success",
                    payment_intent_id=intent.id,
                    external_id=event.external_id,
                    details={"source": source, "error": str(e)},
                )
            else:
                logger.error(f"Could not record {event.outcome.value} for intent {intent.id}: {e}")
            raise IntegrityFailure("reconcile_payment")

        if not result.duplicate:
            logger.info(
                f"{source}: intent {intent.id} reconciled to {result.status.value}"
                + (" (offer marked paid)" if result.offer_marked_paid else "")
            )
        return result

    def _apply_success(
        self,
        intent: PaymentIntent,
        event: ProviderEvent,
        source: str,
        actor_id: Optional[str],
    ) -> ReconcileResult:
        previous_status = intent.status
        now = utcnow()
        moved = crud.payment_intent.transition_by_external_id(
            self.db,
            external_id=event.external_id,
            from_statuses=SUCCESS_FROM,
            values={
                "status": PaymentIntentStatus.COMPLETED.value,
                "completed_at": now,
                "failure_reason": None,
            },
        )
        if not moved:
            logger.info(f"{source}: duplicate success for intent {intent.id}, ignoring")
            return ReconcileResult(
                payment_intent_id=intent.id,
                status=PaymentIntentStatus.COMPLETED,
                duplicate=True,
            )

        self.db.refresh(intent)
        offer_marked_paid = False
        offer_id = intent.offer_id
        if offer_id:
            offer_marked_paid = bool(
                crud.tattoo_offer.mark_paid_if_payable(self.db, offer_id=offer_id, paid_at=now)
            )
            if not offer_marked_paid:
                offer = crud.tattoo_offer.get(self.db, offer_id)
                self._stage_offer_discrepancy(intent, offer_id, offer, source)

        self.emitter.payment_received(intent)
        crud.audit_log.log_action(
            self.db,
            action="payment.succeeded",
            actor_type=source,
            actor_id=actor_id,
            entity_type="payment_intent",
            entity_id=intent.id,
            external_id=event.external_id,
            previous_state={"status": previous_status},
            new_state={"status": intent.status, "offer_marked_paid": offer_marked_paid},
            change_details={"event_id": event.event_id, "event_type": event.event_type},
            commit=False,
        )
        return ReconcileResult(
            payment_intent_id=intent.id,
            status=PaymentIntentStatus.COMPLETED,
            offer_marked_paid=offer_marked_paid,
        )

    def _stage_offer_discrepancy(self, intent, offer_id, offer, source) -> None:
        if offer is None:
            reason = "offer_missing"
        elif offer.is_paid:
            reason = "offer_already_paid"
        else:
            reason = f"offer_not_payable_in_status_{offer.status}"
        logger.critical(
            f"Reconciliation discrepancy: intent {intent.id} completed but offer "
            f"{offer_id} was not marked paid ({reason})"
        )
        crud.audit_log.log_action(
            self.db,
            action=DISCREPANCY_ACTION,
            actor_type=source,
            entity_type="offer",
            entity_id=offer_id,
            external_id=intent.external_id,
            change_details={"reason": reason, "payment_intent_id": intent.id},
            commit=False,
        )

    def _apply_failure(
        self,
        intent: PaymentIntent,
        event: ProviderEvent,
        source: str,
        actor_id: Optional[str],
    ) -> ReconcileResult:
        target = OUTCOME_TO_STATUS[event.outcome]
        previous_status = intent.status
        moved = crud.payment_intent.transition_by_external_id(
            self.db,
            external_id=event.external_id,
            from_statuses=FAILURE_FROM,
            values={
                "status": target.value,
                "failure_reason": event.failure_reason or event.outcome.value,
            },
        )
        if not moved:
            self.db.refresh(intent)
            if intent.status == PaymentIntentStatus.COMPLETED.value:
                # Never un-complete; someone has to look at this one
                logger.critical(
                    f"Reconciliation discrepancy: completed intent {intent.id} received "
                    f"{event.outcome.value} ({event.event_type})"
                )
                crud.audit_log.log_action(
                    self.db,
                    action=DISCREPANCY_ACTION,
                    actor_type=source,
                    entity_type="payment_intent",
                    entity_id=intent.id,
                    external_id=event.external_id,
                    change_details={
                        "reason": f"{event.outcome.value}_after_completed",
                        "event_id": event.event_id,
                    },
                    commit=False,
                )
            else:
                logger.info(f"{source}: duplicate {event.outcome.value} for intent {intent.id}")
            return ReconcileResult(
                payment_intent_id=intent.id,
                status=PaymentIntentStatus(intent.status),
                duplicate=True,
            )

        self.db.refresh(intent)
        # The offer's workflow status is left alone; the client is told
        if intent.offer_id:
            self.emitter.payment_cancelled(intent, event.outcome.value)

        crud.audit_log.log_action(
            self.db,
            action=f"payment.{target.value}",
            actor_type=source,
            actor_id=actor_id,
            entity_type="payment_intent",
            entity_id=intent.id,
            external_id=event.external_id,
            previous_state={"status": previous_status},
            new_state={"status": intent.status},
            change_details={"event_id": event.event_id, "reason": intent.failure_reason},
            commit=False,
        )
        return ReconcileResult(payment_intent_id=intent.id, status=target)

    def _record_discrepancy(
        self,
        *,
        reason: str,
        payment_intent_id: str,
        external_id: Optional[str],
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log and audit an external payment the local store does not reflect.
        Written through a separate session because the request session has
        just failed.
        """
        logger.critical(
            f"Reconciliation discrepancy ({reason}): intent {payment_intent_id}, "
            f"external id {external_id}, details={details}"
        )
        audit_session = Session(bind=self.db.get_bind())
        try:
            crud.audit_log.log_action(
                audit_session,
                action=DISCREPANCY_ACTION,
                actor_type="system",
                entity_type="payment_intent",
                entity_id=payment_intent_id,
                external_id=external_id,
                change_details={"reason": reason, **(details or {})},
            )
        except SQLAlchemyError:
            audit_session.rollback()
            logger.critical(
                f"Could not write discrepancy audit row for intent {payment_intent_id}",
                exc_info=True,
            )
        finally:
            audit_session.close()

    # ------------------------------------------------------------------
    # Confirmation entry points
    # ------------------------------------------------------------------

    async def capture(
        self, *, caller: TokenPayload, processor: str, external_id: str
    ) -> ReconcileResult:
        try:
            provider = self.providers.get_provider(processor)
        except ValueError:
            raise ValidationError(f"Payment processor '{processor}' is not available")

        intent = crud.payment_intent.get_by_external_id(self.db, external_id=external_id)
        if not intent:
            raise NotFoundError("Payment intent", external_id)
        if intent.user_id != caller.sub:
            raise AuthorizationError("You are not authorized to capture this payment")
        if intent.processor != processor:
            raise ValidationError(f"Payment was not created with {processor}")

        if intent.status == PaymentIntentStatus.COMPLETED.value:
            logger.info(f"Capture for already completed intent {intent.id}, nothing to do")
            return ReconcileResult(
                payment_intent_id=intent.id,
                status=PaymentIntentStatus.COMPLETED,
                duplicate=True,
            )

        try:
            event = await asyncio.wait_for(
                provider.capture_payment(external_id),
                timeout=self.settings.PAYMENT_PROVIDER_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            self.reconcile(
                ProviderEvent(external_id, PaymentOutcome.FAILED, failure_reason="capture_timeout"),
                source="capture",
                actor_id=caller.sub,
            )
            raise ExternalDependencyError(processor, reason="timeout")
        except PaymentError as e:
            logger.error(f"{processor} capture of {external_id} failed: {e.code} {e.message}")
            self.reconcile(
                ProviderEvent(external_id, PaymentOutcome.FAILED, failure_reason=e.code),
                source="capture",
                actor_id=caller.sub,
            )
            raise ExternalDependencyError(processor, reason=e.code)

        return self.reconcile(event, source="capture", actor_id=caller.sub)

    async def handle_webhook(
        self,
        *,
        payload: bytes,
        headers: Mapping[str, str],
        ip_address: Optional[str] = None,
    ) -> WebhookAck:
        """
        Verify, store and reconcile one webhook delivery.

        A redelivery of an event that was already processed is acknowledged
        without touching anything.
        """
        provider = self.providers.detect_from_headers(headers)
        if provider is None:
            raise ValidationError("Missing webhook signature")
        if not await provider.verify_webhook(payload, headers):
            logger.warning(f"Invalid {provider.code} webhook signature from {ip_address}")
            raise ValidationError("Invalid webhook signature")

        try:
            event = provider.parse_webhook_event(payload)
        except PaymentError as e:
            raise ValidationError(e.message)

        if event is None:
            return WebhookAck(status=WebhookEventStatus.skipped)

        event_id = event.event_id or f"{event.external_id}:{event.event_type}"
        stored = crud.webhook_event.get_by_provider_event_id(
            self.db, provider_code=provider.code, provider_event_id=event_id
        )
        if stored and stored.is_processed:
            logger.info(f"Webhook event {event_id} already processed, acknowledging")
            return WebhookAck(duplicate=True, status=WebhookEventStatus(stored.status))

        if stored:
            stored = crud.webhook_event.reset_for_retry(self.db, db_obj=stored)
        else:
            try:
                stored = crud.webhook_event.create_event(
                    self.db,
                    provider_code=provider.code,
                    provider_event_id=event_id,
                    provider_event_type=event.event_type or "unknown",
                    external_id=event.external_id,
                    payload=event.raw,
                    signature_verified=True,
                    ip_address=ip_address,
                )
            except IntegrityError:
                # A parallel delivery of the same event got there first
                self.db.rollback()
                logger.info(f"Webhook event {event_id} is being handled by another delivery")
                return WebhookAck(duplicate=True, status=WebhookEventStatus.processing)

        try:
            result = self.reconcile(event, source="webhook")
        except IntegrityFailure as e:
            crud.webhook_event.mark_failed(self.db, event_id=stored.id, error=e.message)
            raise

        if result.payment_intent_id is None:
            crud.webhook_event.mark_skipped(
                self.db, event_id=stored.id, reason="unknown external id"
            )
            return WebhookAck(status=WebhookEventStatus.skipped)

        crud.webhook_event.mark_processed(
            self.db, event_id=stored.id, related_payment_intent_id=result.payment_intent_id
        )
        return WebhookAck(duplicate=result.duplicate, status=WebhookEventStatus.processed)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_payment(self, *, caller: TokenPayload, payment_intent_id: str) -> PaymentIntent:
        intent = crud.payment_intent.get(self.db, id=payment_intent_id)
        if not intent:
            raise NotFoundError("Payment intent", payment_intent_id)
        if caller.sub not in (intent.user_id, intent.responder_id):
            raise AuthorizationError("You do not have access to this payment")
        return intent

    def list_payments(
        self,
        *,
        caller: TokenPayload,
        direction: Optional[str] = None,
        status: Optional[str] = None,
        processor: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[PaymentIntent], int]:
        """
        Payments the caller made (``direction='sent'``), payments naming them
        as the paid artist (``'received'``), or both.
        """
        items = crud.payment_intent.get_multi_by_user(
            self.db,
            user_id=caller.sub,
            direction=direction,
            status=status,
            processor=processor,
            skip=skip,
            limit=limit,
        )
        total = crud.payment_intent.count_by_user(
            self.db, user_id=caller.sub, direction=direction, status=status, processor=processor
        )
        return items, total

    def stats(self, *, caller: TokenPayload) -> Dict[str, Any]:
        return {
            "sent": crud.payment_intent.get_stats(self.db, user_id=caller.sub, direction="sent"),
            "received": crud.payment_intent.get_stats(
                self.db, user_id=caller.sub, direction="received"
            ),
        }

    def delete_payment(self, *, caller: TokenPayload, payment_intent_id: str) -> None:
        """
        Remove an intent that never reached the processor or did not go
        through. Linked offers are left as they are.
        """
        intent = crud.payment_intent.get(self.db, id=payment_intent_id)
        if not intent:
            raise NotFoundError("Payment intent", payment_intent_id)
        if intent.user_id != caller.sub:
            raise AuthorizationError("You can only delete your own payments")

        removed = crud.payment_intent.remove_if(
            self.db, id=payment_intent_id, statuses=DELETABLE_PAYMENT_STATUSES
        )
        if not removed:
            self.db.rollback()
            raise ValidationError("Cannot delete a completed or processing payment")
        self.db.commit()
        logger.info(f"Payment intent {payment_intent_id} deleted by {caller.sub}")

    def client_config(self, *, processor: str) -> Dict[str, Any]:
        """Public settings a browser needs to start a checkout with ``processor``."""
        try:
            provider = self.providers.get_provider(processor)
        except ValueError as e:
            logger.error(str(e))
            raise ExternalDependencyError(processor, reason="provider not configured")

        public_key = provider.get_publishable_key()
        if not public_key:
            logger.error(f"{processor} has no public key configured")
            raise ExternalDependencyError(processor, reason="public key not configured")

        return {
            "processor": provider.code,
            "public_key": public_key,
            "environment": self.settings.PAYPAL_ENVIRONMENT if provider.code == "paypal" else None,
        }
