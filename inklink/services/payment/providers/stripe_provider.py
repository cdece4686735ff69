# inklink/services/payment/providers/stripe_provider.py
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import stripe

from ..provider_interface import (
    CreatePaymentParams,
    CreatePaymentResult,
    PaymentError,
    PaymentOutcome,
    PaymentProviderInterface,
    ProviderEvent,
)

logger = logging.getLogger(__name__)


@dataclass
class StripeConfig:
    """Configuration for Stripe provider."""
    secret_key: str
    webhook_secret: str
    publishable_key: Optional[str] = None
    api_version: str = "2024-06-20"
    max_retries: int = 2


# Mapping from Stripe payment intent status to a payment outcome
STRIPE_STATUS_MAP: Dict[str, PaymentOutcome] = {
    "requires_payment_method": PaymentOutcome.PENDING,
    "requires_confirmation": PaymentOutcome.PENDING,
    "requires_action": PaymentOutcome.PENDING,
    "processing": PaymentOutcome.PENDING,
    "requires_capture": PaymentOutcome.PENDING,
    "succeeded": PaymentOutcome.SUCCEEDED,
    "canceled": PaymentOutcome.CANCELLED,
}

# Stripe event types that carry a payment outcome
STRIPE_EVENT_MAP: Dict[str, PaymentOutcome] = {
    "payment_intent.succeeded": PaymentOutcome.SUCCEEDED,
    "payment_intent.payment_failed": PaymentOutcome.FAILED,
    "payment_intent.canceled": PaymentOutcome.CANCELLED,
    "payment_intent.processing": PaymentOutcome.PENDING,
}


class StripeProvider(PaymentProviderInterface):
    """
    Stripe implementation of PaymentProviderInterface.

    SECURITY NOTES:
    - Never log full card details
    - Always verify webhook signatures
    - Use idempotency keys for all mutations

    Each provider owns a ``StripeClient`` instead of configuring the global
    ``stripe`` module, so several configurations can live in one process.
    SDK calls are blocking and run in a worker thread.
    """

    def __init__(self, config: StripeConfig, client: Optional[stripe.StripeClient] = None):
        """Initialize Stripe provider with configuration."""
        self._config = config
        self._client = client or stripe.StripeClient(
            config.secret_key,
            stripe_version=config.api_version,
            max_network_retries=config.max_retries,
        )

    @property
    def code(self) -> str:
        return "stripe"

    @property
    def name(self) -> str:
        return "Stripe"

    @property
    def signature_header(self) -> str:
        return "Stripe-Signature"

    def get_publishable_key(self) -> Optional[str]:
        """Get the publishable key for client-side use."""
        return self._config.publishable_key

    async def create_payment(self, params: CreatePaymentParams) -> CreatePaymentResult:
        """
        Create a Stripe PaymentIntent.

        Uses our payment intent id as idempotency key to ensure safe retries.
        """
        try:
            intent_params: Dict[str, Any] = {
                "amount": params.amount,
                "currency": params.currency.lower(),
                "metadata": {
                    **params.metadata,
                    "payment_intent_id": params.payment_intent_id,
                },
                "automatic_payment_methods": {"enabled": True},
            }
            if params.description:
                intent_params["description"] = params.description

            intent = await asyncio.to_thread(
                self._client.payment_intents.create,
                params=intent_params,
                options={"idempotency_key": params.payment_intent_id},
            )
            return CreatePaymentResult(
                external_id=intent.id,
                client_secret=intent.client_secret,
                provider_metadata={"livemode": intent.livemode},
            )

        except stripe.CardError as e:
            logger.error(f"Card error creating payment intent: {e.user_message}")
            raise PaymentError(
                code="CARD_ERROR",
                message=e.user_message or "Card was declined",
                retryable=True,
            )
        except stripe.RateLimitError as e:
            logger.error(f"Rate limit error: {e}")
            raise PaymentError(
                code="RATE_LIMIT",
                message="Too many requests. Please try again.",
                retryable=True,
            )
        except stripe.InvalidRequestError as e:
            logger.error(f"Invalid request error: {e}")
            raise PaymentError(
                code="INVALID_REQUEST",
                message=str(e),
                retryable=False,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating payment intent: {e}")
            raise PaymentError(
                code="PROVIDER_ERROR",
                message="Payment provider error. Please try again.",
                retryable=True,
            )

    async def capture_payment(self, external_id: str) -> ProviderEvent:
        """
        Report the outcome of a Stripe PaymentIntent.

        Intents created with automatic capture settle on their own; only a
        ``requires_capture`` intent needs an explicit capture call.
        """
        try:
            intent = await asyncio.to_thread(
                self._client.payment_intents.retrieve, external_id
            )
            if intent.status == "requires_capture":
                intent = await asyncio.to_thread(
                    self._client.payment_intents.capture,
                    external_id,
                    options={"idempotency_key": f"{external_id}-capture"},
                )
        except stripe.InvalidRequestError as e:
            logger.error(f"Invalid capture request for {external_id}: {e}")
            raise PaymentError(code="INVALID_REQUEST", message=str(e), retryable=False)
        except stripe.StripeError as e:
            logger.error(f"Stripe error capturing {external_id}: {e}")
            raise PaymentError(
                code="PROVIDER_ERROR",
                message="Could not capture payment",
                retryable=True,
            )

        outcome = STRIPE_STATUS_MAP.get(intent.status, PaymentOutcome.PENDING)
        last_error = getattr(intent, "last_payment_error", None)
        if outcome == PaymentOutcome.PENDING and intent.status == "requires_payment_method" and last_error:
            # A declined attempt sends the intent back to requires_payment_method
            outcome = PaymentOutcome.FAILED

        return ProviderEvent(
            external_id=intent.id,
            outcome=outcome,
            event_type=f"capture.{intent.status}",
            failure_reason=getattr(last_error, "message", None) if last_error else None,
        )

    async def verify_webhook(self, payload: bytes, headers: Mapping[str, str]) -> bool:
        """Verify Stripe webhook signature."""
        signature = headers.get(self.signature_header)
        if not signature:
            return False
        try:
            stripe.Webhook.construct_event(
                payload,
                signature,
                self._config.webhook_secret,
            )
            return True
        except stripe.SignatureVerificationError:
            return False
        except ValueError as e:
            logger.error(f"Error verifying webhook signature: {e}")
            return False

    def parse_webhook_event(self, payload: bytes) -> Optional[ProviderEvent]:
        """Parse Stripe webhook event into a ProviderEvent."""
        try:
            event = json.loads(payload.decode("utf-8"))
            event_type = event["type"]
            data_object = event["data"]["object"]
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Error parsing webhook event: {e}")
            raise PaymentError(
                code="PARSE_ERROR",
                message="Could not parse webhook event",
                retryable=False,
            )

        outcome = STRIPE_EVENT_MAP.get(event_type)
        if outcome is None:
            return None

        failure_reason = None
        last_error = data_object.get("last_payment_error")
        if last_error:
            failure_reason = last_error.get("message") or last_error.get("code")
        elif data_object.get("cancellation_reason"):
            failure_reason = data_object["cancellation_reason"]

        return ProviderEvent(
            external_id=data_object["id"],
            outcome=outcome,
            event_id=event.get("id"),
            event_type=event_type,
            failure_reason=failure_reason,
            raw=event,
        )
