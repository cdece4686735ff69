# inklink/services/payment/providers/paypal_provider.py
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import httpx

from inklink.utils.currency import minor_to_decimal_string

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
class PayPalConfig:
    """Configuration for PayPal provider."""
    client_id: str
    client_secret: str
    base_url: str
    webhook_id: Optional[str] = None
    brand_name: str = "InkLink"
    timeout_seconds: float = 10.0


# Mapping from PayPal order status to a payment outcome
PAYPAL_ORDER_STATUS_MAP: Dict[str, PaymentOutcome] = {
    "CREATED": PaymentOutcome.PENDING,
    "SAVED": PaymentOutcome.PENDING,
    "APPROVED": PaymentOutcome.PENDING,
    "PAYER_ACTION_REQUIRED": PaymentOutcome.PENDING,
    "COMPLETED": PaymentOutcome.SUCCEEDED,
    "VOIDED": PaymentOutcome.CANCELLED,
}

# PayPal webhook event types that carry a payment outcome
PAYPAL_EVENT_MAP: Dict[str, PaymentOutcome] = {
    "PAYMENT.CAPTURE.COMPLETED": PaymentOutcome.SUCCEEDED,
    "PAYMENT.CAPTURE.DENIED": PaymentOutcome.FAILED,
    "PAYMENT.CAPTURE.DECLINED": PaymentOutcome.FAILED,
    "PAYMENT.CAPTURE.PENDING": PaymentOutcome.PENDING,
    "CHECKOUT.ORDER.APPROVED": PaymentOutcome.PENDING,
    "CHECKOUT.ORDER.VOIDED": PaymentOutcome.CANCELLED,
}

# Headers PayPal signs webhook deliveries with
TRANSMISSION_HEADERS = {
    "transmission_id": "PAYPAL-TRANSMISSION-ID",
    "transmission_time": "PAYPAL-TRANSMISSION-TIME",
    "cert_url": "PAYPAL-CERT-URL",
    "auth_algo": "PAYPAL-AUTH-ALGO",
    "transmission_sig": "PAYPAL-TRANSMISSION-SIG",
}


class PayPalProvider(PaymentProviderInterface):
    """
    PayPal Orders v2 implementation of PaymentProviderInterface.

    The external id is the PayPal order id. The buyer approves the order on
    PayPal (``approval_url``); the capture call or the
    PAYMENT.CAPTURE.COMPLETED webhook then settles it.
    """

    def __init__(self, config: PayPalConfig, client: Optional[httpx.AsyncClient] = None):
        self._config = config
        # Injected in tests; otherwise a short-lived client per call
        self._client = client

    @property
    def code(self) -> str:
        return "paypal"

    @property
    def name(self) -> str:
        return "PayPal"

    @property
    def signature_header(self) -> str:
        return "PAYPAL-TRANSMISSION-SIG"

    def get_publishable_key(self) -> Optional[str]:
        """The REST client id doubles as the JS SDK client id."""
        return self._config.client_id

    async def _request(
        self, method: str, path: str, **kwargs: Any
    ) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, f"{self._config.base_url}{path}", **kwargs)
        async with httpx.AsyncClient(
            base_url=self._config.base_url, timeout=self._config.timeout_seconds
        ) as client:
            return await client.request(method, path, **kwargs)

    async def _get_access_token(self) -> str:
        try:
            response = await self._request(
                "POST",
                "/v1/oauth2/token",
                auth=(self._config.client_id, self._config.client_secret),
                data={"grant_type": "client_credentials"},
                headers={"Accept": "application/json", "Accept-Language": "en_US"},
            )
        except httpx.HTTPError as e:
            logger.error(f"PayPal token request failed: {e}")
            raise PaymentError(
                code="PROVIDER_UNAVAILABLE",
                message="Could not reach PayPal",
                retryable=True,
            )

        if response.status_code != 200:
            logger.error(f"PayPal token request rejected: HTTP {response.status_code}")
            raise PaymentError(
                code="AUTHENTICATION_FAILED",
                message="Failed to get PayPal access token",
                retryable=False,
            )
        return response.json()["access_token"]

    async def _authorized(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        token = await self._get_access_token()
        headers = kwargs.pop("headers", {})
        headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            }
        )
        try:
            return await self._request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"PayPal {method} {path} failed: {e}")
            raise PaymentError(
                code="PROVIDER_UNAVAILABLE",
                message="Could not reach PayPal",
                retryable=True,
            )

    async def create_payment(self, params: CreatePaymentParams) -> CreatePaymentResult:
        """Create a PayPal order with intent CAPTURE."""
        body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": params.payment_intent_id,
                    "description": params.description,
                    "custom_id": params.payment_intent_id,
                    "amount": {
                        "currency_code": params.currency.upper(),
                        "value": minor_to_decimal_string(params.amount, params.currency),
                    },
                }
            ],
            "application_context": {
                "brand_name": self._config.brand_name,
                "landing_page": "NO_PREFERENCE",
                "user_action": "PAY_NOW",
                "return_url": params.return_url,
                "cancel_url": params.cancel_url,
            },
        }
        response = await self._authorized(
            "POST",
            "/v2/checkout/orders",
            json=body,
            headers={"PayPal-Request-Id": params.payment_intent_id},
        )
        if response.status_code not in (200, 201):
            logger.error(
                f"PayPal order creation failed: HTTP {response.status_code} {response.text[:500]}"
            )
            raise PaymentError(
                code="ORDER_CREATION_FAILED",
                message="Failed to create PayPal order",
                retryable=response.status_code >= 500,
            )

        order = response.json()
        approval_url = next(
            (
                link["href"]
                for link in order.get("links", [])
                if link.get("rel") in ("approve", "payer-action")
            ),
            None,
        )
        return CreatePaymentResult(
            external_id=order["id"],
            approval_url=approval_url,
            provider_metadata={"status": order.get("status")},
        )

    async def capture_payment(self, external_id: str) -> ProviderEvent:
        """
        Capture an approved order. A second capture of the same order comes
        back as ORDER_ALREADY_CAPTURED; the order is then read back so the
        caller still gets its real outcome.
        """
        response = await self._authorized(
            "POST",
            f"/v2/checkout/orders/{external_id}/capture",
            headers={"PayPal-Request-Id": f"{external_id}-capture"},
        )

        if response.status_code == 422 and "ORDER_ALREADY_CAPTURED" in response.text:
            response = await self._authorized("GET", f"/v2/checkout/orders/{external_id}")

        if response.status_code not in (200, 201):
            logger.error(
                f"PayPal capture failed for {external_id}: HTTP {response.status_code} "
                f"{response.text[:500]}"
            )
            if response.status_code == 422:
                # Buyer-side rejection (declined instrument, unapproved order)
                return ProviderEvent(
                    external_id=external_id,
                    outcome=PaymentOutcome.FAILED,
                    event_type="capture.unprocessable",
                    failure_reason=self._issue(response),
                )
            raise PaymentError(
                code="CAPTURE_FAILED",
                message="Failed to capture PayPal payment",
                retryable=response.status_code >= 500,
            )

        order = response.json()
        status = order.get("status", "")
        outcome = PAYPAL_ORDER_STATUS_MAP.get(status, PaymentOutcome.PENDING)

        capture_status = self._capture_status(order)
        if capture_status in ("DECLINED", "FAILED"):
            outcome = PaymentOutcome.FAILED

        return ProviderEvent(
            external_id=order.get("id", external_id),
            outcome=outcome,
            event_type=f"capture.{status.lower() or 'unknown'}",
            failure_reason=capture_status if outcome == PaymentOutcome.FAILED else None,
        )

    @staticmethod
    def _issue(response: httpx.Response) -> Optional[str]:
        try:
            details = response.json().get("details") or []
        except ValueError:
            return None
        return details[0].get("issue") if details else None

    @staticmethod
    def _capture_status(order: Dict[str, Any]) -> Optional[str]:
        for unit in order.get("purchase_units", []):
            captures = unit.get("payments", {}).get("captures", [])
            if captures:
                return captures[0].get("status")
        return None

    async def verify_webhook(self, payload: bytes, headers: Mapping[str, str]) -> bool:
        """Verify a webhook delivery through PayPal's verify-webhook-signature API."""
        if not self._config.webhook_id:
            logger.error("PAYPAL_WEBHOOK_ID is not configured; rejecting webhook")
            return False

        verification: Dict[str, Any] = {}
        for field, header in TRANSMISSION_HEADERS.items():
            value = headers.get(header)
            if not value:
                return False
            verification[field] = value

        try:
            verification["webhook_event"] = json.loads(payload.decode("utf-8"))
        except ValueError:
            return False
        verification["webhook_id"] = self._config.webhook_id

        try:
            response = await self._authorized(
                "POST", "/v1/notifications/verify-webhook-signature", json=verification
            )
        except PaymentError:
            return False

        if response.status_code != 200:
            logger.error(f"PayPal signature verification call failed: HTTP {response.status_code}")
            return False
        return response.json().get("verification_status") == "SUCCESS"

    def parse_webhook_event(self, payload: bytes) -> Optional[ProviderEvent]:
        """Parse a PayPal webhook event into a ProviderEvent."""
        try:
            event = json.loads(payload.decode("utf-8"))
            event_type = event["event_type"]
            resource = event.get("resource") or {}
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Error parsing webhook event: {e}")
            raise PaymentError(
                code="PARSE_ERROR",
                message="Could not parse webhook event",
                retryable=False,
            )

        outcome = PAYPAL_EVENT_MAP.get(event_type)
        if outcome is None:
            return None

        if event_type.startswith("PAYMENT.CAPTURE."):
            # Capture resources point back at their order
            external_id = (
                resource.get("supplementary_data", {})
                .get("related_ids", {})
                .get("order_id")
            )
        else:
            external_id = resource.get("id")

        if not external_id:
            raise PaymentError(
                code="PARSE_ERROR",
                message="Webhook event does not reference an order",
                retryable=False,
            )

        failure_reason = None
        if outcome == PaymentOutcome.FAILED:
            failure_reason = (
                resource.get("status_details", {}).get("reason") or resource.get("status")
            )

        return ProviderEvent(
            external_id=external_id,
            outcome=outcome,
            event_id=event.get("id"),
            event_type=event_type,
            failure_reason=failure_reason,
            raw=event,
        )
