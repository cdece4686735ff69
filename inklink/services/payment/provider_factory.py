# inklink/services/payment/provider_factory.py
import logging
from typing import Dict, List, Mapping, Optional

from inklink.core.config import Settings
from .provider_interface import PaymentProviderInterface
from .providers.paypal_provider import PayPalConfig, PayPalProvider
from .providers.stripe_provider import StripeConfig, StripeProvider

logger = logging.getLogger(__name__)


class PaymentProviderFactory:
    """
    Registry of the payment providers configured for one application.

    Built from settings at startup and handed to whoever needs it; there is
    no module-level instance.
    """

    def __init__(self, providers: Optional[Dict[str, PaymentProviderInterface]] = None):
        self._providers: Dict[str, PaymentProviderInterface] = dict(providers or {})

    @classmethod
    def from_settings(cls, settings: Settings) -> "PaymentProviderFactory":
        """Initialize all configured payment providers."""
        factory = cls()

        if settings.stripe_configured:
            factory.register(
                StripeProvider(
                    StripeConfig(
                        secret_key=settings.STRIPE_SECRET_KEY,
                        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
                        publishable_key=settings.STRIPE_PUBLISHABLE_KEY,
                        api_version=settings.STRIPE_API_VERSION,
                        max_retries=settings.STRIPE_MAX_NETWORK_RETRIES,
                    )
                )
            )
            logger.info("Stripe payment provider initialized")
        else:
            logger.warning("Stripe provider not initialized: missing environment variables")

        if settings.paypal_configured:
            factory.register(
                PayPalProvider(
                    PayPalConfig(
                        client_id=settings.PAYPAL_CLIENT_ID,
                        client_secret=settings.PAYPAL_CLIENT_SECRET,
                        base_url=settings.PAYPAL_BASE_URL,
                        webhook_id=settings.PAYPAL_WEBHOOK_ID,
                        timeout_seconds=settings.PAYMENT_PROVIDER_TIMEOUT_SECONDS,
                    )
                )
            )
            logger.info("PayPal payment provider initialized")
        else:
            logger.warning("PayPal provider not initialized: missing environment variables")

        return factory

    def register(self, provider: PaymentProviderInterface) -> None:
        self._providers[provider.code] = provider

    def get_provider(self, code: str) -> PaymentProviderInterface:
        """
        Get a payment provider by its code.

        Raises:
            ValueError: If provider is not available
        """
        provider = self._providers.get(code)
        if not provider:
            raise ValueError(f"Payment provider '{code}' is not available")
        return provider

    def detect_from_headers(self, headers: Mapping[str, str]) -> Optional[PaymentProviderInterface]:
        """Pick the provider whose signature header is present on a webhook."""
        for provider in self._providers.values():
            if headers.get(provider.signature_header):
                return provider
        return None

    def is_provider_available(self, code: str) -> bool:
        return code in self._providers

    def list_codes(self) -> List[str]:
        return sorted(self._providers)
