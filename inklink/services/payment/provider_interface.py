# inklink/services/payment/provider_interface.py
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, Mapping
from dataclasses import dataclass, field
from enum import Enum


class PaymentOutcome(str, Enum):
    """
    Closed set of results a processor can report for a payment.

    Provider payloads are translated into one of these as soon as they are
    received; nothing past the provider layer looks at provider shapes.
    """
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PENDING = "pending"


@dataclass
class CreatePaymentParams:
    """Parameters for creating a payment with a processor."""
    payment_intent_id: str  # our id, also used as idempotency key
    amount: int  # In smallest currency unit (cents)
    currency: str  # ISO 4217
    description: Optional[str]
    metadata: Dict[str, str]
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None


@dataclass
class CreatePaymentResult:
    """Result of creating a payment."""
    external_id: str
    client_secret: Optional[str] = None  # card flow: confirmed client-side
    approval_url: Optional[str] = None  # wallet flow: buyer approves on the processor
    provider_metadata: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ProviderEvent:
    """A processor confirmation reduced to what reconciliation needs."""
    external_id: str
    outcome: PaymentOutcome
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    failure_reason: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


class PaymentError(Exception):
    """Custom exception for payment errors."""

    def __init__(self, code: str, message: str, retryable: bool = False):
        self.code = code
        self.message = message
        self.retryable = retryable
        super().__init__(message)


class PaymentProviderInterface(ABC):
    """
    Core interface that all payment providers must implement.
    This abstraction allows swapping providers without changing business logic.
    """

    @property
    @abstractmethod
    def code(self) -> str:
        """Provider code identifier (e.g., 'stripe', 'paypal')."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name (e.g., 'Stripe', 'PayPal')."""
        pass

    @property
    @abstractmethod
    def signature_header(self) -> str:
        """Request header carrying this provider's webhook signature."""
        pass

    @abstractmethod
    async def create_payment(self, params: CreatePaymentParams) -> CreatePaymentResult:
        """Create the payment on the processor side."""
        pass

    @abstractmethod
    async def capture_payment(self, external_id: str) -> ProviderEvent:
        """
        Capture (or confirm the state of) a payment and report its outcome.
        Capturing an already captured payment must report SUCCEEDED again.
        """
        pass

    @abstractmethod
    async def verify_webhook(self, payload: bytes, headers: Mapping[str, str]) -> bool:
        """Verify webhook signature."""
        pass

    @abstractmethod
    def parse_webhook_event(self, payload: bytes) -> Optional[ProviderEvent]:
        """
        Parse webhook event into a ProviderEvent. Returns None for event types
        that do not concern a payment outcome.
        """
        pass

    def get_publishable_key(self) -> Optional[str]:
        """Get the publishable/public API key for client-side use."""
        return None
