# inklink/services/payment/__init__.py
from .provider_interface import (
    CreatePaymentParams,
    CreatePaymentResult,
    PaymentError,
    PaymentOutcome,
    PaymentProviderInterface,
    ProviderEvent,
)
from .provider_factory import PaymentProviderFactory
from .reconciliation_service import PaymentReconciliationService

__all__ = [
    "CreatePaymentParams",
    "CreatePaymentResult",
    "PaymentError",
    "PaymentOutcome",
    "PaymentProviderInterface",
    "ProviderEvent",
    "PaymentProviderFactory",
    "PaymentReconciliationService",
]
