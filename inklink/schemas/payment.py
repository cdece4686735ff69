# inklink/schemas/payment.py
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict
from datetime import datetime
from enum import Enum

from inklink.constants.statuses import PaymentIntentStatus, PaymentProcessor


class WebhookEventStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    processed = "processed"
    failed = "failed"
    skipped = "skipped"


# ============================================
# Payment Intent Schemas
# ============================================

class PaymentMetadata(BaseModel):
    client_id: str
    artist_id: Optional[str] = None
    offer_id: Optional[str] = None
    appointment_id: Optional[str] = None
    service_type: Optional[str] = None


class PaymentIntentCreate(BaseModel):
    amount: int = Field(..., gt=0, description="Amount in smallest currency unit (cents)")
    currency: str = Field("USD", min_length=3, max_length=3, description="ISO 4217 currency code")
    processor: PaymentProcessor
    description: Optional[str] = None
    metadata: PaymentMetadata

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class PaymentIntent(BaseModel):
    id: str
    user_id: str
    amount: int
    currency: str
    processor: PaymentProcessor
    status: PaymentIntentStatus
    external_id: Optional[str] = None
    description: Optional[str] = None
    intent_metadata: Dict = Field(default_factory=dict, serialization_alias="metadata")
    failure_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True, "populate_by_name": True}


class CreateIntentResponse(BaseModel):
    """What the client needs to finish the payment on the processor's side."""
    payment_intent: PaymentIntent
    client_secret: Optional[str] = None
    approval_url: Optional[str] = None


class CaptureRequest(BaseModel):
    external_id: str = Field(..., min_length=1)


class ReconcileResult(BaseModel):
    payment_intent_id: Optional[str] = None
    status: Optional[PaymentIntentStatus] = None
    duplicate: bool = False
    offer_marked_paid: bool = False


class WebhookAck(BaseModel):
    received: bool = True
    duplicate: bool = False
    status: WebhookEventStatus


class PaymentStats(BaseModel):
    total_count: int
    completed_count: int
    pending_count: int
    failed_count: int
    total_completed_amount: int
    by_processor: Dict[str, int]


class PaymentStatsSummary(BaseModel):
    """Payments the user made and payments naming them as the paid artist."""
    sent: PaymentStats
    received: PaymentStats


class PaymentClientConfig(BaseModel):
    processor: PaymentProcessor
    public_key: str
    environment: Optional[str] = None


class PaymentIntentList(BaseModel):
    items: List[PaymentIntent]
    total: int
    skip: int
    limit: int
