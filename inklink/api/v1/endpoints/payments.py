# inklink/api/v1/endpoints/payments.py
"""
Payment intent creation and the two confirmation entry points.

SECURITY NOTES:
- Always verify webhook signatures
- Confirmations are idempotent per external id; redeliveries get a 200
- Processor internals never reach the response body
"""
import logging
from typing import Literal, Optional
from fastapi import APIRouter, Depends, Query, Request, Response, status

from inklink.api import deps
from inklink.constants.statuses import PaymentIntentStatus, PaymentProcessor
from inklink.core.config import settings
from inklink.core.limiter import limiter
from inklink.schemas.payment import (
    CaptureRequest,
    CreateIntentResponse,
    PaymentIntent,
    PaymentIntentCreate,
    PaymentClientConfig,
    PaymentIntentList,
    PaymentStatsSummary,
    ReconcileResult,
    WebhookAck,
)
from inklink.schemas.token import TokenPayload
from inklink.services.payment import PaymentReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post(
    "/intent",
    response_model=CreateIntentResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.RATE_LIMIT_PAYMENTS)
async def create_payment_intent(
    request: Request,
    intent_in: PaymentIntentCreate,
    service: PaymentReconciliationService = Depends(deps.get_reconciliation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Create a payment intent and hand it to the chosen processor.

    Returns the client secret (stripe) or the approval URL (paypal) the
    frontend needs to finish the payment.
    """
    intent, result = await service.create_intent(caller=current_user, obj_in=intent_in)
    return CreateIntentResponse(
        payment_intent=PaymentIntent.model_validate(intent),
        client_secret=result.client_secret,
        approval_url=result.approval_url,
    )


@router.post("/{processor}/capture", response_model=ReconcileResult)
@limiter.limit(settings.RATE_LIMIT_PAYMENTS)
async def capture_payment(
    request: Request,
    processor: PaymentProcessor,
    capture_in: CaptureRequest,
    service: PaymentReconciliationService = Depends(deps.get_reconciliation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Confirm a payment synchronously. Capturing an already completed payment
    is acknowledged with `duplicate: true`.
    """
    return await service.capture(
        caller=current_user,
        processor=processor.value,
        external_id=capture_in.external_id,
    )


@router.put("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    service: PaymentReconciliationService = Depends(deps.get_reconciliation_service),
):
    """
    Handle webhook events from either processor.

    The processor is recognised by its signature header. This endpoint:
    1. Verifies the webhook signature
    2. Stores the event for audit (once per provider event id)
    3. Reconciles the payment intent it refers to
    4. Returns 200 to acknowledge receipt, also for redeliveries

    Processors retry on non-2xx responses.
    """
    body = await request.body()
    client_ip = request.client.host if request.client else None
    return await service.handle_webhook(
        payload=body, headers=request.headers, ip_address=client_ip
    )


@router.get("", response_model=PaymentIntentList)
def list_payments(
    type: Optional[Literal["sent", "received"]] = None,
    status_filter: Optional[PaymentIntentStatus] = Query(None, alias="status"),
    processor: Optional[PaymentProcessor] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    service: PaymentReconciliationService = Depends(deps.get_reconciliation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    items, total = service.list_payments(
        caller=current_user,
        direction=type,
        status=status_filter.value if status_filter else None,
        processor=processor.value if processor else None,
        skip=skip,
        limit=limit,
    )
    return PaymentIntentList(
        items=[PaymentIntent.model_validate(item) for item in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/stats", response_model=PaymentStatsSummary)
def payment_stats(
    service: PaymentReconciliationService = Depends(deps.get_reconciliation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.stats(caller=current_user)


@router.get("/{processor}/config", response_model=PaymentClientConfig)
def payment_client_config(
    processor: PaymentProcessor,
    service: PaymentReconciliationService = Depends(deps.get_reconciliation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Public key (Stripe publishable key or PayPal client id) for the
    processor's browser SDK.
    """
    return service.client_config(processor=processor.value)


@router.get("/{payment_intent_id}", response_model=PaymentIntent)
def get_payment(
    payment_intent_id: str,
    service: PaymentReconciliationService = Depends(deps.get_reconciliation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.get_payment(caller=current_user, payment_intent_id=payment_intent_id)


@router.delete("/{payment_intent_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_payment(
    payment_intent_id: str,
    service: PaymentReconciliationService = Depends(deps.get_reconciliation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Delete a pending, failed or cancelled intent. Payer only.
    """
    service.delete_payment(caller=current_user, payment_intent_id=payment_intent_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
