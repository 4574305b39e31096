"""
LetterDesk - Payments Router

Checkout via Stripe PaymentIntents and the payment-confirmation webhook.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import require_capability
from ..database import get_db
from ..errors import NotFoundError, ServiceUnavailableError
from ..models.db_models import UserDB
from ..services.accounts import AccountStore
from ..services.commission import CommissionEngine
from ..services.container import AppServices, get_services
from ..services.payments import PaymentEventProcessor, build_payment_metadata

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class PaymentConfigResponse(BaseModel):
    publishable_key: str


class PaymentIntentRequest(BaseModel):
    plan_id: str
    discount_code: Optional[str] = None


class PaymentIntentResponse(BaseModel):
    client_secret: str
    original_price: float
    discount_amount: float
    final_price: float
    discount_applied: bool


class WebhookResponse(BaseModel):
    received: bool = True
    processed: bool = False
    duplicate: bool = False
    subscription_id: Optional[str] = None


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/payments/config", response_model=PaymentConfigResponse)
async def payment_config(services: AppServices = Depends(get_services)):
    """Publishable key for the client-side checkout."""
    key = services.settings.stripe_publishable_key
    if not key:
        raise ServiceUnavailableError("Payment processing is not available - Stripe not configured")
    return PaymentConfigResponse(publishable_key=key)


@router.post("/create-payment-intent", response_model=PaymentIntentResponse)
def create_payment_intent(
    request: PaymentIntentRequest,
    current_user: UserDB = Depends(require_capability("payments:purchase")),
    db: Session = Depends(get_db),
    services: AppServices = Depends(get_services),
):
    """Price the plan (with referral discount) and open a PaymentIntent."""
    gateway = services.payment_gateway
    if gateway is None:
        raise ServiceUnavailableError("Payment processing is not available - Stripe not configured")

    plan = AccountStore(db).get_plan(request.plan_id)
    if plan is None or not plan.is_active:
        raise NotFoundError("Plan not found")

    quote = CommissionEngine(db).quote_price(plan, request.discount_code)
    metadata = build_payment_metadata(current_user.id, plan.id, quote)
    client_secret = gateway.create_payment_intent(quote, metadata)

    return PaymentIntentResponse(
        client_secret=client_secret,
        original_price=float(quote.original_price),
        discount_amount=float(quote.discount_amount),
        final_price=float(quote.final_price),
        discount_applied=quote.discount_amount > 0,
    )


@router.post("/webhooks/stripe", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
    services: AppServices = Depends(get_services),
):
    """
    Payment confirmation. ``payment_intent.succeeded`` creates the
    subscription and any commission; redeliveries are acknowledged only.
    Only events signed with the configured webhook secret are accepted.
    """
    gateway = services.payment_gateway
    if gateway is None:
        raise ServiceUnavailableError("Payment processing is not available - Stripe not configured")
    if not gateway.webhook_secret:
        raise ServiceUnavailableError("Payment webhooks are not available - STRIPE_WEBHOOK_SECRET not configured")

    payload = await request.body()
    try:
        event = gateway.parse_event(payload, stripe_signature)
    except ValueError as e:
        logger.warning(f"Rejected webhook: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    try:
        outcome = PaymentEventProcessor(db).process(event)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return WebhookResponse(
        processed=outcome.processed,
        duplicate=outcome.duplicate,
        subscription_id=outcome.subscription.id if outcome.subscription else None,
    )
