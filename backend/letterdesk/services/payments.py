"""
Payments

Thin wrapper over the Stripe SDK plus the confirmed-payment processor.

A ``payment_intent.succeeded`` event creates the subscription and awards any
commission inside one transaction, and records the event id in the
``payment_events`` ledger. A redelivered event hits the ledger's unique
constraint and is acknowledged without crediting anything twice.
"""
import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import uuid4

import stripe
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import Settings
from ..errors import NotFoundError, PaymentError
from ..models.db_models import PaymentEventDB, UserSubscriptionDB
from .accounts import AccountStore
from .commission import CommissionEngine, PriceQuote, to_cents

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"


class PaymentGateway:
    """Stripe client configured with this process's keys."""

    def __init__(self, secret_key: str, webhook_secret: Optional[str] = None, currency: str = "usd"):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency

    def create_payment_intent(self, quote: PriceQuote, metadata: Dict[str, str]) -> str:
        """Create a PaymentIntent for the quoted price; returns its client secret."""
        try:
            intent = stripe.PaymentIntent.create(
                amount=quote.amount_cents,
                currency=self.currency,
                metadata=metadata,
                api_key=self.secret_key,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe rejected payment intent: {e}")
            raise PaymentError(f"Payment processor error: {e.user_message or str(e)}") from e
        return intent.client_secret

    def parse_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        return parse_webhook_event(payload, signature, self.webhook_secret)


def parse_webhook_event(payload: bytes, signature: Optional[str], webhook_secret: Optional[str]) -> Dict[str, Any]:
    """
    Verify the Stripe signature on a webhook body and decode it.
    Unsigned events are never trusted: without a webhook secret every
    payload is refused.
    Raises ValueError for malformed or unverifiable payloads.
    """
    if not webhook_secret:
        raise ValueError("Webhook signing secret not configured - refusing unsigned event")

    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Invalid webhook payload: {e}") from e
    try:
        stripe.WebhookSignature.verify_header(
            body, signature or "", webhook_secret, tolerance=stripe.Webhook.DEFAULT_TOLERANCE
        )
    except stripe.SignatureVerificationError as e:
        raise ValueError(f"Invalid webhook signature: {e}") from e

    try:
        event = json.loads(body)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid webhook payload: {e}") from e
    if not isinstance(event, dict):
        raise ValueError("Invalid webhook payload: expected a JSON object")
    return event


def build_payment_metadata(user_id: str, plan_id: str, quote: PriceQuote) -> Dict[str, str]:
    """Price snapshot carried on the PaymentIntent and echoed back by the webhook."""
    return {
        "userId": user_id,
        "planId": plan_id,
        "discountCode": quote.referral_code or "",
        "originalPrice": str(quote.original_price),
        "discountAmount": str(quote.discount_amount),
        "finalPrice": str(quote.final_price),
    }


def build_payment_gateway(settings: Settings) -> Optional[PaymentGateway]:
    if not settings.stripe_secret_key:
        return None
    return PaymentGateway(settings.stripe_secret_key, settings.stripe_webhook_secret)


@dataclass
class PaymentOutcome:
    processed: bool
    duplicate: bool = False
    subscription: Optional[UserSubscriptionDB] = None
    commission_id: Optional[str] = None


class PaymentEventProcessor:
    """Applies confirmed payments: subscription + commission, exactly once."""

    def __init__(self, db: Session):
        self.db = db
        self.accounts = AccountStore(db)
        self.commissions = CommissionEngine(db)

    def process(self, event: Dict[str, Any]) -> PaymentOutcome:
        event_type = event.get("type")
        if event_type != PAYMENT_SUCCEEDED:
            logger.info(f"Ignoring payment event type {event_type!r}")
            return PaymentOutcome(processed=False)

        intent = (event.get("data") or {}).get("object") or {}
        intent_id = intent.get("id")
        event_id = event.get("id") or intent_id
        if not event_id:
            raise ValueError("Payment event has no id")
        metadata = intent.get("metadata") or {}

        user_id = metadata.get("userId")
        plan_id = metadata.get("planId")
        if not user_id or not plan_id:
            raise ValueError("Payment event is missing userId/planId metadata")
        if self.accounts.get_user(user_id) is None:
            raise NotFoundError("User not found")
        plan = self.accounts.get_plan(plan_id)
        if plan is None:
            raise NotFoundError("Plan not found")

        if self._already_processed(event_id):
            logger.info(f"Payment event {event_id} already processed - skipping")
            return PaymentOutcome(processed=False, duplicate=True)

        original = to_cents(metadata.get("originalPrice") or plan.price)
        discount = to_cents(metadata.get("discountAmount") or 0)
        final = to_cents(metadata.get("finalPrice") or (original - discount))
        referral_code = metadata.get("discountCode") or None

        try:
            ledger_entry = PaymentEventDB(
                id=str(uuid4()),
                event_id=event_id,
                event_type=event_type,
                payment_intent_id=intent_id,
            )
            self.db.add(ledger_entry)
            self.db.flush()

            subscription = self.accounts.create_subscription(
                user_id=user_id,
                plan=plan,
                original_price=original,
                discount_amount=discount,
                final_price=final,
                referral_code=referral_code,
            )
            ledger_entry.subscription_id = subscription.id
            record = self.commissions.award(subscription, referral_code)
            self.db.commit()
        except IntegrityError:
            # Concurrent delivery of the same event won the race
            self.db.rollback()
            logger.info(f"Payment event {event_id} processed concurrently - skipping")
            return PaymentOutcome(processed=False, duplicate=True)
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(subscription)
        logger.info(f"Subscription {subscription.id} created for user {user_id} from event {event_id}")
        return PaymentOutcome(
            processed=True,
            subscription=subscription,
            commission_id=record.id if record else None,
        )

    def _already_processed(self, event_id: str) -> bool:
        return (
            self.db.query(PaymentEventDB.id)
            .filter(PaymentEventDB.event_id == event_id)
            .first()
            is not None
        )
