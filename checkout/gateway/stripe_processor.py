"""Stripe adapter on top of the stripe-python SDK.

Authorizations are PaymentIntents; webhooks go through
`stripe.Webhook.construct_event`, which checks the `Stripe-Signature` header
against the endpoint's signing secret before the JSON is trusted.
"""

import json
from typing import Mapping, Optional

import stripe

from checkout.domain.errors import InvalidSignatureError, PaymentProcessorError
from checkout.domain.status import PaymentState
from checkout.gateway.port import Authorization, PaymentProcessor, WebhookEvent
from checkout.utils.retry import stripe_retry
from checkout.utils.logging import get_logger

logger = get_logger(__name__)

EVENT_TYPES = {
    "payment_intent.succeeded": "payment.succeeded",
    "payment_intent.payment_failed": "payment.failed",
}


def map_intent_state(status: Optional[str], last_payment_error=None) -> PaymentState:
    if status == "succeeded":
        return PaymentState.SUCCEEDED
    if status == "canceled":
        return PaymentState.FAILED
    if status == "requires_payment_method" and last_payment_error:
        return PaymentState.FAILED
    return PaymentState.PENDING


class StripeProcessor(PaymentProcessor):
    """Production Stripe adapter."""

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        api_base: Optional[str] = None,
        tolerance: int = 300,
    ) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        if api_base:
            stripe.api_base = api_base.rstrip("/")

    def create_authorization(
        self,
        amount_minor: int,
        currency: str,
        idempotency_key: str,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> Authorization:
        intent = self._call(
            "create",
            stripe.PaymentIntent.create,
            amount=amount_minor,
            currency=currency,
            automatic_payment_methods={"enabled": True},
            metadata=dict(metadata or {}),
            idempotency_key=idempotency_key,
        )
        return self._to_authorization(intent)

    def update_metadata(self, auth_ref: str, metadata: Mapping[str, str]) -> Authorization:
        intent = self._call("modify", stripe.PaymentIntent.modify, auth_ref, metadata=dict(metadata))
        return self._to_authorization(intent)

    def retrieve_authorization(self, auth_ref: str) -> Authorization:
        intent = self._call("retrieve", stripe.PaymentIntent.retrieve, auth_ref)
        return self._to_authorization(intent)

    def construct_event(self, payload: bytes, signature_header: Optional[str]) -> WebhookEvent:
        if not signature_header:
            raise InvalidSignatureError("Missing Stripe-Signature header")
        if not self.webhook_secret:
            raise InvalidSignatureError("Webhook secret is not configured")
        try:
            stripe.Webhook.construct_event(payload, signature_header, self.webhook_secret, tolerance=self.tolerance)
        except stripe.SignatureVerificationError as e:
            raise InvalidSignatureError(f"Signature verification failed: {e}") from e
        except ValueError as e:
            raise InvalidSignatureError(f"Unparseable webhook payload: {e}") from e

        # podpis zweryfikowany, dalej pracujemy na zwyklym JSON
        try:
            event = json.loads(payload)
            intent = event["data"]["object"]
            event_type = EVENT_TYPES.get(event["type"])
            return WebhookEvent(
                event_id=event["id"],
                type=event_type,
                auth_ref=intent.get("id") if event_type else None,
                metadata=dict(intent.get("metadata") or {}),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise InvalidSignatureError(f"Unparseable webhook payload: {e}") from e

    @stripe_retry()
    def _send(self, fn, *args, **kwargs):
        return fn(*args, api_key=self.api_key, **kwargs)

    def _call(self, action: str, fn, *args, **kwargs):
        logger.info(f"StripeProcessor PaymentIntent.{action} {args[0] if args else ''}".rstrip())
        try:
            return self._send(fn, *args, **kwargs)
        except stripe.StripeError as e:
            logger.error(f"Stripe PaymentIntent.{action} failed: {e}")
            raise PaymentProcessorError(f"Payment processor error: {e}") from e

    @staticmethod
    def _to_authorization(intent) -> Authorization:
        return Authorization(
            auth_ref=intent.id,
            client_secret=intent.client_secret or "",
            state=map_intent_state(intent.status, intent.last_payment_error),
            amount_minor=int(intent.amount or 0),
            currency=intent.currency or "",
            metadata=dict(intent.metadata or {}),
        )
