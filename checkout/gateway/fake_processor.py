"""In-memory payment processor for development and testing.

Keeps authorizations in a dict, lets tests settle them as succeeded or failed,
and signs webhook payloads with stripe-python's `t=...,v1=...` scheme, so
the webhook endpoint's signature check is exercised end to end.
"""

import json
import time
from dataclasses import replace
from typing import Dict, Mapping, Optional
from uuid import uuid4

import stripe

from checkout.domain.errors import InvalidSignatureError, PaymentProcessorError
from checkout.domain.status import PaymentState
from checkout.gateway.port import Authorization, PaymentProcessor, WebhookEvent


class FakeProcessor(PaymentProcessor):
    """Configurable fake processor."""

    def __init__(self, webhook_secret: str = "whsec_test", tolerance: int = 300) -> None:
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        self.authorizations: Dict[str, Authorization] = {}
        self.idempotency: Dict[str, str] = {}
        self.calls: list[dict] = []
        self.unavailable = False

    def configure(self, unavailable: bool = False) -> None:
        """Simulate an unreachable processor."""
        self.unavailable = unavailable

    def create_authorization(
        self,
        amount_minor: int,
        currency: str,
        idempotency_key: str,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> Authorization:
        self._record("create_authorization", amount_minor=amount_minor, currency=currency)
        if idempotency_key in self.idempotency:
            return self.authorizations[self.idempotency[idempotency_key]]

        auth_ref = f"pi_fake_{uuid4().hex[:16]}"
        authorization = Authorization(
            auth_ref=auth_ref,
            client_secret=f"{auth_ref}_secret_{uuid4().hex[:12]}",
            state=PaymentState.PENDING,
            amount_minor=amount_minor,
            currency=currency,
            metadata=dict(metadata or {}),
        )
        self.authorizations[auth_ref] = authorization
        self.idempotency[idempotency_key] = auth_ref
        return authorization

    def update_metadata(self, auth_ref: str, metadata: Mapping[str, str]) -> Authorization:
        self._record("update_metadata", auth_ref=auth_ref, keys=len(metadata))
        authorization = self._get(auth_ref)
        merged = {**authorization.metadata, **metadata}
        self.authorizations[auth_ref] = replace(authorization, metadata=merged)
        return self.authorizations[auth_ref]

    def retrieve_authorization(self, auth_ref: str) -> Authorization:
        self._record("retrieve_authorization", auth_ref=auth_ref)
        return self._get(auth_ref)

    def construct_event(self, payload: bytes, signature_header: Optional[str]) -> WebhookEvent:
        if not signature_header or not self.webhook_secret:
            raise InvalidSignatureError("Missing signature or webhook secret")
        try:
            stripe.Webhook.construct_event(payload, signature_header, self.webhook_secret, tolerance=self.tolerance)
        except stripe.SignatureVerificationError as e:
            raise InvalidSignatureError(f"Signature verification failed: {e}") from e
        except ValueError as e:
            raise InvalidSignatureError(f"Unparseable webhook payload: {e}") from e
        try:
            body = json.loads(payload)
            return WebhookEvent(
                event_id=body["id"],
                type=body.get("type"),
                auth_ref=body.get("auth_ref"),
                metadata=dict(body.get("metadata") or {}),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise InvalidSignatureError(f"Unparseable webhook payload: {e}") from e

    # -- test helpers --------------------------------------------------

    def settle(self, auth_ref: str, succeeded: bool = True) -> Authorization:
        state = PaymentState.SUCCEEDED if succeeded else PaymentState.FAILED
        self.authorizations[auth_ref] = replace(self._get(auth_ref), state=state)
        return self.authorizations[auth_ref]

    def build_event(
        self,
        auth_ref: str,
        event_type: str = "payment.succeeded",
        metadata: Optional[Mapping[str, str]] = None,
        event_id: Optional[str] = None,
    ) -> tuple[bytes, str]:
        """Return (payload, signature header) for a webhook about `auth_ref`."""
        if metadata is None:
            metadata = self._get(auth_ref).metadata
        payload = json.dumps(
            {
                "id": event_id or f"evt_fake_{uuid4().hex[:12]}",
                "type": event_type,
                "auth_ref": auth_ref,
                "metadata": dict(metadata),
            }
        ).encode()
        return payload, self.sign(payload)

    def sign(self, payload: bytes, timestamp: Optional[int] = None, secret: Optional[str] = None) -> str:
        """Build a `Stripe-Signature` header for `payload`."""
        timestamp = int(time.time()) if timestamp is None else timestamp
        signature = stripe.WebhookSignature._compute_signature(
            f"{timestamp}.{payload.decode()}", secret or self.webhook_secret
        )
        return f"t={timestamp},v1={signature}"

    def _get(self, auth_ref: str) -> Authorization:
        if self.unavailable:
            raise PaymentProcessorError("Fake processor is unavailable")
        try:
            return self.authorizations[auth_ref]
        except KeyError:
            raise PaymentProcessorError(f"Unknown authorization {auth_ref}") from None

    def _record(self, method: str, **kwargs) -> None:
        if self.unavailable:
            raise PaymentProcessorError("Fake processor is unavailable")
        self.calls.append({"method": method, **kwargs})
