"""Payment processor port (abstract interface).

Contract every processor adapter implements, so the authorization manager and
the reconciliation engine never talk to a concrete processor SDK directly.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from checkout.domain.status import PaymentState


@dataclass(frozen=True)
class Authorization:
    """Processor-side record of an intended charge."""

    auth_ref: str
    client_secret: str
    state: PaymentState
    amount_minor: int
    currency: str
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookEvent:
    """Verified, processor-neutral webhook event.

    `type` is "payment.succeeded", "payment.failed" or None for event types
    the service does not act on.
    """

    event_id: str
    type: Optional[str]
    auth_ref: Optional[str]
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def observed_state(self) -> Optional[PaymentState]:
        if self.type == "payment.succeeded":
            return PaymentState.SUCCEEDED
        if self.type == "payment.failed":
            return PaymentState.FAILED
        return None


class PaymentProcessor(ABC):
    """Abstract payment processor interface."""

    @abstractmethod
    def create_authorization(
        self,
        amount_minor: int,
        currency: str,
        idempotency_key: str,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> Authorization:
        """Open an authorization for `amount_minor` (smallest currency unit)."""
        ...

    @abstractmethod
    def update_metadata(self, auth_ref: str, metadata: Mapping[str, str]) -> Authorization:
        """Attach metadata to an existing authorization."""
        ...

    @abstractmethod
    def retrieve_authorization(self, auth_ref: str) -> Authorization:
        """Fetch current state and metadata of an authorization."""
        ...

    @abstractmethod
    def construct_event(self, payload: bytes, signature_header: Optional[str]) -> WebhookEvent:
        """Verify the signature and parse the payload.

        Raises InvalidSignatureError when the payload cannot be trusted.
        """
        ...
