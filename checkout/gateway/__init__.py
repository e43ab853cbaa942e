"""Payment processor factory.

get_processor() / set_processor() swap implementations:
- StripeProcessor in production (PAYMENT_PROCESSOR=stripe)
- FakeProcessor for development and tests (PAYMENT_PROCESSOR=fake)
"""

from checkout.gateway.fake_processor import FakeProcessor
from checkout.gateway.port import PaymentProcessor
from checkout.gateway.stripe_processor import StripeProcessor
from checkout.utils.settings import (
    PAYMENT_PROCESSOR,
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
    WEBHOOK_TOLERANCE_SECONDS,
)

_current_processor: PaymentProcessor | None = None


def _build_default() -> PaymentProcessor:
    if PAYMENT_PROCESSOR == "fake":
        return FakeProcessor(webhook_secret=STRIPE_WEBHOOK_SECRET or "whsec_test", tolerance=WEBHOOK_TOLERANCE_SECONDS)
    return StripeProcessor(
        api_key=STRIPE_SECRET_KEY,
        webhook_secret=STRIPE_WEBHOOK_SECRET,
        api_base=STRIPE_API_BASE,
        tolerance=WEBHOOK_TOLERANCE_SECONDS,
    )


def get_processor() -> PaymentProcessor:
    """Return the active processor, built from settings on first use."""
    global _current_processor
    if _current_processor is None:
        _current_processor = _build_default()
    return _current_processor


def set_processor(processor: PaymentProcessor) -> None:
    """Override the active processor (useful for tests)."""
    global _current_processor
    _current_processor = processor


def reset_processor() -> None:
    global _current_processor
    _current_processor = None
