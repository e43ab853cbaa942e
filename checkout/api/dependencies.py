# checkout/api/dependencies.py
from dataclasses import asdict, dataclass
from typing import Optional

from fastapi import Cookie, Header, Response

from checkout.gateway import get_processor
from checkout.gateway.port import PaymentProcessor
from checkout.services.event_ledger import WebhookEventLedger
from checkout.services.identity_resolver import ResolvedCart, mint_session_token
from checkout.services.product_client import ProductClient

SESSION_COOKIE = "cartSessionId"
SESSION_COOKIE_MAX_AGE = 30 * 24 * 3600


@dataclass
class RequestIdentity:
    session_token: Optional[str]
    account_id: Optional[int]
    minted: bool = False


def get_identity(
    x_user_id: Optional[int] = Header(None),
    cart_session_id: Optional[str] = Cookie(None, alias=SESSION_COOKIE),
) -> RequestIdentity:
    # konto przychodzi z gatewaya (X-User-Id), anonim dostaje token od razu
    if cart_session_id is None and x_user_id is None:
        return RequestIdentity(session_token=mint_session_token(), account_id=None, minted=True)
    return RequestIdentity(session_token=cart_session_id, account_id=x_user_id)


def apply_session_cookie(response: Response, identity: RequestIdentity, resolved: ResolvedCart) -> None:
    """Ustawia cookie gdy token jest nowy albo zostal wymieniony po polaczeniu koszykow."""
    if resolved.session_token and (identity.minted or resolved.merged):
        response.set_cookie(
            SESSION_COOKIE,
            resolved.session_token,
            max_age=SESSION_COOKIE_MAX_AGE,
            httponly=True,
            samesite="lax",
        )


def get_product_client() -> ProductClient:
    return ProductClient()


def get_payment_processor() -> PaymentProcessor:
    return get_processor()


def get_event_ledger() -> WebhookEventLedger:
    return WebhookEventLedger()


def pricing_dict(pricing) -> Optional[dict]:
    return asdict(pricing) if pricing is not None else None
