# checkout/api/routers/checkout.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from checkout.api.dependencies import (
    RequestIdentity,
    apply_session_cookie,
    get_identity,
    get_payment_processor,
    get_product_client,
    pricing_dict,
)
from checkout.data.database import get_db
from checkout.domain.errors import (
    CartConflictError,
    CatalogError,
    EmptyCartError,
    PaymentProcessorError,
    ReconciliationImpossibleError,
    SnapshotTooLargeError,
)
from checkout.domain.schemas import AuthorizationIn, AuthorizationOut, ConfirmationOut
from checkout.gateway.port import PaymentProcessor
from checkout.services.cart_service import CartService
from checkout.services.identity_resolver import CartIdentityResolver
from checkout.services.order_service import serialize_order
from checkout.services.payment_service import PaymentAuthorizationService
from checkout.services.product_client import ProductClient
from checkout.services.reconciliation_service import ReconciliationService
from checkout.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])

# status sciezki confirm -> kod HTTP
CONFIRMATION_STATUS_CODES = {
    "ready": 200,
    "pending": 202,
    "payment_failed": 402,
    "reconciliation_failed": 422,
}


def get_payment_service(db: Session, product_client: ProductClient, processor: PaymentProcessor):
    return PaymentAuthorizationService(db=db, product_client=product_client, processor=processor)


def get_reconciliation_service(db: Session, product_client: ProductClient, processor: PaymentProcessor):
    return ReconciliationService(db=db, processor=processor, product_client=product_client)


@router.post("/authorization", response_model=AuthorizationOut)
def open_authorization(
    response: Response,
    payload: Optional[AuthorizationIn] = None,
    identity: RequestIdentity = Depends(get_identity),
    db: Session = Depends(get_db),
    product_client: ProductClient = Depends(get_product_client),
    processor: PaymentProcessor = Depends(get_payment_processor),
):
    """
    Otwiera (albo zwraca istniejaca) autoryzacje platnosci dla koszyka.
    Zwraca client_secret dla frontendu i rozbicie ceny.
    """
    resolver = CartIdentityResolver(db=db, cart_service=CartService(db=db, product_client=product_client))
    svc = get_payment_service(db, product_client, processor)
    shipping_address_id = payload.shipping_address_id if payload else None
    try:
        resolved = resolver.resolve(identity.session_token, identity.account_id, create=False)
        apply_session_cookie(response, identity, resolved)
        if resolved.cart is None:
            raise EmptyCartError("Koszyk nie istnieje albo jest pusty")

        result = svc.open(resolved.cart, shipping_address_id)
        result["pricing"] = pricing_dict(result["pricing"])
        return result
    except (EmptyCartError, SnapshotTooLargeError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CartConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except (PaymentProcessorError, CatalogError) as e:
        logger.error(f"Opening authorization failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/order", response_model=ConfirmationOut)
def confirm_order(
    response: Response,
    payment_ref: str = Query(..., alias="paymentRef", min_length=1),
    identity: RequestIdentity = Depends(get_identity),
    db: Session = Depends(get_db),
    product_client: ProductClient = Depends(get_product_client),
    processor: PaymentProcessor = Depends(get_payment_processor),
):
    """
    Powrot z przekierowania po platnosci.
    200 ready / 202 pending / 402 payment_failed / 422 reconciliation_failed
    """
    svc = get_reconciliation_service(db, product_client, processor)
    try:
        result = svc.confirm(payment_ref)
    except ReconciliationImpossibleError as e:
        response.status_code = CONFIRMATION_STATUS_CODES["reconciliation_failed"]
        return {
            "status": "reconciliation_failed",
            "detail": f"{e}. Payment was received, support has been notified.",
        }
    except (PaymentProcessorError, CatalogError) as e:
        raise HTTPException(status_code=502, detail=str(e))

    order = result.order
    if order is not None and order.account_id is not None and order.account_id != identity.account_id:
        raise HTTPException(status_code=403, detail="Brak dostępu do zamówienia")

    response.status_code = CONFIRMATION_STATUS_CODES[result.state]
    return {
        "status": result.state,
        "order": serialize_order(order) if order is not None else None,
    }
