# checkout/api/routers/carts.py
from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from checkout.api.dependencies import (
    RequestIdentity,
    apply_session_cookie,
    get_identity,
    get_product_client,
    pricing_dict,
)
from checkout.data.database import get_db
from checkout.domain.errors import CartConflictError, CatalogError, ProductNotFoundError
from checkout.domain.schemas import CartOut, ItemIn, LineUpdateIn
from checkout.services.cart_clearing import CartClearingCoordinator
from checkout.services.cart_service import CartService
from checkout.services.identity_resolver import CartIdentityResolver
from checkout.services.product_client import ProductClient

router = APIRouter(prefix="/cart", tags=["cart"])


def get_service(db: Session, product_client: ProductClient):
    return CartService(db=db, product_client=product_client)


def get_resolver(db: Session, cart_service: CartService):
    return CartIdentityResolver(db=db, cart_service=cart_service)


def _cart_out(svc: CartService, cart) -> dict:
    view = svc.view(cart)
    view["pricing"] = pricing_dict(view["pricing"])
    return view


@router.get("", response_model=CartOut)
def get_cart(
    response: Response,
    identity: RequestIdentity = Depends(get_identity),
    db: Session = Depends(get_db),
    product_client: ProductClient = Depends(get_product_client),
):
    """
    Zwraca koszyk z aktualnymi cenami. Nie tworzy koszyka,
    ale laczy koszyk anonimowy z kontem przy pierwszym kontakcie.
    """
    svc = get_service(db, product_client)
    try:
        resolved = get_resolver(db, svc).resolve(identity.session_token, identity.account_id, create=False)
        apply_session_cookie(response, identity, resolved)
        return _cart_out(svc, resolved.cart)
    except CartConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CatalogError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/items", response_model=CartOut)
def add_item(
    payload: ItemIn,
    response: Response,
    identity: RequestIdentity = Depends(get_identity),
    db: Session = Depends(get_db),
    product_client: ProductClient = Depends(get_product_client),
):
    """
    Dodaje produkt do koszyka (tworzy koszyk gdy trzeba).
    """
    svc = get_service(db, product_client)
    try:
        resolved = get_resolver(db, svc).resolve(identity.session_token, identity.account_id)
        apply_session_cookie(response, identity, resolved)
        cart = svc.add_item(
            resolved.cart,
            product_id=payload.product_id,
            quantity=payload.quantity,
            variant_id=payload.variant_id,
        )
        return _cart_out(svc, cart)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CartConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CatalogError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.patch("/items/{line_id}", response_model=CartOut)
def update_item(
    line_id: int,
    payload: LineUpdateIn,
    response: Response,
    identity: RequestIdentity = Depends(get_identity),
    db: Session = Depends(get_db),
    product_client: ProductClient = Depends(get_product_client),
):
    svc = get_service(db, product_client)
    try:
        resolved = get_resolver(db, svc).resolve(identity.session_token, identity.account_id)
        apply_session_cookie(response, identity, resolved)
        cart = svc.update_line(resolved.cart, line_id, payload.quantity)
        return _cart_out(svc, cart)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CartConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CatalogError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.delete("/items/{line_id}", response_model=CartOut)
def remove_item(
    line_id: int,
    response: Response,
    identity: RequestIdentity = Depends(get_identity),
    db: Session = Depends(get_db),
    product_client: ProductClient = Depends(get_product_client),
):
    svc = get_service(db, product_client)
    try:
        resolved = get_resolver(db, svc).resolve(identity.session_token, identity.account_id)
        apply_session_cookie(response, identity, resolved)
        cart = svc.remove_line(resolved.cart, line_id)
        return _cart_out(svc, cart)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CartConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CatalogError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/clear")
def clear_cart(
    identity: RequestIdentity = Depends(get_identity),
    db: Session = Depends(get_db),
    product_client: ProductClient = Depends(get_product_client),
):
    """
    Czyści koszyk. Bezpieczne do wielokrotnego wywołania.
    """
    svc = get_service(db, product_client)
    try:
        resolved = get_resolver(db, svc).resolve(identity.session_token, identity.account_id, create=False)
    except CartConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if resolved.cart is None:
        return {"message": "No cart to clear", "removed": 0}

    removed = CartClearingCoordinator(db).clear(resolved.cart.id)
    return {"message": "Cart cleared", "removed": removed}
