# checkout/api/routers/orders.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from checkout.api.dependencies import RequestIdentity, get_identity
from checkout.data.database import get_db
from checkout.domain.errors import InvalidStatusTransitionError
from checkout.domain.schemas import OrderOut, StatusChangeIn
from checkout.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session):
    return OrderService(db)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    identity: RequestIdentity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """
    Pobiera szczegóły zamówienia.
    """
    svc = get_service(db)
    try:
        return svc.get_order(order_id, identity.account_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.patch("/{order_id}/status", response_model=OrderOut)
def change_status(
    order_id: int,
    payload: StatusChangeIn,
    db: Session = Depends(get_db),
):
    """
    Ręczna zmiana statusu (obsługa / magazyn).
    """
    svc = get_service(db)
    try:
        return svc.transition(order_id, payload.status.value, payload.message)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStatusTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
