# checkout/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from decimal import Decimal
from datetime import datetime

from checkout.domain.status import OrderStatus


class ItemIn(BaseModel):
    """Schema dla dodawania produktu do koszyka."""

    product_id: int = Field(..., gt=0, description="ID produktu (musi być > 0)")
    variant_id: Optional[int] = Field(None, gt=0, description="ID wariantu produktu")
    quantity: int = Field(1, gt=0, description="Ilość produktu (musi być > 0)")


class LineUpdateIn(BaseModel):
    """Schema dla zmiany ilości pozycji; 0 usuwa pozycję."""

    quantity: int = Field(..., ge=0, description="Nowa ilość (0 = usuń)")


class PricingOut(BaseModel):
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal

    model_config = ConfigDict(from_attributes=True)


class CartLineOut(BaseModel):
    """Schema dla pozycji koszyka (response). Cena zawsze aktualna z katalogu."""

    line_id: int
    product_id: int
    variant_id: Optional[int] = None
    name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class CartOut(BaseModel):
    """Schema dla koszyka (response)."""

    cart_id: Optional[int] = None
    account_id: Optional[int] = None
    items: List[CartLineOut]
    item_count: int
    pricing: Optional[PricingOut] = None


class AuthorizationIn(BaseModel):
    """Schema dla otwarcia płatności - tożsamość z nagłówka/cookie."""

    shipping_address_id: Optional[str] = Field(None, max_length=64)


class AuthorizationOut(BaseModel):
    auth_ref: str
    client_secret: str
    pricing: PricingOut
    reused: bool


class OrderItemOut(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    name: str
    quantity: int
    unit_price: Decimal


class StatusUpdateOut(BaseModel):
    status: str
    message: str
    created_at: datetime


class OrderOut(BaseModel):
    """Schema dla zamówienia (response)."""

    id: int
    order_number: str
    payment_ref: str
    account_id: Optional[int] = None
    status: str
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal
    shipping_address_id: Optional[str] = None
    source: str
    created_at: datetime
    items: List[OrderItemOut]
    status_updates: List[StatusUpdateOut]


class ConfirmationOut(BaseModel):
    """
    Wynik sciezki confirm.
    status: ready | pending | payment_failed | reconciliation_failed
    """

    status: str
    order: Optional[OrderOut] = None
    detail: Optional[str] = None


class StatusChangeIn(BaseModel):
    status: OrderStatus
    message: Optional[str] = Field(None, max_length=500)


class WebhookAck(BaseModel):
    received: bool = True
    duplicate: bool = False
    outcome: Optional[str] = None
