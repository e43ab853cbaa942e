# checkout/domain/snapshot.py
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple


@dataclass(frozen=True)
class PricingBreakdown:
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal


@dataclass(frozen=True)
class SnapshotLine:
    product_id: int
    variant_id: Optional[int]
    quantity: int
    unit_price: Decimal
    name: str


@dataclass(frozen=True)
class CartSnapshot:
    """Niezmienna kopia koszyka z chwili otwarcia autoryzacji."""

    lines: Tuple[SnapshotLine, ...]
    pricing: PricingBreakdown
    cart_id: Optional[int] = None
    account_id: Optional[int] = None
    shipping_address_id: Optional[str] = None

    @property
    def item_count(self) -> int:
        return len(self.lines)


class SnapshotLayout(str, Enum):
    PER_ITEM = "PER_ITEM"
    BLOB = "BLOB"
    CHUNKED = "CHUNKED"
    UNAVAILABLE = "UNAVAILABLE"


@dataclass(frozen=True)
class DecodedSnapshot:
    layout: SnapshotLayout
    snapshot: Optional[CartSnapshot] = None
    # pola pochodzenia czytane nawet gdy pozycji brak
    cart_id: Optional[int] = None
    account_id: Optional[int] = None
    problems: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def available(self) -> bool:
        return self.layout != SnapshotLayout.UNAVAILABLE
