# checkout/data/models/order.py
from sqlalchemy import Column, Integer, String, DateTime, Numeric
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from checkout.data.database import Base


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    order_number = Column(String(32), nullable=False)

    # jedno zamowienie na platnosc - na tym constraincie opiera sie rekonsyliacja
    payment_ref = Column(String(255), unique=True, nullable=False)

    account_id = Column(Integer, nullable=True, index=True)
    cart_id = Column(Integer, nullable=True)

    status = Column(String(20), nullable=False, default="PENDING")
    subtotal = Column(Numeric(10, 2), nullable=False)
    shipping = Column(Numeric(10, 2), nullable=False)
    tax = Column(Numeric(10, 2), nullable=False)
    total = Column(Numeric(10, 2), nullable=False)

    shipping_address_id = Column(String(64), nullable=True)
    source = Column(String(20), nullable=False)  # PER_ITEM, BLOB, CHUNKED, LIVE_CART

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )
    status_updates = relationship(
        "OrderStatusUpdateModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusUpdateModel.id",
    )
