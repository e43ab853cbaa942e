# checkout/data/models/order_status_update.py
from sqlalchemy import Column, Integer, ForeignKey, String, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from checkout.data.database import Base


class OrderStatusUpdateModel(Base):
    """Log zmian statusu - tylko dopisywanie."""

    __tablename__ = "order_status_updates"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    message = Column(String(500), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    order = relationship("OrderModel", back_populates="status_updates")
