# checkout/data/models/payment_authorization.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey

from checkout.data.database import Base


class PaymentAuthorizationModel(Base):
    __tablename__ = "payment_authorizations"

    id = Column(Integer, primary_key=True)
    auth_ref = Column(String(255), unique=True, nullable=False)
    client_secret = Column(String(255), nullable=False)

    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="SET NULL"), nullable=True, index=True)
    account_id = Column(Integer, nullable=True)

    amount_minor = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    fingerprint = Column(String(64), nullable=False)

    status = Column(String(20), nullable=False, default="OPEN")  # OPEN, SUPERSEDED, CONSUMED
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
