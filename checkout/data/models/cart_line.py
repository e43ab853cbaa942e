# checkout/data/models/cart_line.py
from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from checkout.data.database import Base


class CartLineModel(Base):
    __tablename__ = "cart_lines"

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)
    variant_id = Column(Integer, nullable=True)

    # cena nie jest tu trzymana, zawsze czytana z katalogu
    quantity = Column(Integer, nullable=False)

    cart = relationship("CartModel", back_populates="lines")

    __table_args__ = (UniqueConstraint("cart_id", "product_id", "variant_id", name="u_cart_product_variant"),)
