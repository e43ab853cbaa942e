# checkout/repos/cart_repo.py
from typing import List, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session

from checkout.data.models.cart import CartModel
from checkout.data.models.cart_line import CartLineModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    # odczyt
    def get_cart(self, cart_id: int) -> Optional[CartModel]:
        return self.db.get(CartModel, cart_id)

    def get_by_account(self, account_id: int) -> Optional[CartModel]:
        return self.db.execute(
            select(CartModel).where(CartModel.account_id == account_id)
        ).scalar_one_or_none()

    def get_by_session(self, session_token: str) -> Optional[CartModel]:
        return self.db.execute(
            select(CartModel).where(CartModel.session_token == session_token)
        ).scalar_one_or_none()

    def get_lines(self, cart_id: int) -> List[CartLineModel]:
        return list(
            self.db.execute(
                select(CartLineModel)
                .where(CartLineModel.cart_id == cart_id)
                .order_by(CartLineModel.id)
            ).scalars()
        )

    def get_line(self, line_id: int) -> Optional[CartLineModel]:
        return self.db.get(CartLineModel, line_id)

    def find_line(self, cart_id: int, product_id: int, variant_id: Optional[int]) -> Optional[CartLineModel]:
        # variant NULL nie jest pilnowany przez unique constraint, stad jawne "IS NULL"
        variant_clause = (
            CartLineModel.variant_id.is_(None)
            if variant_id is None
            else CartLineModel.variant_id == variant_id
        )
        return self.db.execute(
            select(CartLineModel).where(
                CartLineModel.cart_id == cart_id,
                CartLineModel.product_id == product_id,
                variant_clause,
            )
        ).scalar_one_or_none()

    # zapis
    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.commit()
        self.db.refresh(cart)
        return cart

    def add_line(self, line: CartLineModel) -> CartLineModel:
        self.db.add(line)
        self.db.flush()
        return line

    def delete_line(self, line: CartLineModel) -> None:
        self.db.delete(line)
        self.db.flush()

    def delete_lines(self, cart_id: int) -> int:
        result = self.db.execute(
            delete(CartLineModel).where(CartLineModel.cart_id == cart_id)
        )
        return result.rowcount

    def update_cart_version(self, cart_id: int, old_version: int, new_data: dict) -> int:
        # optimistic locking: update ... where id = :id and version = :old
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def claim_session_cart(self, cart_id: int, session_token: str, account_id: int) -> int:
        """Przepisuje anonimowy koszyk na konto, tylko jesli nadal jest anonimowy."""
        result = self.db.execute(
            update(CartModel)
            .where(
                CartModel.id == cart_id,
                CartModel.session_token == session_token,
                CartModel.account_id.is_(None),
            )
            .values(account_id=account_id, session_token=None, version=CartModel.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def detach_session(self, cart_id: int) -> int:
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.session_token.is_not(None))
            .values(session_token=None, version=CartModel.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()

    def refresh(self, obj):
        self.db.refresh(obj)
