# checkout/repos/order_repo.py
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from checkout.data.models.order import OrderModel
from checkout.data.models.order_status_update import OrderStatusUpdateModel
from checkout.domain.errors import DuplicateOrderError


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_order(self, order_id: int) -> Optional[OrderModel]:
        return self.db.get(OrderModel, order_id)

    def get_by_payment_ref(self, payment_ref: str) -> Optional[OrderModel]:
        return self.db.execute(
            select(OrderModel)
            .where(OrderModel.payment_ref == payment_ref)
            .options(selectinload(OrderModel.items), selectinload(OrderModel.status_updates))
        ).scalar_one_or_none()

    def create_order(self, order: OrderModel) -> OrderModel:
        """Zamowienie + pozycje + pierwszy wpis logu w jednej transakcji."""
        self.db.add(order)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if self._is_payment_ref_conflict(order.payment_ref):
                raise DuplicateOrderError(order.payment_ref) from e
            raise
        self.db.refresh(order)
        return order

    def _is_payment_ref_conflict(self, payment_ref: str) -> bool:
        # komunikaty IntegrityError roznia sie miedzy sterownikami,
        # wiec sprawdzamy czy wiersz faktycznie istnieje
        return self.db.execute(
            select(OrderModel.id).where(OrderModel.payment_ref == payment_ref)
        ).first() is not None

    def update_order_status(self, order: OrderModel, status: str, message: str) -> OrderModel:
        order.status = status
        order.status_updates.append(OrderStatusUpdateModel(status=status, message=message))
        self.db.commit()
        self.db.refresh(order)
        return order
