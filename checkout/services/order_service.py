# checkout/services/order_service.py
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from checkout.data.models.order import OrderModel
from checkout.domain.errors import InvalidStatusTransitionError
from checkout.domain.status import OrderStatus, can_transition
from checkout.repos.order_repo import OrderRepo
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


def serialize_order(order: OrderModel) -> Dict[str, Any]:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "payment_ref": order.payment_ref,
        "account_id": order.account_id,
        "status": order.status,
        "subtotal": order.subtotal,
        "shipping": order.shipping,
        "tax": order.tax,
        "total": order.total,
        "shipping_address_id": order.shipping_address_id,
        "source": order.source,
        "created_at": order.created_at,
        "items": [
            {
                "product_id": i.product_id,
                "variant_id": i.variant_id,
                "name": i.name,
                "quantity": i.quantity,
                "unit_price": i.unit_price,
            }
            for i in order.items
        ],
        "status_updates": [
            {"status": u.status, "message": u.message, "created_at": u.created_at}
            for u in order.status_updates
        ],
    }


class OrderService:
    """
    Odczyt zamowien i reczne zmiany statusu.
    Tworzenie zamowien nalezy wylacznie do ReconciliationService.
    """

    def __init__(self, db: Session):
        self.repo = OrderRepo(db)

    def get_order(self, order_id: int, account_id: Optional[int]) -> Dict[str, Any]:
        """
        Use Case: Pobranie zamówienia (Query).
        """
        order = self.repo.get_order(order_id)

        if not order:
            raise LookupError("Zamówienie nie istnieje")

        if order.account_id is not None and order.account_id != account_id:
            raise PermissionError("Brak dostępu do zamówienia")

        return serialize_order(order)

    def transition(self, order_id: int, status: str, message: Optional[str] = None) -> Dict[str, Any]:
        """
        Use Case: Zmiana statusu (Command). Dopisuje wpis do logu statusow.
        """
        order = self.repo.get_order(order_id)
        if not order:
            raise LookupError("Zamówienie nie istnieje")

        current = OrderStatus(order.status)
        target = OrderStatus(status)
        if not can_transition(current, target):
            raise InvalidStatusTransitionError(
                f"Niedozwolona zmiana statusu {current.value} -> {target.value}"
            )

        order = self.repo.update_order_status(
            order,
            target.value,
            message or f"Status updated to {target.value}",
        )
        logger.info(f"Order {order.order_number}: {current.value} -> {target.value}")
        return serialize_order(order)
