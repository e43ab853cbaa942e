#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from checkout.data.models.cart import CartModel
from checkout.data.models.cart_line import CartLineModel
from checkout.data.models.payment_authorization import PaymentAuthorizationModel
from checkout.data.models.order import OrderModel
from checkout.data.models.order_item import OrderItemModel
from checkout.data.models.order_status_update import OrderStatusUpdateModel

__all__ = [
    "CartModel",
    "CartLineModel",
    "PaymentAuthorizationModel",
    "OrderModel",
    "OrderItemModel",
    "OrderStatusUpdateModel",
]
