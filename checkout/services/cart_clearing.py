# checkout/services/cart_clearing.py
from typing import Optional

from sqlalchemy.orm import Session

from checkout.repos.cart_repo import CartRepo
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


class CartClearingCoordinator:
    """
    Oproznia koszyk po udanej platnosci. Wolaja go obie sciezki
    (confirm i webhook), niezaleznie i czasem rownolegle - drugie
    wywolanie usuwa 0 linii i to jest sukces.
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)

    def clear(self, cart_id: Optional[int]) -> int:
        if cart_id is None:
            return 0

        cart = self.repo.get_cart(cart_id)
        if not cart:
            logger.warning(f"Cart {cart_id} not found, nothing to clear")
            return 0

        deleted = self.repo.delete_lines(cart_id)
        # wiersz koszyka zostaje, odpinamy tylko token sesji anonimowej
        detached = self.repo.detach_session(cart_id)
        self.repo.commit()

        logger.info(
            f"Cart {cart_id} cleared: {deleted} lines removed"
            + (", session token detached" if detached else "")
        )
        return deleted
