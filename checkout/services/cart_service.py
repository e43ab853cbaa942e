# checkout/services/cart_service.py
from typing import Dict, Any, List, Optional

from sqlalchemy.orm import Session

from checkout.data.models.cart import CartModel
from checkout.data.models.cart_line import CartLineModel
from checkout.domain.errors import CartConflictError
from checkout.domain.pricing import compute_pricing, quantize
from checkout.repos.cart_repo import CartRepo
from checkout.services.product_client import ProductClient
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Magazyn koszyka: komendy (add, update, remove, merge) zmieniaja linie,
    query (view) czyta linie i dociaga aktualne ceny z katalogu.
    Ktory koszyk - decyduje CartIdentityResolver.
    """

    def __init__(self, db: Session, product_client: ProductClient):
        self.repo = CartRepo(db)
        self.product_client = product_client

    # query - odczyt
    def view(self, cart: Optional[CartModel]) -> Dict[str, Any]:
        if cart is None:
            return {
                "cart_id": None,
                "account_id": None,
                "items": [],
                "item_count": 0,
                "pricing": None,
            }

        items = self.priced_lines(cart.id)
        pricing = compute_pricing((i["unit_price"], i["quantity"]) for i in items) if items else None

        return {
            "cart_id": cart.id,
            "account_id": cart.account_id,
            "items": items,
            "item_count": sum(i["quantity"] for i in items),
            "pricing": pricing,
        }

    def priced_lines(self, cart_id: int) -> List[Dict[str, Any]]:
        """Linie koszyka z cena czytana na zywo z katalogu."""
        items = []
        for line in self.repo.get_lines(cart_id):
            price, name, _ = self.product_client.resolve(line.product_id, line.variant_id)
            items.append(
                {
                    "line_id": line.id,
                    "product_id": line.product_id,
                    "variant_id": line.variant_id,
                    "name": name,
                    "quantity": line.quantity,
                    "unit_price": price,
                    "line_total": quantize(price * line.quantity),
                }
            )
        return items

    # commands
    def add_item(
        self,
        cart: CartModel,
        product_id: int,
        quantity: int,
        variant_id: Optional[int] = None,
    ) -> CartModel:
        if quantity <= 0:
            raise ValueError("Ilosc musi byc wieksza niz 0")

        # walidacja produktu/wariantu w katalogu
        _, _, inventory = self.product_client.resolve(product_id, variant_id)

        existing = self.repo.find_line(cart.id, product_id, variant_id)
        new_quantity = quantity + (existing.quantity if existing else 0)
        if inventory < new_quantity:
            raise ValueError(f"Za malo sztuk w magazynie (dostepne: {inventory})")

        if existing:
            logger.info(
                f"Product {product_id} already in cart {cart.id}, "
                f"quantity {existing.quantity} -> {new_quantity}"
            )
            existing.quantity = new_quantity
        else:
            logger.info(f"Adding product {product_id} (variant {variant_id}) to cart {cart.id}")
            self.repo.add_line(
                CartLineModel(
                    cart_id=cart.id,
                    product_id=product_id,
                    variant_id=variant_id,
                    quantity=quantity,
                )
            )

        self._bump_version(cart)
        return cart

    def update_line(self, cart: CartModel, line_id: int, quantity: int) -> CartModel:
        """quantity == 0 usuwa linie."""
        if quantity < 0:
            raise ValueError("Ilosc nie moze byc ujemna")

        line = self._owned_line(cart, line_id)
        if quantity == 0:
            return self.remove_line(cart, line_id)

        _, _, inventory = self.product_client.resolve(line.product_id, line.variant_id)
        if inventory < quantity:
            raise ValueError(f"Za malo sztuk w magazynie (dostepne: {inventory})")

        line.quantity = quantity
        self._bump_version(cart)
        return cart

    def remove_line(self, cart: CartModel, line_id: int) -> CartModel:
        line = self._owned_line(cart, line_id)
        logger.info(f"Removing line {line_id} (product {line.product_id}) from cart {cart.id}")
        self.repo.delete_line(line)
        self._bump_version(cart)
        return cart

    def merge_into(self, source: CartModel, target: CartModel) -> int:
        """
        Przenosi linie anonimowego koszyka do koszyka konta.
        Ta sama para (produkt, wariant) - ilosci sie sumuja.
        Nie commituje - robi to resolver razem z czyszczeniem tozsamosci.
        """
        moved = 0
        for line in self.repo.get_lines(source.id):
            existing = self.repo.find_line(target.id, line.product_id, line.variant_id)
            if existing:
                existing.quantity += line.quantity
                self.repo.delete_line(line)
            else:
                line.cart_id = target.id
                self.repo.add_line(line)
            moved += 1

        logger.info(f"Merged {moved} lines from cart {source.id} into cart {target.id}")
        return moved

    def _owned_line(self, cart: CartModel, line_id: int) -> CartLineModel:
        line = self.repo.get_line(line_id)
        if not line:
            raise LookupError("Pozycja koszyka nie istnieje")
        if line.cart_id != cart.id:
            raise PermissionError("Brak dostepu do pozycji koszyka")
        return line

    def _bump_version(self, cart: CartModel):
        # optimistic locking na polu version
        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=cart.version,
            new_data={"version": cart.version + 1},
        )

        if rowcount == 0:
            self.repo.rollback()
            raise CartConflictError(
                "Konflikt wspolbieznosci - koszyk zostal zmodyfikowany przez inna operacje"
            )

        self.repo.commit()
        self.repo.refresh(cart)
        logger.info(f"Cart {cart.id} saved, version {cart.version}")
