# checkout/services/payment_service.py
import hashlib
import json
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from checkout.data.models.cart import CartModel
from checkout.data.models.payment_authorization import PaymentAuthorizationModel
from checkout.domain.errors import EmptyCartError
from checkout.domain.pricing import compute_pricing, to_minor_units
from checkout.domain.snapshot import CartSnapshot, PricingBreakdown, SnapshotLine
from checkout.domain.status import PaymentState
from checkout.gateway.port import PaymentProcessor
from checkout.repos.authorization_repo import AuthorizationRepo
from checkout.repos.cart_repo import CartRepo
from checkout.services.product_client import ProductClient
from checkout.services.snapshot_codec import SnapshotCodec
from checkout.utils.settings import CURRENCY
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


class PaymentAuthorizationService:
    """
    Otwiera autoryzacje platnosci dla koszyka.

    1. Czyta linie koszyka i aktualne ceny z katalogu
    2. Liczy subtotal / shipping / tax / total (domain.pricing)
    3. Tworzy autoryzacje w procesorze na total w centach
    4. Doczepia zakodowany snapshot + ceny jako metadata (osobne wywolanie)

    Otwarta, niezuzyta autoryzacja dla niezmienionego koszyka jest zwracana
    ponownie zamiast tworzenia nowej.
    """

    def __init__(
        self,
        db: Session,
        product_client: ProductClient,
        processor: PaymentProcessor,
        codec: Optional[SnapshotCodec] = None,
    ):
        self.cart_repo = CartRepo(db)
        self.repo = AuthorizationRepo(db)
        self.product_client = product_client
        self.processor = processor
        self.codec = codec or SnapshotCodec()

    def build_snapshot(self, cart: CartModel, shipping_address_id: Optional[str] = None) -> CartSnapshot:
        cart_lines = self.cart_repo.get_lines(cart.id)
        if not cart_lines:
            raise EmptyCartError("Nie mozna otworzyc platnosci dla pustego koszyka")

        lines = []
        for line in cart_lines:
            # cena zawsze z katalogu, nigdy z cache
            price, name, _ = self.product_client.resolve(line.product_id, line.variant_id)
            lines.append(
                SnapshotLine(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    quantity=line.quantity,
                    unit_price=price,
                    name=name,
                )
            )

        return CartSnapshot(
            lines=tuple(lines),
            pricing=compute_pricing((l.unit_price, l.quantity) for l in lines),
            cart_id=cart.id,
            account_id=cart.account_id,
            shipping_address_id=shipping_address_id,
        )

    def quote(self, cart: CartModel) -> PricingBreakdown:
        return self.build_snapshot(cart).pricing

    def open(self, cart: CartModel, shipping_address_id: Optional[str] = None) -> Dict[str, Any]:
        snapshot = self.build_snapshot(cart, shipping_address_id)
        # kodowanie przed kontaktem z procesorem - za duzy koszyk odpada tutaj
        metadata = dict(self.codec.encode(snapshot))
        fingerprint = hashlib.sha256(
            json.dumps(sorted(metadata.items())).encode()
        ).hexdigest()

        reusable = self._reusable_authorization(cart.id, fingerprint)
        if reusable is not None:
            return self._result(reusable.auth_ref, reusable.client_secret, snapshot, reused=True)

        amount_minor = to_minor_units(snapshot.pricing.total)
        logger.info(
            f"Opening authorization for cart {cart.id}: total {snapshot.pricing.total} "
            f"({amount_minor} minor units, {snapshot.item_count} lines)"
        )

        origin = {"cart_id": str(cart.id)}
        if cart.account_id is not None:
            origin["account_id"] = str(cart.account_id)

        # numer proby - po odrzuconej platnosci ten sam koszyk dostaje nowa autoryzacje
        attempt = self.repo.count_for_cart(cart.id)
        authorization = self.processor.create_authorization(
            amount_minor=amount_minor,
            currency=CURRENCY,
            idempotency_key=f"cart-{cart.id}-v{cart.version}-{fingerprint[:16]}-{attempt}",
            metadata=origin,
        )
        # create nie przyjmuje calego payloadu metadata, wiec osobny update
        self.processor.update_metadata(authorization.auth_ref, metadata)

        existing = self.repo.get_by_ref(authorization.auth_ref)
        if existing is None:
            self.repo.create(
                PaymentAuthorizationModel(
                    auth_ref=authorization.auth_ref,
                    client_secret=authorization.client_secret,
                    cart_id=cart.id,
                    account_id=cart.account_id,
                    amount_minor=amount_minor,
                    currency=CURRENCY,
                    fingerprint=fingerprint,
                    status="OPEN",
                )
            )
        logger.info(f"Authorization {authorization.auth_ref} opened for cart {cart.id}")

        return self._result(authorization.auth_ref, authorization.client_secret, snapshot, reused=False)

    def _reusable_authorization(self, cart_id: int, fingerprint: str) -> Optional[PaymentAuthorizationModel]:
        current = self.repo.get_open_for_cart(cart_id)
        if current is None:
            return None

        if current.fingerprint != fingerprint:
            logger.info(f"Cart {cart_id} changed since {current.auth_ref}, superseding it")
            self.repo.set_status(current.auth_ref, "SUPERSEDED", only_if="OPEN")
            return None

        state = self.processor.retrieve_authorization(current.auth_ref).state
        if state != PaymentState.PENDING:
            # juz rozstrzygnieta - rekonsyliacja ja oznaczy, tu nie uzywamy ponownie
            logger.info(f"Authorization {current.auth_ref} is {state.value}, not reusing")
            if state == PaymentState.FAILED:
                self.repo.set_status(current.auth_ref, "SUPERSEDED", only_if="OPEN")
            return None

        logger.info(f"Reusing open authorization {current.auth_ref} for cart {cart_id}")
        return current

    @staticmethod
    def _result(auth_ref: str, client_secret: str, snapshot: CartSnapshot, reused: bool) -> Dict[str, Any]:
        return {
            "auth_ref": auth_ref,
            "client_secret": client_secret,
            "pricing": snapshot.pricing,
            "reused": reused,
        }
