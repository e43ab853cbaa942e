# checkout/services/reconciliation_service.py
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional, Tuple

from sqlalchemy.orm import Session

from checkout.data.models.order import OrderModel
from checkout.data.models.order_item import OrderItemModel
from checkout.data.models.order_status_update import OrderStatusUpdateModel
from checkout.domain.errors import DuplicateOrderError, ReconciliationImpossibleError
from checkout.domain.pricing import compute_pricing
from checkout.domain.snapshot import CartSnapshot, SnapshotLine
from checkout.domain.status import OrderStatus, PaymentState, Trigger, PAYMENT_TRANSITIONS
from checkout.gateway.port import PaymentProcessor, WebhookEvent
from checkout.repos.authorization_repo import AuthorizationRepo
from checkout.repos.cart_repo import CartRepo
from checkout.repos.order_repo import OrderRepo
from checkout.services.cart_clearing import CartClearingCoordinator
from checkout.services.notification_service import NotificationService
from checkout.services.product_client import ProductClient
from checkout.services.snapshot_codec import SnapshotCodec
from checkout.utils.retry import conflict_retry
from checkout.utils.logging import get_logger

logger = get_logger(__name__)

LIVE_CART = "LIVE_CART"


@dataclass
class ReconciliationResult:
    outcome: str  # CREATED, UPDATED, UNCHANGED, IGNORED
    order: Optional[OrderModel] = None


@dataclass
class ConfirmationResult:
    state: str  # ready, pending, payment_failed
    order: Optional[OrderModel] = None


def generate_order_number() -> str:
    return f"ORD-{datetime.now(timezone.utc):%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


class ReconciliationService:
    """
    Zamienia potwierdzona platnosc w dokladnie jedno zamowienie.

    Wolaja go dwie niezalezne sciezki: confirm (przekierowanie przegladarki)
    i webhook procesora, w dowolnej kolejnosci i rownolegle. Jedynym
    zabezpieczeniem jest unikalny payment_ref w tabeli orders: przegrany
    wyscig konczy sie DuplicateOrderError i ponowieniem od kroku 1, ktory
    znajduje juz zamowienie i robi tylko zmiane statusu.
    """

    def __init__(
        self,
        db: Session,
        processor: PaymentProcessor,
        product_client: ProductClient,
        codec: Optional[SnapshotCodec] = None,
        clearing: Optional[CartClearingCoordinator] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.repo = OrderRepo(db)
        self.cart_repo = CartRepo(db)
        self.auth_repo = AuthorizationRepo(db)
        self.processor = processor
        self.product_client = product_client
        self.codec = codec or SnapshotCodec()
        self.clearing = clearing or CartClearingCoordinator(db)
        self.notifications = notifications or NotificationService()

    # =====================================================
    # ENGINE
    # =====================================================
    @conflict_retry(DuplicateOrderError)
    def reconcile(
        self,
        payment_ref: str,
        trigger: str,
        observed_state: str,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> ReconciliationResult:
        trigger = Trigger(trigger)
        observed = PaymentState(observed_state)

        # 1. istniejace zamowienie - tylko zmiana statusu
        order = self.repo.get_by_payment_ref(payment_ref)
        if order is not None:
            result = self._apply_observation(order, observed, trigger)
            self._settle_cart(payment_ref, order.cart_id, created=False)
            return result

        # 2. nieudana platnosc bez zamowienia - nic nie robimy
        if observed != PaymentState.SUCCEEDED:
            logger.info(f"Payment {payment_ref} observed as {observed.value} via {trigger.value}, no order to create")
            return ReconciliationResult(outcome="IGNORED")

        # 3. skad wziac pozycje
        if metadata is None:
            metadata = self.processor.retrieve_authorization(payment_ref).metadata
        source, snapshot = self._gather_items(payment_ref, metadata)

        # 4. insert - unikalny payment_ref pilnuje wyscigu
        order = self.repo.create_order(self._build_order(payment_ref, trigger, source, snapshot))
        logger.info(
            f"Order {order.order_number} created for payment {payment_ref} "
            f"via {trigger.value} from {source} ({len(order.items)} items, total {order.total})"
        )

        # 5. czyszczenie koszyka, niezaleznie od tego ktora sciezka wygrala
        self._settle_cart(payment_ref, order.cart_id, created=True)
        self.notifications.send_order_confirmation(order.id, order.order_number, order.account_id)

        return ReconciliationResult(outcome="CREATED", order=order)

    def _apply_observation(self, order: OrderModel, observed: PaymentState, trigger: Trigger) -> ReconciliationResult:
        current = OrderStatus(order.status)
        target = PAYMENT_TRANSITIONS.get((observed, current))
        if target is None:
            logger.info(
                f"Order {order.order_number} already {current.value}, "
                f"{observed.value} via {trigger.value} changes nothing"
            )
            return ReconciliationResult(outcome="UNCHANGED", order=order)

        order = self.repo.update_order_status(
            order,
            target.value,
            f"Payment {observed.value} (observed via {trigger.value})",
        )
        logger.info(f"Order {order.order_number}: {current.value} -> {target.value}")
        return ReconciliationResult(outcome="UPDATED", order=order)

    def _gather_items(self, payment_ref: str, metadata: Optional[Mapping[str, str]]) -> Tuple[str, CartSnapshot]:
        # (i) pola per-item, (ii) blob / kawalki
        decoded = self.codec.decode(metadata)
        if decoded.available:
            return decoded.layout.value, decoded.snapshot

        if decoded.problems:
            logger.warning(f"Snapshot for payment {payment_ref} unusable: {'; '.join(decoded.problems)}")

        # (iii) zywy koszyk po cart_id albo koncie z autoryzacji
        cart_id, account_id = decoded.cart_id, decoded.account_id
        authorization = self.auth_repo.get_by_ref(payment_ref)
        if authorization is not None:
            cart_id = cart_id if cart_id is not None else authorization.cart_id
            account_id = account_id if account_id is not None else authorization.account_id

        snapshot = self._live_cart_snapshot(cart_id, account_id)
        if snapshot is not None:
            logger.warning(f"Payment {payment_ref}: no metadata snapshot, using live cart {snapshot.cart_id}")
            return LIVE_CART, snapshot

        logger.error(
            f"UNRECOVERABLE reconciliation failure for payment {payment_ref}: "
            f"no item metadata and no live cart items (cart={cart_id}, account={account_id}). "
            f"Manual intervention required."
        )
        raise ReconciliationImpossibleError(payment_ref)

    def _live_cart_snapshot(self, cart_id: Optional[int], account_id: Optional[int]) -> Optional[CartSnapshot]:
        cart = self.cart_repo.get_cart(cart_id) if cart_id is not None else None
        if cart is None and account_id is not None:
            cart = self.cart_repo.get_by_account(account_id)
        if cart is None:
            return None

        lines = []
        for line in self.cart_repo.get_lines(cart.id):
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
        if not lines:
            return None

        return CartSnapshot(
            lines=tuple(lines),
            pricing=compute_pricing((l.unit_price, l.quantity) for l in lines),
            cart_id=cart.id,
            account_id=cart.account_id if cart.account_id is not None else account_id,
        )

    @staticmethod
    def _build_order(payment_ref: str, trigger: Trigger, source: str, snapshot: CartSnapshot) -> OrderModel:
        pricing = snapshot.pricing
        return OrderModel(
            order_number=generate_order_number(),
            payment_ref=payment_ref,
            account_id=snapshot.account_id,
            cart_id=snapshot.cart_id,
            status=OrderStatus.PROCESSING.value,
            subtotal=pricing.subtotal,
            shipping=pricing.shipping,
            tax=pricing.tax,
            total=pricing.total,
            shipping_address_id=snapshot.shipping_address_id,
            source=source,
            items=[
                OrderItemModel(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    name=line.name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                )
                for line in snapshot.lines
            ],
            status_updates=[
                OrderStatusUpdateModel(
                    status=OrderStatus.PROCESSING.value,
                    message=f"Payment {payment_ref} confirmed via {trigger.value}, order created from {source}",
                )
            ],
        )

    def _settle_cart(self, payment_ref: str, cart_id: Optional[int], created: bool) -> None:
        """
        Czysci koszyk raz na autoryzacje - pozniejsze doreczenia nie ruszaja
        koszyka, do ktorego klient zdazyl juz dodac nowe rzeczy.
        Sciezka bez tworzenia czysci tylko gdy autoryzacja nie jest jeszcze CONSUMED
        (np. proces padl miedzy insertem a czyszczeniem).
        """
        authorization = self.auth_repo.get_by_ref(payment_ref)
        if authorization is not None and authorization.status == "CONSUMED":
            return
        if authorization is None and not created:
            return

        self.clearing.clear(cart_id)
        if authorization is not None:
            self.auth_repo.set_status(payment_ref, "CONSUMED")

    # =====================================================
    # TRIGGERS
    # =====================================================
    def confirm(self, payment_ref: str) -> ConfirmationResult:
        """Sciezka przekierowania: pyta procesor o stan i rekonsyliuje."""
        authorization = self.processor.retrieve_authorization(payment_ref)

        if authorization.state == PaymentState.PENDING:
            existing = self.repo.get_by_payment_ref(payment_ref)
            if existing is not None:
                return ConfirmationResult(state="ready", order=existing)
            return ConfirmationResult(state="pending")

        result = self.reconcile(
            payment_ref,
            Trigger.CONFIRM.value,
            authorization.state.value,
            metadata=authorization.metadata,
        )
        if authorization.state == PaymentState.FAILED:
            return ConfirmationResult(state="payment_failed", order=result.order)
        return ConfirmationResult(state="ready", order=result.order)

    def handle_event(self, event: WebhookEvent) -> str:
        """Sciezka webhooka. Zwraca wynik do logu / ledgera."""
        observed = event.observed_state
        if observed is None or event.auth_ref is None:
            logger.info(f"Webhook event {event.event_id} of type {event.type} ignored")
            return "IGNORED"

        try:
            result = self.reconcile(
                event.auth_ref,
                Trigger.WEBHOOK.value,
                observed.value,
                metadata=event.metadata or None,
            )
        except ReconciliationImpossibleError:
            # trwaly blad - ponowne doreczenie nic nie zmieni
            return "RECONCILIATION_FAILED"
        return result.outcome
