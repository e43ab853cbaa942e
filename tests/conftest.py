import copy
import os
import tempfile

# konfiguracja musi byc ustawiona zanim zaimportujemy cokolwiek z checkout
_DB_DIR = tempfile.mkdtemp(prefix="checkout-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/checkout.db"
os.environ["PAYMENT_PROCESSOR"] = "fake"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "1"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"

import pytest
from fastapi.testclient import TestClient

from checkout.api import create_app
from checkout.api.dependencies import get_event_ledger, get_payment_processor, get_product_client
from checkout.data.database import Base, SessionLocal, engine
from checkout.data.models import CartModel  # noqa: F401 - rejestracja modeli
from checkout.domain.errors import CatalogError, ProductNotFoundError
from checkout.gateway import reset_processor, set_processor
from checkout.gateway.fake_processor import FakeProcessor
from checkout.product_service.main import PRODUCTS
from checkout.services.product_client import ProductClient

WEBHOOK_SECRET = "whsec_test"


class FakeCatalog(ProductClient):
    """Katalog w pamieci z tymi samymi danymi co dev mock product_service."""

    def __init__(self, products=None):
        super().__init__(base_url="http://catalog.test")
        self.products = copy.deepcopy(products or PRODUCTS)
        self.unavailable = False
        self.requests = 0

    def fetch_product(self, product_id: int) -> dict:
        self.requests += 1
        if self.unavailable:
            raise CatalogError("Catalog is down")
        if product_id not in self.products:
            raise ProductNotFoundError(f"Produkt {product_id} nie istnieje")
        return self.products[product_id]


class InMemoryLedger:
    def __init__(self):
        self.processed = {}

    def seen(self, event_id: str) -> bool:
        return event_id in self.processed

    def mark_processed(self, event_id: str, outcome: str) -> None:
        self.processed.setdefault(event_id, outcome)


@pytest.fixture(autouse=True)
def tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db(tables):
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def catalog():
    return FakeCatalog()


@pytest.fixture()
def processor():
    fake = FakeProcessor(webhook_secret=WEBHOOK_SECRET)
    set_processor(fake)
    yield fake
    reset_processor()


@pytest.fixture()
def ledger():
    return InMemoryLedger()


@pytest.fixture()
def client(tables, catalog, processor, ledger):
    app = create_app()
    app.dependency_overrides[get_product_client] = lambda: catalog
    app.dependency_overrides[get_payment_processor] = lambda: processor
    app.dependency_overrides[get_event_ledger] = lambda: ledger
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def make_cart(db, catalog):
    """Koszyk z pozycjami: make_cart(account_id=42, items=[(product_id, qty, variant_id), ...])."""
    from checkout.services.cart_service import CartService
    from checkout.services.identity_resolver import CartIdentityResolver

    def _make(account_id=42, session_token=None, items=((4, 2, None),)):
        cart_service = CartService(db=db, product_client=catalog)
        cart = CartIdentityResolver(db=db, cart_service=cart_service).resolve(session_token, account_id).cart
        for product_id, quantity, variant_id in items:
            cart_service.add_item(cart, product_id=product_id, quantity=quantity, variant_id=variant_id)
        return cart

    return _make


class RecordingNotifications:
    def __init__(self):
        self.sent = []

    def send_order_confirmation(self, order_id, order_number, account_id):
        self.sent.append(order_number)


@pytest.fixture()
def notifications():
    return RecordingNotifications()
