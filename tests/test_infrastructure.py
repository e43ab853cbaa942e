from decimal import Decimal

import pytest
import requests
from redis.exceptions import ConnectionError as RedisConnectionError

from checkout.domain.errors import CatalogError, ProductNotFoundError
from checkout.services import notification_service
from checkout.services.event_ledger import WebhookEventLedger
from checkout.services.notification_service import NotificationService, send_order_confirmation_task
from checkout.services.product_client import ProductClient


class StubResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload or {}
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class StubRedis:
    def __init__(self, broken=False):
        self.data = {}
        self.broken = broken
        self.set_calls = []

    def exists(self, key):
        if self.broken:
            raise RedisConnectionError("redis down")
        return int(key in self.data)

    def set(self, name, value, nx=False, ex=None):
        if self.broken:
            raise RedisConnectionError("redis down")
        self.set_calls.append({"name": name, "nx": nx, "ex": ex})
        if nx and name in self.data:
            return None
        self.data[name] = value
        return True


MOUSE = {
    "id": 2,
    "name": "Mouse",
    "price": 49.5,
    "inventory": 100,
    "variants": [{"id": 22, "name": "White", "price": 54.0, "inventory": 40}],
}


class TestProductClient:
    def test_resolve_product(self, monkeypatch):
        monkeypatch.setattr(requests, "get", lambda url, timeout: StubResponse(MOUSE))
        price, name, inventory = ProductClient(base_url="http://catalog.test").resolve(2)
        assert price == Decimal("49.50")
        assert name == "Mouse"
        assert inventory == 100

    def test_resolve_variant(self, monkeypatch):
        monkeypatch.setattr(requests, "get", lambda url, timeout: StubResponse(MOUSE))
        price, name, inventory = ProductClient(base_url="http://catalog.test").resolve(2, 22)
        assert str(price) == "54.00"
        assert name == "Mouse - White"
        assert inventory == 40

    def test_unknown_variant(self, monkeypatch):
        monkeypatch.setattr(requests, "get", lambda url, timeout: StubResponse(MOUSE))
        with pytest.raises(ProductNotFoundError):
            ProductClient(base_url="http://catalog.test").resolve(2, 99)

    def test_not_found(self, monkeypatch):
        monkeypatch.setattr(requests, "get", lambda url, timeout: StubResponse(status_code=404))
        with pytest.raises(ProductNotFoundError):
            ProductClient(base_url="http://catalog.test").fetch_product(5)

    def test_server_error(self, monkeypatch):
        monkeypatch.setattr(requests, "get", lambda url, timeout: StubResponse(status_code=503))
        with pytest.raises(CatalogError):
            ProductClient(base_url="http://catalog.test").fetch_product(5)

    def test_timeout_is_retried_then_reported(self, monkeypatch):
        calls = []

        def slow_get(url, timeout):
            calls.append(url)
            raise requests.Timeout("read timed out")

        monkeypatch.setattr(requests, "get", slow_get)
        with pytest.raises(CatalogError):
            ProductClient(base_url="http://catalog.test").fetch_product(5)
        assert len(calls) == 3

    def test_unreachable_catalog(self):
        with pytest.raises(CatalogError):
            ProductClient(base_url="http://127.0.0.1:9", timeout=1).fetch_product(1)


class TestEventLedger:
    def test_marks_and_detects_processed_event(self):
        ledger = WebhookEventLedger(url="redis://localhost:6379/0", ttl=60)
        ledger.redis = StubRedis()

        assert not ledger.seen("evt_1")
        ledger.mark_processed("evt_1", "CREATED")
        assert ledger.seen("evt_1")
        assert ledger.redis.set_calls[0] == {"name": "webhook:event:evt_1", "nx": True, "ex": 60}

    def test_redis_outage_is_not_fatal(self):
        ledger = WebhookEventLedger(url="redis://localhost:6379/0", ttl=60)
        ledger.redis = StubRedis(broken=True)

        assert not ledger.seen("evt_1")
        ledger.mark_processed("evt_1", "CREATED")


class TestNotifications:
    def test_task_runs_eagerly(self):
        result = send_order_confirmation_task.delay(1, "ORD-20260101-ABC123", 42)
        assert result.get() == {"order_id": 1, "order_number": "ORD-20260101-ABC123", "status": "sent"}

    def test_broker_failure_does_not_raise(self, monkeypatch, caplog):
        def broken_delay(*args, **kwargs):
            raise ConnectionError("broker down")

        monkeypatch.setattr(notification_service.send_order_confirmation_task, "delay", broken_delay)
        NotificationService.send_order_confirmation(1, "ORD-20260101-ABC123", 42)
        assert any("ORD-20260101-ABC123" in r.getMessage() for r in caplog.records)
