"""Integration tests for the HTTP surface (TestClient, SQLite, fake processor)."""

from dataclasses import replace

from checkout.api.dependencies import SESSION_COOKIE, get_product_client
from checkout.services.product_client import ProductClient

USER = {"X-User-Id": "42"}


def _add(client, product_id=4, quantity=2, variant_id=None, headers=USER):
    return client.post(
        "/cart/items",
        json={"product_id": product_id, "quantity": quantity, "variant_id": variant_id},
        headers=headers,
    )


def _authorize(client, headers=USER):
    return client.post("/checkout/authorization", json={"shipping_address_id": "addr_1"}, headers=headers)


def _webhook(client, processor, auth_ref, event_type="payment.succeeded", event_id=None):
    payload, signature = processor.build_event(auth_ref, event_type, event_id=event_id)
    return client.post(
        "/webhooks/payments",
        content=payload,
        headers={"Stripe-Signature": signature, "Content-Type": "application/json"},
    )


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestCartApi:
    def test_anonymous_visitor_gets_session_cookie(self, client):
        response = _add(client, headers={})
        assert response.status_code == 200
        assert SESSION_COOKIE in response.cookies
        assert response.json()["item_count"] == 2

        # TestClient odsyla cookie - ten sam koszyk
        again = client.get("/cart")
        assert again.json()["cart_id"] == response.json()["cart_id"]

    def test_empty_cart_view_creates_nothing(self, client):
        response = client.get("/cart", headers=USER)
        assert response.status_code == 200
        assert response.json()["cart_id"] is None
        assert response.json()["items"] == []

    def test_cart_pricing(self, client):
        data = _add(client, product_id=2, quantity=1, variant_id=22).json()
        assert data["items"][0]["name"] == "Mouse - White"
        assert data["pricing"]["subtotal"] == "54.00"
        assert data["pricing"]["shipping"] == "10.00"
        assert data["pricing"]["total"] == "68.32"

    def test_update_and_remove_line(self, client):
        line_id = _add(client).json()["items"][0]["line_id"]

        updated = client.patch(f"/cart/items/{line_id}", json={"quantity": 5}, headers=USER)
        assert updated.status_code == 200
        assert updated.json()["items"][0]["quantity"] == 5

        removed = client.delete(f"/cart/items/{line_id}", headers=USER)
        assert removed.status_code == 200
        assert removed.json()["items"] == []

    def test_line_of_other_account_forbidden(self, client):
        line_id = _add(client).json()["items"][0]["line_id"]
        _add(client, headers={"X-User-Id": "7"})
        response = client.delete(f"/cart/items/{line_id}", headers={"X-User-Id": "7"})
        assert response.status_code == 403

    def test_unknown_line(self, client):
        _add(client)
        assert client.delete("/cart/items/999", headers=USER).status_code == 404

    def test_unknown_product(self, client):
        assert _add(client, product_id=999).status_code == 404

    def test_invalid_quantity(self, client):
        assert _add(client, quantity=0).status_code == 422

    def test_insufficient_inventory(self, client):
        assert _add(client, product_id=3, quantity=50).status_code == 400

    def test_catalog_outage(self, client, catalog):
        catalog.unavailable = True
        assert _add(client).status_code == 502

    def test_unreachable_catalog_answers_502(self, client):
        client.app.dependency_overrides[get_product_client] = lambda: ProductClient(
            base_url="http://127.0.0.1:9", timeout=1
        )
        assert _add(client).status_code == 502

    def test_login_merges_anonymous_cart(self, client):
        _add(client, product_id=1, quantity=1)
        client.cookies.clear()
        anon = _add(client, product_id=4, quantity=2, headers={})
        old_token = anon.cookies[SESSION_COOKIE]

        merged = client.get("/cart", headers=USER)
        assert merged.status_code == 200
        assert {(i["product_id"], i["quantity"]) for i in merged.json()["items"]} == {(1, 1), (4, 2)}
        assert merged.cookies[SESSION_COOKIE] != old_token

    def test_clear_is_repeatable(self, client):
        _add(client)
        first = client.post("/cart/clear", headers=USER)
        second = client.post("/cart/clear", headers=USER)
        assert first.json()["removed"] == 1
        assert second.json()["removed"] == 0
        assert client.get("/cart", headers=USER).json()["items"] == []


class TestCheckoutApi:
    def test_authorization_returns_client_secret(self, client, processor):
        _add(client, product_id=1, quantity=1)
        response = _authorize(client)

        assert response.status_code == 200
        data = response.json()
        assert data["client_secret"].startswith(data["auth_ref"])
        assert data["pricing"]["total"] == "215.99"
        assert processor.authorizations[data["auth_ref"]].amount_minor == 21599

    def test_authorization_for_empty_cart(self, client):
        assert _authorize(client).status_code == 400

    def test_authorization_reused(self, client):
        _add(client)
        first = _authorize(client).json()
        second = _authorize(client).json()
        assert second["auth_ref"] == first["auth_ref"]
        assert second["reused"] is True

    def test_processor_outage(self, client, processor):
        _add(client)
        processor.configure(unavailable=True)
        assert _authorize(client).status_code == 502

    def test_confirm_pending(self, client):
        _add(client)
        auth_ref = _authorize(client).json()["auth_ref"]
        response = client.get("/checkout/order", params={"paymentRef": auth_ref}, headers=USER)
        assert response.status_code == 202
        assert response.json()["status"] == "pending"

    def test_confirm_ready(self, client, processor):
        _add(client)
        auth_ref = _authorize(client).json()["auth_ref"]
        processor.settle(auth_ref)

        response = client.get("/checkout/order", params={"paymentRef": auth_ref}, headers=USER)
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ready"
        assert body["order"]["payment_ref"] == auth_ref
        assert body["order"]["total"] == "25.66"
        assert client.get("/cart", headers=USER).json()["items"] == []

    def test_confirm_payment_failed(self, client, processor):
        _add(client)
        auth_ref = _authorize(client).json()["auth_ref"]
        processor.settle(auth_ref, succeeded=False)

        response = client.get("/checkout/order", params={"paymentRef": auth_ref}, headers=USER)
        assert response.status_code == 402
        assert response.json()["status"] == "payment_failed"
        assert len(client.get("/cart", headers=USER).json()["items"]) == 1

    def test_confirm_reconciliation_failed(self, client, processor):
        _add(client)
        auth_ref = _authorize(client).json()["auth_ref"]
        processor.settle(auth_ref)
        processor.authorizations[auth_ref] = replace(processor.authorizations[auth_ref], metadata={})
        client.post("/cart/clear", headers=USER)

        response = client.get("/checkout/order", params={"paymentRef": auth_ref}, headers=USER)
        assert response.status_code == 422
        assert response.json()["status"] == "reconciliation_failed"

    def test_confirm_by_other_account_forbidden(self, client, processor):
        _add(client)
        auth_ref = _authorize(client).json()["auth_ref"]
        processor.settle(auth_ref)

        response = client.get("/checkout/order", params={"paymentRef": auth_ref}, headers={"X-User-Id": "7"})
        assert response.status_code == 403

    def test_confirm_requires_payment_ref(self, client):
        assert client.get("/checkout/order", headers=USER).status_code == 422


class TestWebhookApi:
    def test_valid_event_creates_order(self, client, processor):
        _add(client)
        auth_ref = _authorize(client).json()["auth_ref"]
        processor.settle(auth_ref)

        response = _webhook(client, processor, auth_ref)
        assert response.status_code == 200
        assert response.json()["outcome"] == "CREATED"

        confirm = client.get("/checkout/order", params={"paymentRef": auth_ref}, headers=USER)
        assert confirm.status_code == 200

    def test_invalid_signature_rejected(self, client, processor):
        _add(client)
        auth_ref = _authorize(client).json()["auth_ref"]
        payload, _ = processor.build_event(auth_ref)

        response = client.post(
            "/webhooks/payments",
            content=payload,
            headers={"Stripe-Signature": "t=1,v1=deadbeef"},
        )
        assert response.status_code == 400

    def test_missing_signature_rejected(self, client, processor):
        _add(client)
        auth_ref = _authorize(client).json()["auth_ref"]
        payload, _ = processor.build_event(auth_ref)
        assert client.post("/webhooks/payments", content=payload).status_code == 400

    def test_duplicate_delivery(self, client, processor, ledger):
        _add(client)
        auth_ref = _authorize(client).json()["auth_ref"]
        processor.settle(auth_ref)

        first = _webhook(client, processor, auth_ref, event_id="evt_dup")
        second = _webhook(client, processor, auth_ref, event_id="evt_dup")
        assert first.json()["duplicate"] is False
        assert second.status_code == 200
        assert second.json()["duplicate"] is True
        assert ledger.processed == {"evt_dup": "CREATED"}

    def test_webhook_after_confirm_is_unchanged(self, client, processor):
        _add(client)
        auth_ref = _authorize(client).json()["auth_ref"]
        processor.settle(auth_ref)
        client.get("/checkout/order", params={"paymentRef": auth_ref}, headers=USER)

        assert _webhook(client, processor, auth_ref).json()["outcome"] == "UNCHANGED"

    def test_processor_outage_asks_for_redelivery(self, client, processor):
        _add(client)
        auth_ref = _authorize(client).json()["auth_ref"]
        processor.settle(auth_ref)
        payload, signature = processor.build_event(auth_ref, metadata={})
        processor.configure(unavailable=True)

        response = client.post("/webhooks/payments", content=payload, headers={"Stripe-Signature": signature})
        assert response.status_code == 503

    def test_unreachable_catalog_on_live_cart_asks_for_redelivery(self, client, processor):
        _add(client)
        auth_ref = _authorize(client).json()["auth_ref"]
        processor.settle(auth_ref)
        processor.authorizations[auth_ref] = replace(processor.authorizations[auth_ref], metadata={})
        payload, signature = processor.build_event(auth_ref, metadata={})
        client.app.dependency_overrides[get_product_client] = lambda: ProductClient(
            base_url="http://127.0.0.1:9", timeout=1
        )

        response = client.post("/webhooks/payments", content=payload, headers={"Stripe-Signature": signature})
        assert response.status_code == 503
        assert client.get("/orders/1", headers=USER).status_code == 404


class TestOrdersApi:
    def _paid_order(self, client, processor):
        _add(client)
        auth_ref = _authorize(client).json()["auth_ref"]
        processor.settle(auth_ref)
        return client.get("/checkout/order", params={"paymentRef": auth_ref}, headers=USER).json()["order"]

    def test_get_order(self, client, processor):
        order = self._paid_order(client, processor)
        response = client.get(f"/orders/{order['id']}", headers=USER)
        assert response.status_code == 200
        assert response.json()["order_number"] == order["order_number"]

    def test_get_order_other_account(self, client, processor):
        order = self._paid_order(client, processor)
        assert client.get(f"/orders/{order['id']}", headers={"X-User-Id": "7"}).status_code == 403

    def test_get_missing_order(self, client):
        assert client.get("/orders/999", headers=USER).status_code == 404

    def test_status_change(self, client, processor):
        order = self._paid_order(client, processor)
        response = client.patch(f"/orders/{order['id']}/status", json={"status": "SHIPPED"})
        assert response.status_code == 200
        assert response.json()["status"] == "SHIPPED"
        assert [u["status"] for u in response.json()["status_updates"]] == ["PROCESSING", "SHIPPED"]

    def test_invalid_status_change(self, client, processor):
        order = self._paid_order(client, processor)
        response = client.patch(f"/orders/{order['id']}/status", json={"status": "PENDING"})
        assert response.status_code == 409

    def test_unknown_status_value(self, client, processor):
        order = self._paid_order(client, processor)
        assert client.patch(f"/orders/{order['id']}/status", json={"status": "LOST"}).status_code == 422
