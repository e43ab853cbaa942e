import json
import time

import pytest
import stripe

from checkout.domain.errors import InvalidSignatureError, PaymentProcessorError
from checkout.domain.status import PaymentState
from checkout.gateway.fake_processor import FakeProcessor
from checkout.gateway.stripe_processor import StripeProcessor, map_intent_state

SECRET = "whsec_unit"


def _intent(**fields):
    data = {
        "id": "pi_1",
        "object": "payment_intent",
        "client_secret": "pi_1_secret",
        "status": "requires_payment_method",
        "last_payment_error": None,
        "amount": 2566,
        "currency": "usd",
        "metadata": {"cart_id": "7"},
    }
    data.update(fields)
    return stripe.PaymentIntent.construct_from(data, "sk_test")


def _stripe_event(event_id="evt_1", event_type="payment_intent.succeeded", intent=None):
    intent = intent if intent is not None else {"id": "pi_1", "metadata": {"item_count": "1"}}
    return json.dumps(
        {"id": event_id, "object": "event", "type": event_type, "data": {"object": intent}}
    ).encode()


class TestWebhookSignature:
    def _processor(self):
        return StripeProcessor(api_key="sk_test", webhook_secret=SECRET)

    def _sign(self, payload, **kwargs):
        return FakeProcessor(webhook_secret=SECRET).sign(payload, **kwargs)

    def test_valid_signature(self):
        payload = _stripe_event()
        event = self._processor().construct_event(payload, self._sign(payload))
        assert event.event_id == "evt_1"

    def test_tampered_payload(self):
        header = self._sign(_stripe_event())
        with pytest.raises(InvalidSignatureError):
            self._processor().construct_event(_stripe_event(event_id="evt_2"), header)

    def test_wrong_secret(self):
        payload = _stripe_event()
        with pytest.raises(InvalidSignatureError):
            self._processor().construct_event(payload, self._sign(payload, secret="whsec_other"))

    def test_stale_timestamp(self):
        payload = _stripe_event()
        header = self._sign(payload, timestamp=int(time.time()) - 301)
        with pytest.raises(InvalidSignatureError):
            self._processor().construct_event(payload, header)

    @pytest.mark.parametrize("header", [None, "", "garbage", "t=abc,v1=00", "t=1700000000"])
    def test_malformed_header(self, header):
        with pytest.raises(InvalidSignatureError):
            self._processor().construct_event(_stripe_event(), header)

    def test_missing_secret(self):
        payload = _stripe_event()
        with pytest.raises(InvalidSignatureError):
            StripeProcessor(api_key="sk_test", webhook_secret="").construct_event(payload, self._sign(payload))

    def test_signed_garbage_body(self):
        payload = b"not json"
        with pytest.raises(InvalidSignatureError):
            self._processor().construct_event(payload, self._sign(payload))


class TestIntentState:
    @pytest.mark.parametrize(
        "status, last_error, expected",
        [
            ("succeeded", None, PaymentState.SUCCEEDED),
            ("canceled", None, PaymentState.FAILED),
            ("requires_payment_method", {"code": "card_declined"}, PaymentState.FAILED),
            ("requires_payment_method", None, PaymentState.PENDING),
            ("processing", None, PaymentState.PENDING),
        ],
    )
    def test_map_intent_state(self, status, last_error, expected):
        assert map_intent_state(status, last_error) == expected


class TestStripeProcessor:
    def _processor(self):
        return StripeProcessor(api_key="sk_test", webhook_secret=SECRET)

    def test_create_passes_idempotency_key_and_metadata(self, monkeypatch):
        sent = {}

        def fake_create(**kwargs):
            sent.update(kwargs)
            return _intent()

        monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
        authorization = self._processor().create_authorization(2566, "usd", "key-1", {"cart_id": "7"})

        assert sent["amount"] == 2566
        assert sent["currency"] == "usd"
        assert sent["metadata"] == {"cart_id": "7"}
        assert sent["idempotency_key"] == "key-1"
        assert sent["api_key"] == "sk_test"
        assert authorization.auth_ref == "pi_1"
        assert authorization.client_secret == "pi_1_secret"
        assert authorization.metadata == {"cart_id": "7"}
        assert authorization.state == PaymentState.PENDING

    def test_modify_sends_metadata(self, monkeypatch):
        sent = {}

        def fake_modify(auth_ref, **kwargs):
            sent.update(auth_ref=auth_ref, **kwargs)
            return _intent(metadata={"cart_id": "7", "item_count": "1"})

        monkeypatch.setattr(stripe.PaymentIntent, "modify", fake_modify)
        authorization = self._processor().update_metadata("pi_1", {"item_count": "1"})

        assert sent["auth_ref"] == "pi_1"
        assert sent["metadata"] == {"item_count": "1"}
        assert authorization.metadata == {"cart_id": "7", "item_count": "1"}

    def test_retrieve_maps_succeeded(self, monkeypatch):
        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", lambda auth_ref, **kwargs: _intent(status="succeeded"))
        assert self._processor().retrieve_authorization("pi_1").state == PaymentState.SUCCEEDED

    def test_api_error_becomes_processor_error(self, monkeypatch):
        def failing_retrieve(auth_ref, **kwargs):
            raise stripe.InvalidRequestError("No such payment_intent", "intent")

        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", failing_retrieve)
        with pytest.raises(PaymentProcessorError):
            self._processor().retrieve_authorization("pi_missing")

    def test_connection_error_is_retried(self, monkeypatch):
        calls = []

        def flaky_retrieve(auth_ref, **kwargs):
            calls.append(auth_ref)
            if len(calls) < 3:
                raise stripe.APIConnectionError("connection reset")
            return _intent()

        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", flaky_retrieve)
        assert self._processor().retrieve_authorization("pi_1").auth_ref == "pi_1"
        assert len(calls) == 3

    def test_construct_event_maps_types(self):
        payload = _stripe_event()
        event = self._processor().construct_event(payload, FakeProcessor(webhook_secret=SECRET).sign(payload))

        assert event.auth_ref == "pi_1"
        assert event.observed_state == PaymentState.SUCCEEDED
        assert event.metadata == {"item_count": "1"}

    def test_construct_event_unknown_type(self):
        payload = _stripe_event(event_id="evt_2", event_type="charge.refunded", intent={"id": "ch_1"})
        event = self._processor().construct_event(payload, FakeProcessor(webhook_secret=SECRET).sign(payload))
        assert event.observed_state is None
        assert event.auth_ref is None


class TestFakeProcessor:
    def test_idempotency_key_returns_same_authorization(self):
        fake = FakeProcessor()
        first = fake.create_authorization(100, "usd", "key-1")
        second = fake.create_authorization(100, "usd", "key-1")
        assert first.auth_ref == second.auth_ref

    def test_update_metadata_merges(self):
        fake = FakeProcessor()
        auth = fake.create_authorization(100, "usd", "key-1", {"cart_id": "1"})
        fake.update_metadata(auth.auth_ref, {"item_count": "1"})
        assert fake.retrieve_authorization(auth.auth_ref).metadata == {"cart_id": "1", "item_count": "1"}

    def test_unknown_authorization(self):
        with pytest.raises(PaymentProcessorError):
            FakeProcessor().retrieve_authorization("pi_missing")

    def test_built_event_round_trips_through_verification(self):
        fake = FakeProcessor()
        auth = fake.create_authorization(100, "usd", "key-1", {"cart_id": "1"})
        event = fake.construct_event(*fake.build_event(auth.auth_ref, event_id="evt_9"))
        assert event.event_id == "evt_9"
        assert event.auth_ref == auth.auth_ref
        assert event.metadata == {"cart_id": "1"}

    def test_rejects_foreign_signature(self):
        fake = FakeProcessor()
        auth = fake.create_authorization(100, "usd", "key-1")
        payload, _ = fake.build_event(auth.auth_ref)
        with pytest.raises(InvalidSignatureError):
            fake.construct_event(payload, fake.sign(payload, secret="whsec_other"))
