"""
Payment tests: intents, idempotent confirmation, declines, refunds and the
provider webhook.
"""

import hashlib
import hmac
import json
import time
from types import SimpleNamespace

import pytest
import stripe

from fashionmart import create_app
from fashionmart.errors import UpstreamError, ValidationError
from fashionmart.extensions import db
from fashionmart.models import Notification, Order, Payment
from fashionmart.services.payment_gateway import (
    DECLINED_TEST_METHOD,
    FakeGateway,
    StripeGateway,
    get_gateway,
    verify_signature,
)


WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
def pending_order(product, place_order):
    resp = place_order(product, quantity=2)
    assert resp.status_code == 201
    return resp.json["data"]["order"]["id"]


def _stripe_header(secret: str, body: bytes, timestamp: int) -> str:
    signed = f"{timestamp}.".encode() + body
    return f"t={timestamp},v1={hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()}"


def _signed(payload: dict, secret: str = WEBHOOK_SECRET, timestamp: int | None = None):
    body = json.dumps(payload).encode()
    ts = int(time.time()) if timestamp is None else timestamp
    return body, _stripe_header(secret, body, ts)


def _event(event_type: str, intent_id: str, **extra) -> dict:
    return {"id": "evt_1", "type": event_type, "data": {"object": {"id": intent_id, **extra}}}


# =============================================================================
# INTENTS & CONFIRMATION
# =============================================================================


class TestPaymentFlow:
    def test_create_intent(self, client, pending_order, customer_headers):
        resp = client.post(f"/api/customer/orders/{pending_order}/payment", headers=customer_headers)
        assert resp.status_code == 201
        data = resp.json["data"]
        assert data["paymentIntentId"].startswith("pi_fake_")
        assert data["clientSecret"]
        assert data["payment"]["amount"] == 199.98
        assert data["payment"]["status"] == "pending"

    def test_intent_request_is_idempotent(self, client, pending_order, customer_headers):
        first = client.post(f"/api/customer/orders/{pending_order}/payment", headers=customer_headers)
        second = client.post(f"/api/customer/orders/{pending_order}/payment", headers=customer_headers)
        assert first.json["data"]["paymentIntentId"] == second.json["data"]["paymentIntentId"]
        assert db.session.query(Payment).count() == 1

    def test_confirm_moves_order_to_processing_paid(self, client, pending_order, customer_headers):
        intent_id = client.post(
            f"/api/customer/orders/{pending_order}/payment", headers=customer_headers
        ).json["data"]["paymentIntentId"]

        resp = client.post(
            f"/api/customer/orders/{pending_order}/payment/confirm",
            json={"paymentIntentId": intent_id, "paymentMethodId": "pm_card_visa"},
            headers=customer_headers,
        )
        assert resp.status_code == 200
        assert resp.json["data"]["order"]["status"] == "processing"
        assert resp.json["data"]["order"]["paymentStatus"] == "paid"
        assert resp.json["data"]["payment"]["paidAt"] is not None

    def test_confirm_twice_is_a_no_op(self, client, pending_order, customer_headers):
        client.post(f"/api/customer/orders/{pending_order}/payment", headers=customer_headers)
        url = f"/api/customer/orders/{pending_order}/payment/confirm"
        assert client.post(url, json={}, headers=customer_headers).status_code == 200
        assert client.post(url, json={}, headers=customer_headers).status_code == 200

        received = db.session.query(Notification).filter_by(
            user_id="customer_1", title="Payment received"
        ).count()
        assert received == 1

    def test_confirm_without_intent_is_400(self, client, pending_order, customer_headers):
        resp = client.post(f"/api/customer/orders/{pending_order}/payment/confirm", json={}, headers=customer_headers)
        assert resp.status_code == 400

    def test_mismatched_intent_is_400(self, client, pending_order, customer_headers):
        client.post(f"/api/customer/orders/{pending_order}/payment", headers=customer_headers)
        resp = client.post(
            f"/api/customer/orders/{pending_order}/payment/confirm",
            json={"paymentIntentId": "pi_someone_else"},
            headers=customer_headers,
        )
        assert resp.status_code == 400

    def test_declined_card_marks_failure_and_allows_retry(self, client, pending_order, customer_headers):
        first_intent = client.post(
            f"/api/customer/orders/{pending_order}/payment", headers=customer_headers
        ).json["data"]["paymentIntentId"]

        resp = client.post(
            f"/api/customer/orders/{pending_order}/payment/confirm",
            json={"paymentMethodId": DECLINED_TEST_METHOD},
            headers=customer_headers,
        )
        assert resp.status_code == 400
        assert resp.json["error"]["code"] == "UPSTREAM_ERROR"
        assert resp.json["message"] == "Your card was declined."

        db.session.expire_all()
        order = db.session.get(Order, pending_order)
        assert order.status == "pending"
        assert order.payment_status == "failed"

        retry = client.post(f"/api/customer/orders/{pending_order}/payment", headers=customer_headers)
        assert retry.status_code == 201
        assert retry.json["data"]["paymentIntentId"] != first_intent

        resp = client.post(f"/api/customer/orders/{pending_order}/payment/confirm", json={}, headers=customer_headers)
        assert resp.json["data"]["order"]["paymentStatus"] == "paid"

    def test_paid_order_rejects_new_intent(self, client, product, paid_order, customer_headers):
        order_id = paid_order(product)
        resp = client.post(f"/api/customer/orders/{order_id}/payment", headers=customer_headers)
        assert resp.status_code == 400

    def test_foreign_order_payment_is_404(self, client, pending_order, other_customer_headers):
        resp = client.post(f"/api/customer/orders/{pending_order}/payment", headers=other_customer_headers)
        assert resp.status_code == 404


# =============================================================================
# WEBHOOK
# =============================================================================


class TestPaymentWebhook:
    @pytest.fixture(autouse=True)
    def _secret(self, app):
        app.config["STRIPE_WEBHOOK_SECRET"] = WEBHOOK_SECRET

    def _intent(self, client, order_id, headers):
        return client.post(f"/api/customer/orders/{order_id}/payment", headers=headers).json["data"]["paymentIntentId"]

    def test_succeeded_event_marks_paid(self, client, pending_order, customer_headers):
        intent_id = self._intent(client, pending_order, customer_headers)
        body, signature = _signed(_event("payment_intent.succeeded", intent_id))

        resp = client.post(
            "/api/payments/webhook", data=body, headers={"Stripe-Signature": signature},
            content_type="application/json",
        )
        assert resp.status_code == 200
        assert resp.json["data"]["handled"] is True

        order = client.get(f"/api/customer/orders/{pending_order}", headers=customer_headers).json["data"]["order"]
        assert (order["status"], order["paymentStatus"]) == ("processing", "paid")

    def test_webhook_and_confirm_apply_once(self, client, pending_order, customer_headers):
        intent_id = self._intent(client, pending_order, customer_headers)
        body, signature = _signed(_event("payment_intent.succeeded", intent_id))
        for _ in range(2):
            client.post("/api/payments/webhook", data=body, headers={"Stripe-Signature": signature},
                        content_type="application/json")
        resp = client.post(f"/api/customer/orders/{pending_order}/payment/confirm", json={}, headers=customer_headers)
        assert resp.status_code == 200

        received = db.session.query(Notification).filter_by(
            user_id="customer_1", title="Payment received"
        ).count()
        assert received == 1

    def test_failed_event_records_message(self, client, pending_order, customer_headers):
        intent_id = self._intent(client, pending_order, customer_headers)
        body, signature = _signed(_event(
            "payment_intent.payment_failed", intent_id, last_payment_error={"message": "Insufficient funds"}
        ))
        client.post("/api/payments/webhook", data=body, headers={"Stripe-Signature": signature},
                    content_type="application/json")

        db.session.expire_all()
        payment = db.session.query(Payment).filter_by(payment_intent_id=intent_id).one()
        assert payment.status == "failed"
        assert payment.failure_message == "Insufficient funds"

    def test_bad_signature_is_400(self, client, pending_order, customer_headers):
        intent_id = self._intent(client, pending_order, customer_headers)
        body, _ = _signed(_event("payment_intent.succeeded", intent_id))
        _, wrong = _signed(_event("payment_intent.succeeded", intent_id), secret="whsec_other")

        resp = client.post("/api/payments/webhook", data=body, headers={"Stripe-Signature": wrong},
                           content_type="application/json")
        assert resp.status_code == 400
        assert client.post("/api/payments/webhook", data=body, content_type="application/json").status_code == 400

    def test_payment_after_cancellation_is_refunded(self, client, pending_order, customer_headers):
        intent_id = self._intent(client, pending_order, customer_headers)
        assert client.post(f"/api/customer/orders/{pending_order}/cancel", headers=customer_headers).status_code == 200

        body, signature = _signed(_event("payment_intent.succeeded", intent_id))
        resp = client.post("/api/payments/webhook", data=body, headers={"Stripe-Signature": signature},
                           content_type="application/json")
        assert resp.status_code == 200

        db.session.expire_all()
        order = db.session.get(Order, pending_order)
        assert (order.status, order.payment_status) == ("cancelled", "refunded")
        payment = db.session.query(Payment).filter_by(payment_intent_id=intent_id).one()
        assert payment.status == "refunded"
        assert payment.refunded_at is not None
        assert db.session.query(Notification).filter_by(user_id="customer_1", title="Refund issued").count() == 1
        assert db.session.query(Notification).filter_by(user_id="customer_1", title="Payment received").count() == 0

    def test_unknown_event_acknowledged(self, client, users):
        body, signature = _signed({"id": "evt_2", "type": "charge.refunded", "data": {"object": {}}})
        resp = client.post("/api/payments/webhook", data=body, headers={"Stripe-Signature": signature},
                           content_type="application/json")
        assert resp.status_code == 200
        assert resp.json["data"]["handled"] is False


# =============================================================================
# GATEWAY
# =============================================================================


class TestUnsignedWebhooks:
    def test_accepted_only_while_testing(self, app, client, pending_order, customer_headers):
        intent_id = client.post(
            f"/api/customer/orders/{pending_order}/payment", headers=customer_headers
        ).json["data"]["paymentIntentId"]
        body = json.dumps(_event("payment_intent.succeeded", intent_id)).encode()

        app.config["TESTING"] = False
        try:
            resp = client.post("/api/payments/webhook", data=body, content_type="application/json")
        finally:
            app.config["TESTING"] = True
        assert resp.status_code == 400

        db.session.expire_all()
        assert db.session.get(Order, pending_order).payment_status == "pending"

        resp = client.post("/api/payments/webhook", data=body, content_type="application/json")
        assert resp.status_code == 200

    def test_fake_gateway_requires_secret_by_default(self):
        with pytest.raises(ValidationError):
            FakeGateway().verify_webhook(b'{"type": "payment_intent.succeeded"}', None)
        event = FakeGateway(allow_unsigned=True).verify_webhook(b'{"type": "charge.refunded"}', None)
        assert event["type"] == "charge.refunded"


class TestProviderSelection:
    BASE = {"SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:", "PAYMENT_PROVIDER": ""}

    def test_unset_provider_refuses_to_start_in_production(self):
        with pytest.raises(RuntimeError):
            create_app({**self.BASE, "TESTING": False, "DEBUG": False})

    def test_unset_provider_falls_back_to_fake_while_testing(self):
        app = create_app({**self.BASE, "TESTING": True})
        assert app.config["PAYMENT_PROVIDER"] == "fake"
        with app.app_context():
            assert get_gateway().name == "fake"


# =============================================================================
# GATEWAY
# =============================================================================


class _StubIntents:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def create(self, params=None, options=None):
        self.calls.append(params)
        if self.error:
            raise self.error
        return self.result


def _stripe_gateway(intents=None, refunds=None) -> StripeGateway:
    client = SimpleNamespace(payment_intents=intents or _StubIntents(), refunds=refunds or _StubIntents())
    return StripeGateway("sk_test_123", webhook_secret=WEBHOOK_SECRET, client=client)


class TestGateway:
    def test_stale_signature_rejected(self, app):
        body = b'{"type": "x"}'
        header = _stripe_header(WEBHOOK_SECRET, body, int(time.time()) - 3600)
        with pytest.raises(ValidationError):
            verify_signature(WEBHOOK_SECRET, body, header)

    def test_malformed_header_rejected(self, app):
        with pytest.raises(ValidationError):
            verify_signature(WEBHOOK_SECRET, b"{}", "v1=abc")

    def test_valid_signature_returns_event(self, app):
        body = json.dumps(_event("payment_intent.succeeded", "pi_1")).encode()
        header = _stripe_header(WEBHOOK_SECRET, body, int(time.time()))
        event = _stripe_gateway().verify_webhook(body, header)
        assert event["data"]["object"]["id"] == "pi_1"

    def test_fake_gateway_declines_test_method(self):
        gateway = FakeGateway()
        intent = gateway.create_intent(1000, "usd", {})
        with pytest.raises(UpstreamError):
            gateway.confirm_intent(intent.id, DECLINED_TEST_METHOD)
        assert gateway.confirm_intent(intent.id, "pm_card_visa").succeeded

    def test_stripe_gateway_passes_provider_message(self, app):
        declined = stripe.CardError("Your card has insufficient funds.", None, "card_declined")
        gateway = _stripe_gateway(intents=_StubIntents(error=declined))
        with pytest.raises(UpstreamError) as exc:
            gateway.create_intent(1000, "usd", {"orderId": 1})
        assert exc.value.message == "Your card has insufficient funds."

    def test_stripe_gateway_parses_intent(self, app):
        intents = _StubIntents(result=SimpleNamespace(
            id="pi_123", status="requires_payment_method", amount=1000,
            currency="usd", client_secret="pi_123_secret_abc", last_payment_error=None,
        ))
        intent = _stripe_gateway(intents=intents).create_intent(1000, "usd", {"orderId": 7})
        assert intent.id == "pi_123"
        assert intent.client_secret == "pi_123_secret_abc"
        assert not intent.succeeded
        assert intents.calls[0]["metadata"] == {"orderId": "7"}
        assert intents.calls[0]["amount"] == 1000

    def test_stripe_refund_returns_refund_id(self, app):
        refunds = _StubIntents(result=SimpleNamespace(id="re_42"))
        assert _stripe_gateway(refunds=refunds).refund("pi_123", 500) == "re_42"
        assert refunds.calls == [{"payment_intent": "pi_123", "amount": 500}]
