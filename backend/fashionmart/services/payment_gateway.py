# Overview: Payment provider adapters; Stripe through its SDK and a local fake with the same surface.

"""
Payment Gateway

The service layer talks to one PaymentGateway. Two implementations:

- StripeGateway: the Stripe SDK's StripeClient, sending requests over httpx.
- FakeGateway: no network; every intent confirms successfully unless the
  declined test payment method is used. Only selected in debug/testing or
  when PAYMENT_PROVIDER=fake is set explicitly.

Provider failures surface as UpstreamError (400) carrying the provider's
message. Webhook signatures use Stripe's "Stripe-Signature" scheme for both
gateways and are checked with stripe.Webhook.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Protocol

import stripe
from flask import current_app

from ..errors import UpstreamError, ValidationError


SIGNATURE_TOLERANCE_SECONDS = 300
DECLINED_TEST_METHOD = "pm_card_chargeDeclined"

INTENT_SUCCEEDED = "succeeded"


@dataclass
class PaymentIntent:
    id: str
    status: str
    amount_cents: int | None = None
    currency: str | None = None
    client_secret: str | None = None
    failure_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == INTENT_SUCCEEDED


class PaymentGateway(Protocol):
    name: str

    def create_intent(self, amount_cents: int, currency: str, metadata: dict) -> PaymentIntent: ...

    def confirm_intent(self, intent_id: str, payment_method: str | None = None) -> PaymentIntent: ...

    def retrieve_intent(self, intent_id: str) -> PaymentIntent: ...

    def refund(self, intent_id: str, amount_cents: int | None = None) -> str: ...

    def verify_webhook(self, payload: bytes, signature: str | None) -> dict: ...


def verify_signature(secret: str, payload: bytes, header: str | None) -> dict:
    """
    Check a Stripe-Signature header and return the decoded event.

    Raises ValidationError on a missing, stale or mismatched signature.
    """
    if not header:
        raise ValidationError("Missing webhook signature")
    try:
        stripe.Webhook.construct_event(payload, header, secret, tolerance=SIGNATURE_TOLERANCE_SECONDS)
    except stripe.SignatureVerificationError as exc:
        current_app.logger.warning("Payment webhook signature rejected: %s", exc.user_message)
        raise ValidationError("Invalid webhook signature")
    except ValueError:
        raise ValidationError("Webhook body must be JSON")
    return _decode_event(payload)


def _decode_event(payload: bytes) -> dict:
    try:
        event = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ValidationError("Webhook body must be JSON")
    if not isinstance(event, dict) or "type" not in event:
        raise ValidationError("Webhook event must include a type")
    return event


# =============================================================================
# STRIPE
# =============================================================================

class StripeGateway:
    name = "stripe"

    def __init__(self, secret_key: str, *, webhook_secret: str | None = None,
                 api_base: str = "https://api.stripe.com", timeout: float = 10.0,
                 client: stripe.StripeClient | None = None):
        if not secret_key:
            raise UpstreamError("Stripe is not configured")
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> stripe.StripeClient:
        if self._client is None:
            self._client = stripe.StripeClient(
                self.secret_key,
                base_addresses={"api": self.api_base},
                http_client=stripe.HTTPXClient(timeout=self.timeout, allow_sync_methods=True),
            )
        return self._client

    def _call(self, action: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except stripe.APIConnectionError as exc:
            current_app.logger.warning("Stripe %s failed: %s", action, exc)
            raise UpstreamError("Payment provider unavailable")
        except stripe.StripeError as exc:
            message = exc.user_message or f"Payment provider error ({exc.http_status})"
            current_app.logger.info("Stripe rejected %s: %s", action, message)
            raise UpstreamError(message)

    @staticmethod
    def _to_intent(obj) -> PaymentIntent:
        last_error = getattr(obj, "last_payment_error", None)
        return PaymentIntent(
            id=obj.id,
            status=getattr(obj, "status", "") or "",
            amount_cents=getattr(obj, "amount", None),
            currency=getattr(obj, "currency", None),
            client_secret=getattr(obj, "client_secret", None),
            failure_message=getattr(last_error, "message", None) if last_error else None,
        )

    def create_intent(self, amount_cents: int, currency: str, metadata: dict) -> PaymentIntent:
        params = {
            "amount": amount_cents,
            "currency": currency,
            "automatic_payment_methods": {"enabled": True, "allow_redirects": "never"},
            "metadata": {key: str(value) for key, value in metadata.items()},
        }
        return self._to_intent(self._call("create intent", self.client.payment_intents.create, params=params))

    def confirm_intent(self, intent_id: str, payment_method: str | None = None) -> PaymentIntent:
        params = {"payment_method": payment_method} if payment_method else {}
        return self._to_intent(
            self._call("confirm intent", self.client.payment_intents.confirm, intent_id, params=params)
        )

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        return self._to_intent(self._call("retrieve intent", self.client.payment_intents.retrieve, intent_id))

    def refund(self, intent_id: str, amount_cents: int | None = None) -> str:
        params = {"payment_intent": intent_id}
        if amount_cents is not None:
            params["amount"] = amount_cents
        return self._call("refund", self.client.refunds.create, params=params).id

    def verify_webhook(self, payload: bytes, signature: str | None) -> dict:
        if not self.webhook_secret:
            raise ValidationError("Webhook secret is not configured")
        return verify_signature(self.webhook_secret, payload, signature)


# =============================================================================
# FAKE
# =============================================================================

class FakeGateway:
    """
    Local stand-in for development and tests.

    Intents are not stored; confirm always succeeds except for
    DECLINED_TEST_METHOD. Webhooks are signature-checked when a secret is
    configured; unsigned events are accepted only with allow_unsigned.
    """

    name = "fake"

    def __init__(self, webhook_secret: str | None = None, *, allow_unsigned: bool = False):
        self.webhook_secret = webhook_secret
        self.allow_unsigned = allow_unsigned

    def create_intent(self, amount_cents: int, currency: str, metadata: dict) -> PaymentIntent:
        intent_id = f"pi_fake_{uuid.uuid4().hex[:24]}"
        return PaymentIntent(
            id=intent_id,
            status="requires_payment_method",
            amount_cents=amount_cents,
            currency=currency,
            client_secret=f"{intent_id}_secret_{uuid.uuid4().hex[:16]}",
        )

    def confirm_intent(self, intent_id: str, payment_method: str | None = None) -> PaymentIntent:
        if payment_method == DECLINED_TEST_METHOD:
            raise UpstreamError("Your card was declined.")
        return PaymentIntent(id=intent_id, status=INTENT_SUCCEEDED)

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        return PaymentIntent(id=intent_id, status="requires_confirmation")

    def refund(self, intent_id: str, amount_cents: int | None = None) -> str:
        return f"re_fake_{uuid.uuid4().hex[:24]}"

    def verify_webhook(self, payload: bytes, signature: str | None) -> dict:
        if self.webhook_secret:
            return verify_signature(self.webhook_secret, payload, signature)
        if not self.allow_unsigned:
            raise ValidationError("Webhook secret is not configured")
        return _decode_event(payload)


def get_gateway() -> PaymentGateway:
    """
    Gateway for the current app. An instance stored in
    app.extensions["payment_gateway"] takes precedence (tests inject one).
    """
    override = current_app.extensions.get("payment_gateway")
    if override is not None:
        return override

    config = current_app.config
    provider = config.get("PAYMENT_PROVIDER")
    if provider == "stripe":
        return StripeGateway(
            config.get("STRIPE_SECRET_KEY"),
            webhook_secret=config.get("STRIPE_WEBHOOK_SECRET"),
            api_base=config.get("STRIPE_API_BASE", "https://api.stripe.com"),
            timeout=config.get("PAYMENT_TIMEOUT_SECONDS", 10.0),
        )
    if provider == "fake":
        return FakeGateway(
            webhook_secret=config.get("STRIPE_WEBHOOK_SECRET"),
            allow_unsigned=current_app.testing,
        )
    raise UpstreamError(f"Unknown payment provider: {provider}")
