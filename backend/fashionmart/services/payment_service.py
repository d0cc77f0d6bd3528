# Overview: Service-layer operations for payments; intents, idempotent confirmation, failures, refunds and webhooks.

"""
Payment Service

One Payment row per order. Confirmation arrives either from the customer's
confirm call or from the provider webhook; both go through
mark_payment_succeeded, keyed on the payment-intent id and guarded so the
(pending, pending) -> (processing, paid) move happens exactly once.

A failed payment leaves the order pending with payment_status=failed; the
customer may request a new intent, which replaces the failed one on the
same Payment row.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import InvalidState, NotFound, UpstreamError, ValidationError
from ..models import Order, Payment, User
from ..models.communications import NOTIFICATION_PAYMENT
from ..models.orders import (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PROCESSING,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_REFUNDED,
)
from ..validation import require_json_object
from fashionmart.time_utils import utcnow
from .concurrency import guarded_update
from .payment_gateway import get_gateway
from . import notification_service


EVENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_FAILED = "payment_intent.payment_failed"


def _customer_order(order_id: int, customer: User) -> Order:
    order = db.session.get(Order, order_id)
    if not order or order.customer_id != customer.id:
        raise NotFound("Order not found")
    return order


def get_payment_by_intent(intent_id: str) -> Payment | None:
    return db.session.query(Payment).filter_by(payment_intent_id=intent_id).first()


def create_payment_intent(order_id: int, customer: User) -> Payment:
    """
    Create (or return the existing pending) payment intent for an order.

    Raises:
        InvalidState: order not pending, or already paid
        UpstreamError: provider refused the intent
    """
    order = _customer_order(order_id, customer)
    if order.status != ORDER_STATUS_PENDING or order.payment_status == PAYMENT_STATUS_PAID:
        raise InvalidState(
            f"Order is not awaiting payment (current: {order.status}/{order.payment_status})"
        )

    payment = order.payment
    if payment and payment.status == PAYMENT_STATUS_PENDING:
        return payment

    gateway = get_gateway()
    currency = current_app.config.get("PAYMENT_CURRENCY", "usd")
    intent = gateway.create_intent(
        order.total_cents,
        currency,
        {"orderId": order.id, "customerId": customer.id},
    )

    if payment is None:
        payment = Payment(order_id=order.id, customer_id=customer.id)
        db.session.add(payment)
    payment.provider = gateway.name
    payment.payment_intent_id = intent.id
    payment.client_secret = intent.client_secret
    payment.amount_cents = order.total_cents
    payment.currency = currency
    payment.status = PAYMENT_STATUS_PENDING
    payment.failure_message = None
    order.payment_status = PAYMENT_STATUS_PENDING

    db.session.commit()
    current_app.logger.info("Payment intent %s created for order %s", intent.id, order.id)
    return payment


def confirm_payment(order_id: int, customer: User, payload: dict | None = None) -> Payment:
    """
    Customer-side confirmation. Idempotent: an already paid order returns
    its payment unchanged.

    Payload: optional paymentIntentId (must match) and paymentMethodId.
    """
    payload = require_json_object(payload)
    order = _customer_order(order_id, customer)
    payment = order.payment
    if payment is None:
        raise InvalidState("No payment intent exists for this order")

    intent_id = payload.get("paymentIntentId")
    if intent_id and intent_id != payment.payment_intent_id:
        raise ValidationError("paymentIntentId does not match this order")

    if payment.status == PAYMENT_STATUS_PAID:
        return payment
    if payment.status != PAYMENT_STATUS_PENDING:
        raise InvalidState(f"Payment cannot be confirmed (current status: {payment.status})")

    gateway = get_gateway()
    intent = gateway.retrieve_intent(payment.payment_intent_id)
    if not intent.succeeded:
        try:
            intent = gateway.confirm_intent(payment.payment_intent_id, payload.get("paymentMethodId"))
        except UpstreamError as exc:
            record_payment_failure(payment.payment_intent_id, exc.message)
            raise

    if not intent.succeeded:
        raise UpstreamError(f"Payment not completed (provider status: {intent.status})")

    return mark_payment_succeeded(payment.payment_intent_id)


def mark_payment_succeeded(intent_id: str) -> Payment | None:
    """
    Apply a successful payment exactly once. Returns None for an unknown
    intent; a repeat call is a no-op.
    """
    payment = get_payment_by_intent(intent_id)
    if payment is None:
        current_app.logger.warning("Payment success for unknown intent %s", intent_id)
        return None

    moved = guarded_update(
        Payment,
        payment.id,
        where=(Payment.status.in_((PAYMENT_STATUS_PENDING, PAYMENT_STATUS_FAILED)),),
        values={"status": PAYMENT_STATUS_PAID, "paid_at": utcnow(), "failure_message": None},
    )
    if not moved:
        db.session.rollback()
        db.session.refresh(payment)
        return payment

    order_moved = guarded_update(
        Order,
        payment.order_id,
        where=(
            Order.status == ORDER_STATUS_PENDING,
            Order.payment_status.in_((PAYMENT_STATUS_PENDING, PAYMENT_STATUS_FAILED)),
        ),
        values={"status": ORDER_STATUS_PROCESSING, "payment_status": PAYMENT_STATUS_PAID},
    )
    if not order_moved:
        # Paid against an order that is no longer pending (cancelled meanwhile):
        # the capture goes straight back to the customer.
        current_app.logger.warning(
            "Payment %s succeeded but order %s was not pending; refunding", intent_id, payment.order_id
        )
        db.session.expire(payment)
        order = db.session.get(Order, payment.order_id)
        db.session.refresh(order)
        refund_order_payment(order)
        db.session.commit()
        db.session.refresh(payment)
        return payment

    notification_service.notify(
        payment.customer_id,
        NOTIFICATION_PAYMENT,
        "Payment received",
        f"Payment for order #{payment.order_id} was received.",
        {"orderId": payment.order_id, "paymentIntentId": intent_id},
    )
    db.session.commit()
    db.session.refresh(payment)
    current_app.logger.info("Payment %s confirmed for order %s", intent_id, payment.order_id)
    return payment


def record_payment_failure(intent_id: str, message: str | None) -> Payment | None:
    """Mark a pending payment failed; never downgrades a paid one."""
    payment = get_payment_by_intent(intent_id)
    if payment is None:
        current_app.logger.warning("Payment failure for unknown intent %s", intent_id)
        return None

    moved = guarded_update(
        Payment,
        payment.id,
        where=(Payment.status == PAYMENT_STATUS_PENDING,),
        values={"status": PAYMENT_STATUS_FAILED, "failure_message": message},
    )
    if not moved:
        db.session.rollback()
        db.session.refresh(payment)
        return payment

    guarded_update(
        Order,
        payment.order_id,
        where=(Order.payment_status == PAYMENT_STATUS_PENDING,),
        values={"payment_status": PAYMENT_STATUS_FAILED},
    )
    notification_service.notify(
        payment.customer_id,
        NOTIFICATION_PAYMENT,
        "Payment failed",
        f"Payment for order #{payment.order_id} failed: {message or 'unknown error'}",
        {"orderId": payment.order_id, "paymentIntentId": intent_id},
    )
    db.session.commit()
    db.session.refresh(payment)
    current_app.logger.info("Payment %s failed for order %s: %s", intent_id, payment.order_id, message)
    return payment


def refund_order_payment(order: Order) -> None:
    """
    Refund a paid order through the provider. Caller commits; a provider
    error propagates before anything is written.
    """
    payment = order.payment
    if payment is None or payment.status != PAYMENT_STATUS_PAID:
        raise InvalidState("Order has no captured payment to refund")

    refund_id = get_gateway().refund(payment.payment_intent_id, payment.amount_cents)

    now = utcnow()
    payment.status = PAYMENT_STATUS_REFUNDED
    payment.refunded_at = now
    order.payment_status = PAYMENT_STATUS_REFUNDED
    notification_service.notify(
        order.customer_id,
        NOTIFICATION_PAYMENT,
        "Refund issued",
        f"Payment for order #{order.id} was refunded.",
        {"orderId": order.id, "refundId": refund_id},
    )
    db.session.flush()
    current_app.logger.info("Refund %s issued for order %s", refund_id, order.id)


def handle_webhook(payload: bytes, signature: str | None) -> dict:
    """
    Verify and apply a provider event. Unknown event types are acknowledged
    and ignored.
    """
    event = get_gateway().verify_webhook(payload, signature)
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    intent_id = obj.get("id")

    handled = False
    if event_type == EVENT_SUCCEEDED and intent_id:
        handled = mark_payment_succeeded(intent_id) is not None
    elif event_type == EVENT_FAILED and intent_id:
        error = obj.get("last_payment_error") or {}
        handled = record_payment_failure(intent_id, error.get("message")) is not None
    else:
        current_app.logger.info("Ignoring payment webhook event %s", event_type)

    return {"received": True, "type": event_type, "handled": handled}
