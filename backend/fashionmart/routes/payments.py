# Overview: Flask API routes for payment-provider callbacks.

from flask import Blueprint, request

from ..responses import success
from ..services import payment_service

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/webhook")
def provider_webhook():
    """
    Provider events (payment_intent.succeeded, payment_intent.payment_failed).

    Signature is checked against the raw body before anything is parsed.
    """
    result = payment_service.handle_webhook(request.get_data(), request.headers.get("Stripe-Signature"))
    return success(result)
