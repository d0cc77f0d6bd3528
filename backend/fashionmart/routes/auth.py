# Overview: Flask API routes for authentication; session lookup and identity-provider webhook.

from flask import Blueprint, request

from ..decorators import require_auth, current_user
from ..responses import success
from ..services import notification_service, user_service

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.get("/session")
@require_auth
def get_session():
    """Resolved caller for the bearer token, plus unread notification count."""
    user = current_user()
    return success({
        "user": user.to_dict(),
        "unreadNotifications": notification_service.unread_count(user.id),
    })


@auth_bp.post("/webhook")
def identity_webhook():
    """
    Identity provider events: user.created, user.updated, user.deleted.

    Signed with HMAC-SHA256 over the raw body in X-Webhook-Signature.
    """
    event = user_service.verify_identity_webhook(
        request.get_data(), request.headers.get("X-Webhook-Signature")
    )
    user = user_service.apply_identity_event(event.get("type"), event["data"])
    return success(
        {"received": True, "user": user.to_dict() if user else None},
        message="Webhook processed",
    )
