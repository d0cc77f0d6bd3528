# Overview: Flask API routes for notifications; every role reads and acknowledges its own.

from flask import Blueprint, request

from ..decorators import require_auth, require_roles, current_user
from ..responses import success, paginated
from ..roles import ANY_ROLE
from ..services import notification_service
from ..validation import parse_pagination, parse_optional_bool

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
@require_roles(ANY_ROLE)
def list_notifications():
    """
    Query params:
    - unreadOnly: bool (default false)
    - page, limit: pagination (default 20, max 100)
    """
    page, limit = parse_pagination(request.args)
    unread_only = parse_optional_bool(request.args, "unreadOnly") or False
    user = current_user()

    items, total = notification_service.list_notifications(
        user.id, unread_only=unread_only, page=page, limit=limit
    )
    data = paginated([n.to_dict() for n in items], total=total, page=page, limit=limit, key="notifications")
    data["unreadCount"] = notification_service.unread_count(user.id)
    return success(data)


@notifications_bp.patch("/<int:notification_id>/read")
@require_auth
@require_roles(ANY_ROLE)
def mark_read(notification_id: int):
    notification = notification_service.mark_read(notification_id, current_user().id)
    return success({"notification": notification.to_dict()}, message="Notification marked as read")


@notifications_bp.post("/read-all")
@require_auth
@require_roles(ANY_ROLE)
def mark_all_read():
    updated = notification_service.mark_all_read(current_user().id)
    return success({"updated": updated}, message="All notifications marked as read")
