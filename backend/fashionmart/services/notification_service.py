# Overview: Service-layer operations for notifications; encapsulates business logic and database work.

from __future__ import annotations

from ..extensions import db
from ..errors import NotFound, ValidationError
from ..models import Notification, User
from ..models.communications import NOTIFICATION_TYPES


def notify(user_id: str, type_: str, title: str, message: str, data: dict | None = None) -> Notification:
    """
    Queue a notification in the current session.

    The caller owns the transaction: notifications commit (or roll back)
    together with the state change they describe.
    """
    if type_ not in NOTIFICATION_TYPES:
        raise ValidationError(f"Invalid notification type: {type_}")

    notification = Notification(
        user_id=user_id,
        type=type_,
        title=title,
        message=message,
        data=data,
        read=False,
    )
    db.session.add(notification)
    return notification


def notify_role(role: str, type_: str, title: str, message: str, data: dict | None = None) -> int:
    """Notify every active user holding `role`. Returns the recipient count."""
    recipients = db.session.query(User.id).filter(User.role == role, User.active.is_(True)).all()
    for (user_id,) in recipients:
        notify(user_id, type_, title, message, data)
    return len(recipients)


def list_notifications(user_id: str, *, unread_only: bool = False, page: int = 1, limit: int = 20) -> tuple[list[Notification], int]:
    query = db.session.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.read.is_(False))

    total = query.count()
    items = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def unread_count(user_id: str) -> int:
    return db.session.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read.is_(False),
    ).count()


def mark_read(notification_id: int, user_id: str) -> Notification:
    notification = db.session.query(Notification).filter_by(id=notification_id, user_id=user_id).first()
    if not notification:
        raise NotFound("Notification not found")
    notification.read = True
    db.session.commit()
    return notification


def mark_all_read(user_id: str) -> int:
    updated = db.session.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read.is_(False),
    ).update({Notification.read: True}, synchronize_session=False)
    db.session.commit()
    return updated
