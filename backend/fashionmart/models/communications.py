from __future__ import annotations

from ..extensions import db
from fashionmart.time_utils import to_utc_z


NOTIFICATION_ORDER_STATUS = "order_status"
NOTIFICATION_PAYMENT = "payment"
NOTIFICATION_DESIGN_STATUS = "design_status"
NOTIFICATION_RETURN_STATUS = "return_status"
NOTIFICATION_STOCK_ALERT = "stock_alert"
NOTIFICATION_SYSTEM = "system"

NOTIFICATION_TYPES = (
    NOTIFICATION_ORDER_STATUS,
    NOTIFICATION_PAYMENT,
    NOTIFICATION_DESIGN_STATUS,
    NOTIFICATION_RETURN_STATUS,
    NOTIFICATION_STOCK_ALERT,
    NOTIFICATION_SYSTEM,
)


class Notification(db.Model):
    """In-app notification addressed to a single user."""
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    data = db.Column(db.JSON, nullable=True)
    read = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("notifications", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "read": self.read,
            "createdAt": to_utc_z(self.created_at),
        }
