from __future__ import annotations

from ..extensions import db
from fashionmart.time_utils import to_utc_z


RETURN_STATUS_PENDING = "pending"
RETURN_STATUS_APPROVED = "approved"
RETURN_STATUS_REJECTED = "rejected"

RETURN_STATUSES = (RETURN_STATUS_PENDING, RETURN_STATUS_APPROVED, RETURN_STATUS_REJECTED)


class Return(db.Model):
    """
    Customer return against a single order item of a delivered order.

    order_item_id is unique: an item can be returned at most once.
    Lifecycle: pending -> approved | rejected (staff, after assignment).
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.UniqueConstraint("order_item_id", name="uq_returns_order_item"),
        db.Index("ix_returns_status_staff", "status", "staff_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False)
    customer_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=False, index=True)
    staff_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=True, index=True)

    reason = db.Column(db.Text, nullable=False)
    images = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(db.String(16), nullable=False, default=RETURN_STATUS_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)
    restocked = db.Column(db.Boolean, nullable=False, default=False)

    assigned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("returns", lazy=True))
    order_item = db.relationship("OrderItem", backref=db.backref("return_request", uselist=False))
    customer = db.relationship("User", foreign_keys=[customer_id])
    staff = db.relationship("User", foreign_keys=[staff_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "orderId": self.order_id,
            "orderItemId": self.order_item_id,
            "customerId": self.customer_id,
            "staffId": self.staff_id,
            "reason": self.reason,
            "images": list(self.images or []),
            "status": self.status,
            "notes": self.notes,
            "restocked": self.restocked,
            "orderItem": self.order_item.to_dict() if self.order_item else None,
            "assignedAt": to_utc_z(self.assigned_at),
            "processedAt": to_utc_z(self.processed_at),
            "createdAt": to_utc_z(self.created_at),
        }
