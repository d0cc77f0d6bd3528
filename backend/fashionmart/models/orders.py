from __future__ import annotations

from ..extensions import db
from ..money import to_amount
from fashionmart.time_utils import to_utc_z


ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_SHIPPED = "shipped"
ORDER_STATUS_DELIVERED = "delivered"
ORDER_STATUS_CANCELLED = "cancelled"
ORDER_STATUS_RETURNED = "returned"

ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_RETURNED,
)

# Shared by Order.payment_status and Payment.status
PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_FAILED = "failed"
PAYMENT_STATUS_REFUNDED = "refunded"

PAYMENT_STATUSES = (
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_REFUNDED,
)


class Order(db.Model):
    """
    Customer order. Status and payment_status move jointly:

    (pending, pending) -> payment confirmed -> (processing, paid)
    -> shipped -> delivered, with cancellation allowed from pending/processing.

    total_cents is fixed at checkout from the captured line prices.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_customer_created", "customer_id", "created_at"),
        db.Index("ix_orders_status_payment", "status", "payment_status"),
        db.CheckConstraint("total_cents >= 0", name="ck_orders_total_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=False, index=True)
    staff_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING, index=True)

    shipping_address = db.Column(db.JSON, nullable=False)
    notes = db.Column(db.Text, nullable=True)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    assigned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now()
    )

    customer = db.relationship("User", foreign_keys=[customer_id])
    staff = db.relationship("User", foreign_keys=[staff_id])
    items = db.relationship("OrderItem", back_populates="order", lazy=True, order_by="OrderItem.id")
    payment = db.relationship("Payment", back_populates="order", uselist=False)

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "customerId": self.customer_id,
            "staffId": self.staff_id,
            "status": self.status,
            "paymentStatus": self.payment_status,
            "shippingAddress": self.shipping_address,
            "notes": self.notes,
            "totalAmount": to_amount(self.total_cents),
            "totalCents": self.total_cents,
            "assignedAt": to_utc_z(self.assigned_at),
            "deliveredAt": to_utc_z(self.delivered_at),
            "cancelledAt": to_utc_z(self.cancelled_at),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["payment"] = self.payment.to_dict() if self.payment else None
        return data


class OrderItem(db.Model):
    """
    Order line. unit_price_cents is captured at checkout and never follows
    later product price changes.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    stock_id = db.Column(db.Integer, db.ForeignKey("stocks.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    # Variant snapshot so history survives stock edits
    size = db.Column(db.String(16), nullable=True)
    color = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")
    stock = db.relationship("Stock")

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "orderId": self.order_id,
            "productId": self.product_id,
            "stockId": self.stock_id,
            "productName": self.product.name if self.product else None,
            "size": self.size,
            "color": self.color,
            "quantity": self.quantity,
            "unitPrice": to_amount(self.unit_price_cents),
            "lineTotal": to_amount(self.line_total_cents),
        }


class Payment(db.Model):
    """
    Payment intent record, one per order.

    payment_intent_id is the provider's id and the idempotency key for
    confirmation (internal confirm action and webhook alike).
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, unique=True)
    customer_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=False, index=True)

    provider = db.Column(db.String(32), nullable=False)
    payment_intent_id = db.Column(db.String(255), nullable=False, unique=True)
    client_secret = db.Column(db.String(255), nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(8), nullable=False, default="usd")
    status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING, index=True)
    failure_message = db.Column(db.Text, nullable=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now()
    )

    order = db.relationship("Order", back_populates="payment")
    customer = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "orderId": self.order_id,
            "provider": self.provider,
            "paymentIntentId": self.payment_intent_id,
            "amount": to_amount(self.amount_cents),
            "currency": self.currency,
            "status": self.status,
            "failureMessage": self.failure_message,
            "paidAt": to_utc_z(self.paid_at),
            "refundedAt": to_utc_z(self.refunded_at),
            "createdAt": to_utc_z(self.created_at),
        }
