# Overview: Service-layer operations for orders; checkout, customer views and staff fulfillment.

"""
Order Service

LIFECYCLE (status, payment_status):
1. Checkout -> (pending, pending). Every line's stock is decremented with a
   guarded UPDATE in the same transaction as the order rows; any short-fall
   rolls the whole order back.
2. Payment confirmed (payment_service) -> (processing, paid)
3. Staff assign - only from (processing, paid)
4. Staff status: processing -> shipped -> delivered, forward only
5. Cancel - from pending (customer) or pending/processing (staff). Restores
   stock in the same transaction and refunds a paid order.

Every transition notifies the customer.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import Conflict, InvalidState, NotFound, UpstreamError, ValidationError
from ..models import Order, OrderItem, Product, Stock, User
from ..models.communications import NOTIFICATION_ORDER_STATUS
from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUSES,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PENDING,
)
from ..validation import coerce_int, parse_positive_int, require_json_object
from fashionmart.time_utils import utcnow
from .concurrency import guarded_update
from . import inventory_service, notification_service, payment_service


REQUIRED_ADDRESS_FIELDS = ("street", "city", "country")

# Forward-only staff transitions; cancellation handled separately
NEXT_STATUS = {
    ORDER_STATUS_PROCESSING: ORDER_STATUS_SHIPPED,
    ORDER_STATUS_SHIPPED: ORDER_STATUS_DELIVERED,
}
CANCELLABLE_BY_STAFF = (ORDER_STATUS_PENDING, ORDER_STATUS_PROCESSING)


class InsufficientStock(ValidationError):
    """Requested quantity exceeds what is on hand."""

    code = "INSUFFICIENT_STOCK"


def _validate_address(raw) -> dict:
    if not isinstance(raw, dict) or not raw:
        raise ValidationError("shippingAddress is required")
    missing = [f for f in REQUIRED_ADDRESS_FIELDS if not str(raw.get(f) or "").strip()]
    if missing:
        raise ValidationError(f"shippingAddress is missing: {', '.join(missing)}")
    return {k: v for k, v in raw.items() if isinstance(v, (str, int, float)) or v is None}


def _resolve_line(raw) -> tuple[Product, Stock, int]:
    """Validate one {productId, stockId | size+color, quantity} line."""
    raw = require_json_object(raw)
    if raw.get("productId") in (None, ""):
        raise ValidationError("Each item requires a productId")
    product_id = coerce_int(raw["productId"], "productId")
    quantity = parse_positive_int(raw.get("quantity"), "quantity")

    product = db.session.get(Product, product_id)
    if not product or not product.active:
        raise ValidationError(f"Product {product_id} is not available")

    if raw.get("stockId") not in (None, ""):
        stock = db.session.get(Stock, coerce_int(raw["stockId"], "stockId"))
    elif raw.get("size"):
        stock = db.session.query(Stock).filter_by(
            product_id=product.id,
            size=raw["size"],
            color=raw.get("color") or inventory_service.DEFAULT_COLOR,
        ).first()
    else:
        raise ValidationError("Each item requires a stockId or a size")

    if not stock or stock.product_id != product.id:
        raise ValidationError(f"Stock does not belong to product {product_id}")
    return product, stock, quantity


def create_order(customer: User, payload: dict) -> Order:
    """
    Place an order atomically.

    Raises:
        ValidationError: empty/invalid items, inactive product, foreign stock
        InsufficientStock: any line short; nothing is persisted
    """
    payload = require_json_object(payload)
    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    address = _validate_address(payload.get("shippingAddress"))
    notes = payload.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("notes must be a string")

    lines = [_resolve_line(raw) for raw in items]

    order = Order(
        customer_id=customer.id,
        status=ORDER_STATUS_PENDING,
        payment_status=PAYMENT_STATUS_PENDING,
        shipping_address=address,
        notes=notes,
        total_cents=sum(product.price_cents * quantity for product, _, quantity in lines),
    )
    db.session.add(order)
    db.session.flush()

    for product, stock, quantity in lines:
        if not inventory_service.decrement_stock(stock.id, quantity):
            stock_id, product_name = stock.id, product.name
            db.session.rollback()
            available = db.session.query(Stock.quantity).filter(Stock.id == stock_id).scalar()
            raise InsufficientStock(
                f"Insufficient stock for {product_name}",
                details={"stockId": stock_id, "requested": quantity, "available": available},
            )
        db.session.add(OrderItem(
            order_id=order.id,
            product_id=product.id,
            stock_id=stock.id,
            quantity=quantity,
            unit_price_cents=product.price_cents,
            size=stock.size,
            color=stock.color,
        ))

    inventory_service.alert_if_low(stock.id for _, stock, _ in lines)
    notification_service.notify(
        customer.id,
        NOTIFICATION_ORDER_STATUS,
        "Order placed",
        f"Order #{order.id} was placed and is awaiting payment.",
        {"orderId": order.id, "status": ORDER_STATUS_PENDING},
    )
    db.session.commit()

    current_app.logger.info("Order %s placed by %s (total_cents=%s)", order.id, customer.id, order.total_cents)
    return order


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFound("Order not found")
    return order


def get_customer_order(order_id: int, customer: User) -> Order:
    order = get_order(order_id)
    if order.customer_id != customer.id:
        raise NotFound("Order not found")
    return order


def _page(query, page: int, limit: int) -> tuple[list[Order], int]:
    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return orders, total


def list_customer_orders(customer: User, *, status: str | None = None, page: int = 1, limit: int = 20):
    query = db.session.query(Order).filter(Order.customer_id == customer.id)
    if status:
        query = query.filter(Order.status == _check_status(status))
    return _page(query, page, limit)


def list_orders(*, status: str | None = None, page: int = 1, limit: int = 20):
    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == _check_status(status))
    return _page(query, page, limit)


def list_pending_fulfillment() -> list[Order]:
    """Paid orders waiting for a staff member."""
    return (
        db.session.query(Order)
        .filter(
            Order.status == ORDER_STATUS_PROCESSING,
            Order.payment_status == PAYMENT_STATUS_PAID,
            Order.staff_id.is_(None),
        )
        .order_by(Order.created_at.asc(), Order.id.asc())
        .all()
    )


def list_assigned(staff: User) -> list[Order]:
    return (
        db.session.query(Order)
        .filter(Order.staff_id == staff.id)
        .order_by(Order.assigned_at.desc(), Order.id.desc())
        .all()
    )


def _check_status(status: str) -> str:
    if status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")
    return status


def _notify_status(order: Order, title: str, message: str) -> None:
    notification_service.notify(
        order.customer_id,
        NOTIFICATION_ORDER_STATUS,
        title,
        message,
        {"orderId": order.id, "status": order.status, "paymentStatus": order.payment_status},
    )


# =============================================================================
# STAFF FULFILLMENT
# =============================================================================

def assign_order(order_id: int, staff: User) -> Order:
    """
    Claim a paid order for fulfillment.

    Raises:
        InvalidState: order is not (processing, paid)
        Conflict: another staff member already holds it
    """
    order = get_order(order_id)
    if (order.status, order.payment_status) != (ORDER_STATUS_PROCESSING, PAYMENT_STATUS_PAID):
        raise InvalidState(
            "Order must be processing and paid before it can be assigned "
            f"(current: {order.status}/{order.payment_status})"
        )
    if order.staff_id == staff.id:
        return order
    if order.staff_id is not None:
        raise Conflict("Order is already assigned to another staff member")

    moved = guarded_update(
        Order,
        order.id,
        where=(
            Order.staff_id.is_(None),
            Order.status == ORDER_STATUS_PROCESSING,
            Order.payment_status == PAYMENT_STATUS_PAID,
        ),
        values={"staff_id": staff.id, "assigned_at": utcnow()},
    )
    if not moved:
        db.session.rollback()
        raise Conflict("Order was assigned concurrently")

    db.session.commit()
    db.session.refresh(order)
    current_app.logger.info("Order %s assigned to %s", order.id, staff.id)
    return order


def update_status(order_id: int, new_status: str, actor: User) -> Order:
    """
    Staff status update. Forward moves require the order to be assigned to
    the caller; cancellation is allowed from pending/processing.
    """
    order = get_order(order_id)
    _check_status(new_status)

    if new_status == ORDER_STATUS_CANCELLED:
        if order.staff_id is not None and order.staff_id != actor.id:
            raise Conflict("Order is assigned to another staff member")
        return cancel_order(order, allowed_from=CANCELLABLE_BY_STAFF, actor=actor)

    expected = NEXT_STATUS.get(order.status)
    if expected != new_status:
        raise InvalidState(f"Cannot move order from {order.status} to {new_status}")
    if order.staff_id != actor.id:
        raise InvalidState("Order must be assigned to you before its status can change")

    values = {"status": new_status}
    if new_status == ORDER_STATUS_DELIVERED:
        values["delivered_at"] = utcnow()
    moved = guarded_update(
        Order,
        order.id,
        where=(Order.status == order.status, Order.staff_id == actor.id),
        values=values,
    )
    if not moved:
        db.session.rollback()
        raise InvalidState("Order status changed concurrently")

    db.session.refresh(order)
    _notify_status(order, f"Order {new_status}", f"Order #{order.id} is now {new_status}.")
    db.session.commit()
    current_app.logger.info("Order %s -> %s by %s", order.id, new_status, actor.id)
    return order


def cancel_order(order: Order, *, allowed_from=(ORDER_STATUS_PENDING,), actor: User) -> Order:
    """
    Cancel, restock every line and refund a paid order, all or nothing.

    Raises:
        InvalidState: status not in allowed_from
        UpstreamError: refund rejected by the provider; nothing changes
    """
    if order.status not in allowed_from:
        raise InvalidState(f"Order cannot be cancelled from status {order.status}")

    previous = order.status
    moved = guarded_update(
        Order,
        order.id,
        where=(Order.status == previous,),
        values={"status": ORDER_STATUS_CANCELLED, "cancelled_at": utcnow()},
    )
    if not moved:
        db.session.rollback()
        raise InvalidState("Order status changed concurrently")
    db.session.refresh(order)

    for item in order.items:
        inventory_service.restock(item.stock_id, item.quantity)

    if order.payment_status == PAYMENT_STATUS_PAID:
        try:
            payment_service.refund_order_payment(order)
        except UpstreamError:
            db.session.rollback()
            raise

    _notify_status(order, "Order cancelled", f"Order #{order.id} was cancelled.")
    db.session.commit()
    current_app.logger.info("Order %s cancelled from %s by %s", order.id, previous, actor.id)
    return order


def cancel_customer_order(order_id: int, customer: User) -> Order:
    order = get_customer_order(order_id, customer)
    return cancel_order(order, allowed_from=(ORDER_STATUS_PENDING,), actor=customer)
