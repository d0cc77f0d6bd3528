# Overview: Service-layer operations for returns; filing against delivered orders, staff assignment and processing.

"""
Return Service

LIFECYCLE:
1. Customer files a return for one item of their own delivered order
   (at most one return per order item)
2. Staff assign (pending, unassigned)
3. Assigned staff process -> approved | rejected, with notes

Approval restocks only when RESTOCK_ON_RETURN_APPROVAL is on. Once every
item of an order has an approved return, the order becomes "returned".
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import Conflict, InvalidState, NotFound, ValidationError
from ..models import Order, OrderItem, Return, User
from ..models.communications import NOTIFICATION_RETURN_STATUS
from ..models.orders import ORDER_STATUS_DELIVERED, ORDER_STATUS_RETURNED
from ..models.returns import RETURN_STATUS_APPROVED, RETURN_STATUS_PENDING, RETURN_STATUS_REJECTED
from ..roles import STAFF
from ..validation import coerce_int, parse_choice, require_json_object
from fashionmart.time_utils import utcnow
from .concurrency import guarded_update
from . import inventory_service, notification_service


PROCESS_DECISIONS = (RETURN_STATUS_APPROVED, RETURN_STATUS_REJECTED)


def get_return(return_id: int) -> Return:
    ret = db.session.get(Return, return_id)
    if not ret:
        raise NotFound("Return not found")
    return ret


def create_return(customer: User, payload: dict, images: list[str] | None = None) -> Return:
    """
    Raises:
        ValidationError: missing fields
        NotFound: item is not on one of the caller's orders
        InvalidState: order not delivered
        Conflict: item already has a return
    """
    payload = require_json_object(payload)
    if payload.get("orderItemId") in (None, ""):
        raise ValidationError("orderItemId is required")
    reason = payload.get("reason")
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("reason is required")

    item = db.session.get(OrderItem, coerce_int(payload["orderItemId"], "orderItemId"))
    if not item or item.order.customer_id != customer.id:
        raise NotFound("Order item not found")
    order = item.order
    if payload.get("orderId") not in (None, "") and coerce_int(payload["orderId"], "orderId") != order.id:
        raise ValidationError("orderItemId does not belong to orderId")

    if order.status != ORDER_STATUS_DELIVERED:
        raise InvalidState(f"Returns can only be filed for delivered orders (current status: {order.status})")
    if db.session.query(Return).filter_by(order_item_id=item.id).first():
        raise Conflict("A return already exists for this order item")

    ret = Return(
        order_id=order.id,
        order_item_id=item.id,
        customer_id=customer.id,
        reason=reason.strip(),
        images=list(images or []),
        status=RETURN_STATUS_PENDING,
    )
    db.session.add(ret)
    db.session.flush()

    notification_service.notify_role(
        STAFF,
        NOTIFICATION_RETURN_STATUS,
        "New return request",
        f"Return #{ret.id} was filed for order #{order.id}.",
        {"returnId": ret.id, "orderId": order.id},
    )
    db.session.commit()
    current_app.logger.info("Return %s filed by %s for order item %s", ret.id, customer.id, item.id)
    return ret


def list_customer_returns(customer: User) -> list[Return]:
    return (
        db.session.query(Return)
        .filter(Return.customer_id == customer.id)
        .order_by(Return.created_at.desc(), Return.id.desc())
        .all()
    )


def list_pending_returns() -> list[Return]:
    return (
        db.session.query(Return)
        .filter(Return.status == RETURN_STATUS_PENDING, Return.staff_id.is_(None))
        .order_by(Return.created_at.asc(), Return.id.asc())
        .all()
    )


def list_assigned_returns(staff: User) -> list[Return]:
    return (
        db.session.query(Return)
        .filter(Return.staff_id == staff.id)
        .order_by(Return.assigned_at.desc(), Return.id.desc())
        .all()
    )


def assign_return(return_id: int, staff: User) -> Return:
    ret = get_return(return_id)
    if ret.status != RETURN_STATUS_PENDING:
        raise InvalidState(f"Only pending returns can be assigned (current status: {ret.status})")
    if ret.staff_id == staff.id:
        return ret
    if ret.staff_id is not None:
        raise Conflict("Return is already assigned to another staff member")

    moved = guarded_update(
        Return,
        ret.id,
        where=(Return.staff_id.is_(None), Return.status == RETURN_STATUS_PENDING),
        values={"staff_id": staff.id, "assigned_at": utcnow()},
    )
    if not moved:
        db.session.rollback()
        raise Conflict("Return was assigned concurrently")

    db.session.commit()
    db.session.refresh(ret)
    return ret


def _all_items_returned(order: Order) -> bool:
    item_ids = {item.id for item in order.items}
    approved = {
        row.order_item_id
        for row in db.session.query(Return.order_item_id).filter(
            Return.order_id == order.id,
            Return.status == RETURN_STATUS_APPROVED,
        )
    }
    return bool(item_ids) and item_ids <= approved


def process_return(return_id: int, staff: User, payload: dict) -> Return:
    """
    Approve or reject an assigned return.

    Raises:
        ValidationError: bad status
        InvalidState: not pending, or not assigned to the caller
    """
    payload = require_json_object(payload)
    decision = parse_choice(payload.get("status"), "status", PROCESS_DECISIONS)
    notes = payload.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("notes must be a string")

    ret = get_return(return_id)
    if ret.status != RETURN_STATUS_PENDING:
        raise InvalidState(f"Return was already processed (current status: {ret.status})")
    if ret.staff_id != staff.id:
        raise InvalidState("Return must be assigned to you before it can be processed")

    moved = guarded_update(
        Return,
        ret.id,
        where=(Return.status == RETURN_STATUS_PENDING, Return.staff_id == staff.id),
        values={"status": decision, "notes": notes, "processed_at": utcnow()},
    )
    if not moved:
        db.session.rollback()
        raise InvalidState("Return was processed concurrently")
    db.session.refresh(ret)

    if decision == RETURN_STATUS_APPROVED:
        if current_app.config.get("RESTOCK_ON_RETURN_APPROVAL"):
            item = ret.order_item
            inventory_service.restock(item.stock_id, item.quantity)
            ret.restocked = True
        db.session.flush()
        if _all_items_returned(ret.order):
            guarded_update(
                Order,
                ret.order_id,
                where=(Order.status == ORDER_STATUS_DELIVERED,),
                values={"status": ORDER_STATUS_RETURNED},
            )

    message = f"Your return #{ret.id} was {decision}."
    if notes:
        message = f"{message} {notes}"
    notification_service.notify(
        ret.customer_id,
        NOTIFICATION_RETURN_STATUS,
        f"Return {decision}",
        message,
        {"returnId": ret.id, "orderId": ret.order_id, "status": decision},
    )
    db.session.commit()
    db.session.refresh(ret)
    current_app.logger.info("Return %s %s by %s", ret.id, decision, staff.id)
    return ret
