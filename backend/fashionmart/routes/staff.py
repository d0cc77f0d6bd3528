# Overview: Flask API routes for staff; order fulfillment and return processing.

"""
Staff routes (/api/staff).

SECURITY: the all-orders listing accepts admin or staff; every action is
staff-only.
"""

from flask import Blueprint, request

from ..decorators import require_auth, require_roles, current_user
from ..errors import ValidationError
from ..responses import success, paginated
from ..roles import ADMIN_OR_STAFF, STAFF_ONLY
from ..services import order_service, return_service
from ..validation import parse_pagination, require_json_object

staff_bp = Blueprint("staff", __name__, url_prefix="/api/staff")


# =============================================================================
# ORDERS
# =============================================================================

@staff_bp.get("/orders")
@require_auth
@require_roles(ADMIN_OR_STAFF)
def list_orders():
    """Query params: status, page, limit."""
    page, limit = parse_pagination(request.args)
    orders, total = order_service.list_orders(status=request.args.get("status") or None, page=page, limit=limit)
    return success(paginated([o.to_dict() for o in orders], total=total, page=page, limit=limit, key="orders"))


@staff_bp.get("/orders/pending")
@require_auth
@require_roles(STAFF_ONLY)
def pending_orders():
    """Paid orders in processing that nobody has claimed yet."""
    orders = order_service.list_pending_fulfillment()
    return success({"orders": [o.to_dict() for o in orders]})


@staff_bp.get("/orders/assigned")
@require_auth
@require_roles(STAFF_ONLY)
def assigned_orders():
    orders = order_service.list_assigned(current_user())
    return success({"orders": [o.to_dict() for o in orders]})


@staff_bp.post("/orders/<int:order_id>/assign")
@require_auth
@require_roles(STAFF_ONLY)
def assign_order(order_id: int):
    """400 unless the order is processing+paid; 409 when another staff member holds it."""
    order = order_service.assign_order(order_id, current_user())
    return success({"order": order.to_dict()}, message="Order assigned")


@staff_bp.put("/orders/<int:order_id>/status")
@require_auth
@require_roles(STAFF_ONLY)
def update_order_status(order_id: int):
    """Body: {status: shipped | delivered | cancelled}."""
    payload = require_json_object(request.get_json(silent=True))
    status = payload.get("status")
    if not isinstance(status, str) or not status:
        raise ValidationError("status is required")
    order = order_service.update_status(order_id, status, current_user())
    return success({"order": order.to_dict()}, message=f"Order {order.status}")


# =============================================================================
# RETURNS
# =============================================================================

@staff_bp.get("/returns/pending")
@require_auth
@require_roles(STAFF_ONLY)
def pending_returns():
    returns = return_service.list_pending_returns()
    return success({"returns": [r.to_dict() for r in returns]})


@staff_bp.get("/returns/assigned")
@require_auth
@require_roles(STAFF_ONLY)
def assigned_returns():
    returns = return_service.list_assigned_returns(current_user())
    return success({"returns": [r.to_dict() for r in returns]})


@staff_bp.post("/returns/<int:return_id>/assign")
@require_auth
@require_roles(STAFF_ONLY)
def assign_return(return_id: int):
    ret = return_service.assign_return(return_id, current_user())
    return success({"return": ret.to_dict()}, message="Return assigned")


@staff_bp.put("/returns/<int:return_id>/process")
@require_auth
@require_roles(STAFF_ONLY)
def process_return(return_id: int):
    """Body: {status: approved | rejected, notes?}."""
    ret = return_service.process_return(return_id, current_user(), request.get_json(silent=True))
    return success({"return": ret.to_dict()}, message=f"Return {ret.status}")
