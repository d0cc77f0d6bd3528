# Overview: Flask API routes for customers; profile, orders, payments and returns.

"""
Customer routes (/api/customer).

SECURITY: every route is customer-only. Orders and returns are looked up
through the caller, so another customer's ids answer 404.
"""

from flask import Blueprint, request

from ..decorators import require_auth, require_roles, current_user
from ..responses import success, paginated
from ..roles import CUSTOMER_ONLY
from ..services import order_service, payment_service, return_service, user_service
from ..uploads import request_payload, save_request_file, save_request_files
from ..validation import parse_pagination

customer_bp = Blueprint("customer", __name__, url_prefix="/api/customer")


# =============================================================================
# PROFILE
# =============================================================================

@customer_bp.get("/profile")
@require_auth
@require_roles(CUSTOMER_ONLY)
def get_profile():
    return success({"user": current_user().to_dict()})


@customer_bp.put("/profile")
@require_auth
@require_roles(CUSTOMER_ONLY)
def update_profile():
    """JSON or multipart: firstName, lastName, phoneNumber, profileImage (file)."""
    user = current_user()
    payload = request_payload()
    image_path = save_request_file("profileImage")

    user = user_service.update_profile(user, payload)
    if image_path:
        user = user_service.set_profile_image(user, image_path)
    return success({"user": user.to_dict()}, message="Profile updated")


# =============================================================================
# ORDERS
# =============================================================================

@customer_bp.get("/orders")
@require_auth
@require_roles(CUSTOMER_ONLY)
def list_orders():
    page, limit = parse_pagination(request.args)
    orders, total = order_service.list_customer_orders(
        current_user(), status=request.args.get("status") or None, page=page, limit=limit
    )
    return success(paginated([o.to_dict() for o in orders], total=total, page=page, limit=limit, key="orders"))


@customer_bp.post("/orders")
@require_auth
@require_roles(CUSTOMER_ONLY)
def create_order():
    """
    Body: {items: [{productId, stockId, quantity}], shippingAddress: {...}, notes?}

    400 when any line is short on stock; nothing is persisted in that case.
    """
    order = order_service.create_order(current_user(), request.get_json(silent=True))
    return success({"order": order.to_dict()}, message="Order created", status=201)


@customer_bp.get("/orders/<int:order_id>")
@require_auth
@require_roles(CUSTOMER_ONLY)
def get_order(order_id: int):
    order = order_service.get_customer_order(order_id, current_user())
    return success({"order": order.to_dict()})


@customer_bp.post("/orders/<int:order_id>/cancel")
@require_auth
@require_roles(CUSTOMER_ONLY)
def cancel_order(order_id: int):
    order = order_service.cancel_customer_order(order_id, current_user())
    return success({"order": order.to_dict()}, message="Order cancelled")


@customer_bp.post("/orders/<int:order_id>/payment")
@require_auth
@require_roles(CUSTOMER_ONLY)
def create_payment(order_id: int):
    """Create the payment intent, or return the pending one."""
    payment = payment_service.create_payment_intent(order_id, current_user())
    return success({
        "payment": payment.to_dict(),
        "paymentIntentId": payment.payment_intent_id,
        "clientSecret": payment.client_secret,
    }, message="Payment intent ready", status=201)


@customer_bp.post("/orders/<int:order_id>/payment/confirm")
@require_auth
@require_roles(CUSTOMER_ONLY)
def confirm_payment(order_id: int):
    """Body: {paymentIntentId?, paymentMethodId?}. Safe to repeat."""
    payment = payment_service.confirm_payment(order_id, current_user(), request.get_json(silent=True))
    order = order_service.get_customer_order(order_id, current_user())
    return success({"payment": payment.to_dict(), "order": order.to_dict()}, message="Payment confirmed")


# =============================================================================
# RETURNS
# =============================================================================

@customer_bp.get("/returns")
@require_auth
@require_roles(CUSTOMER_ONLY)
def list_returns():
    returns = return_service.list_customer_returns(current_user())
    return success({"returns": [r.to_dict() for r in returns]})


@customer_bp.post("/returns")
@require_auth
@require_roles(CUSTOMER_ONLY)
def create_return():
    """JSON or multipart: orderItemId, orderId?, reason, returnImages (files)."""
    payload = request_payload()
    images = save_request_files("returnImages")
    ret = return_service.create_return(current_user(), payload, images)
    return success({"return": ret.to_dict()}, message="Return request created", status=201)
