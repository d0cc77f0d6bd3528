# Overview: Flask API routes for inventory management; categories, products, stock and design review.

"""
Inventory routes (/api/inventory).

SECURITY: admin or inventory_manager throughout, except product creation,
which is inventory_manager only.
"""

import json

from flask import Blueprint, request

from ..decorators import require_auth, require_roles, current_user
from ..errors import ValidationError
from ..responses import success, paginated
from ..roles import ADMIN_OR_INVENTORY_MANAGER, INVENTORY_MANAGER_ONLY
from ..services import category_service, design_service, inventory_service, products_service
from ..uploads import request_payload, save_request_files
from ..validation import parse_optional_bool, parse_pagination, require_json_object

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


# =============================================================================
# CATEGORIES
# =============================================================================

@inventory_bp.get("/categories")
@require_auth
@require_roles(ADMIN_OR_INVENTORY_MANAGER)
def list_categories():
    return success({"categories": [c.to_dict() for c in category_service.list_categories()]})


@inventory_bp.post("/categories")
@require_auth
@require_roles(ADMIN_OR_INVENTORY_MANAGER)
def create_category():
    """Body: {name, description?, parentId?}. 409 on duplicate name."""
    category = category_service.create_category(request.get_json(silent=True))
    return success({"category": category.to_dict()}, message="Category created", status=201)


@inventory_bp.put("/categories/<int:category_id>")
@require_auth
@require_roles(ADMIN_OR_INVENTORY_MANAGER)
def update_category(category_id: int):
    category = category_service.update_category(category_id, request.get_json(silent=True))
    return success({"category": category.to_dict()}, message="Category updated")


@inventory_bp.delete("/categories/<int:category_id>")
@require_auth
@require_roles(ADMIN_OR_INVENTORY_MANAGER)
def delete_category(category_id: int):
    """409 while subcategories, designs or products reference it."""
    category_service.delete_category(category_id)
    return success(message="Category deleted")


# =============================================================================
# PRODUCTS & STOCK
# =============================================================================

def _product_payload() -> dict:
    payload = request_payload()
    stocks = payload.get("stocks")
    # multipart sends the stock list as a JSON string
    if isinstance(stocks, str):
        try:
            payload["stocks"] = json.loads(stocks) if stocks.strip() else []
        except json.JSONDecodeError:
            raise ValidationError("stocks must be a JSON list")
    return payload


@inventory_bp.get("/products")
@require_auth
@require_roles(ADMIN_OR_INVENTORY_MANAGER)
def list_products():
    """All products, active or not. Query params: active, page, limit."""
    page, limit = parse_pagination(request.args)
    products, total = products_service.list_all_products(
        active=parse_optional_bool(request.args, "active"), page=page, limit=limit
    )
    return success(paginated([p.to_dict() for p in products], total=total, page=page, limit=limit, key="products"))


@inventory_bp.post("/products")
@require_auth
@require_roles(INVENTORY_MANAGER_ONLY)
def create_product():
    """
    JSON or multipart: designId, price, name?, description?, categoryId?,
    stocks? [{size, color, quantity, lowStockThreshold}], productImages (files).

    400 unless the design is approved.
    """
    payload = _product_payload()
    images = save_request_files("productImages")
    product = products_service.create_product(payload, images)
    return success({"product": product.to_dict()}, message="Product created", status=201)


@inventory_bp.put("/products/<int:product_id>")
@require_auth
@require_roles(ADMIN_OR_INVENTORY_MANAGER)
def update_product(product_id: int):
    """name, description, categoryId, price, active; productImages append."""
    payload = request_payload()
    images = save_request_files("productImages")
    product = products_service.update_product(product_id, payload, images)
    return success({"product": product.to_dict()}, message="Product updated")


@inventory_bp.post("/products/<int:product_id>/stock")
@require_auth
@require_roles(ADMIN_OR_INVENTORY_MANAGER)
def add_stock(product_id: int):
    """Body: {size, color?, quantity, lowStockThreshold?}."""
    stock = inventory_service.create_stock_variant(product_id, request.get_json(silent=True))
    return success({"stock": stock.to_dict()}, message="Stock added", status=201)


@inventory_bp.put("/stock/<int:stock_id>")
@require_auth
@require_roles(ADMIN_OR_INVENTORY_MANAGER)
def update_stock(stock_id: int):
    """Body: {quantity?, lowStockThreshold?}."""
    stock = inventory_service.update_stock(stock_id, request.get_json(silent=True))
    return success({"stock": stock.to_dict()}, message="Stock updated")


@inventory_bp.get("/stock/low")
@require_auth
@require_roles(ADMIN_OR_INVENTORY_MANAGER)
def low_stock():
    rows = inventory_service.list_low_stock()
    data = []
    for stock in rows:
        item = stock.to_dict()
        item["productName"] = stock.product.name
        data.append(item)
    return success({"stocks": data})


# =============================================================================
# DESIGN REVIEW
# =============================================================================

@inventory_bp.get("/designs/pending")
@require_auth
@require_roles(ADMIN_OR_INVENTORY_MANAGER)
def pending_designs():
    designs = design_service.list_pending_designs()
    return success({"designs": [d.to_dict() for d in designs]})


@inventory_bp.post("/designs/<int:design_id>/review")
@require_auth
@require_roles(ADMIN_OR_INVENTORY_MANAGER)
def review_design(design_id: int):
    """Body: {status: approved | rejected, rejectionReason? (required to reject)}."""
    payload = require_json_object(request.get_json(silent=True))
    design = design_service.review_design(
        design_id,
        current_user(),
        payload.get("status"),
        payload.get("rejectionReason"),
    )
    return success({"design": design.to_dict()}, message=f"Design {design.status}")
