# Overview: Flask API routes for the public catalog; products and categories, no authentication.

"""
Public catalog routes.

Only active products are ever visible here; an inactive product's id
returns 404 exactly like an unknown id.
"""

from flask import Blueprint, request

from ..responses import success, paginated
from ..services import category_service, products_service

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


# =============================================================================
# PRODUCTS
# =============================================================================

@catalog_bp.get("/products")
def list_products():
    """
    Query params:
    - search: text over name/description
    - category: category id
    - minPrice, maxPrice: decimal amounts
    - sizes, colors: comma-separated lists
    - inStock: bool
    - page, limit (default 12, max 100)
    - sortBy: createdAt | price | name; sortOrder: asc | desc
    """
    filters = products_service.parse_catalog_args(request.args)
    products, total = products_service.list_catalog(**filters)
    return success(paginated(
        [p.to_dict() for p in products],
        total=total,
        page=filters["page"],
        limit=filters["limit"],
        key="products",
    ))


@catalog_bp.get("/products/featured")
def featured_products():
    return success({"products": [p.to_dict() for p in products_service.list_featured()]})


@catalog_bp.get("/products/<int:product_id>")
def get_product(product_id: int):
    product = products_service.get_public_product(product_id)
    return success({"product": product.to_dict()})


@catalog_bp.get("/products/<int:product_id>/availability")
def product_availability(product_id: int):
    return success(products_service.get_availability(product_id))


@catalog_bp.get("/products/<int:product_id>/related")
def related_products(product_id: int):
    related = products_service.list_related(product_id)
    return success({"products": [p.to_dict(include_stocks=False) for p in related]})


# =============================================================================
# CATEGORIES
# =============================================================================

@catalog_bp.get("/categories")
def list_categories():
    return success({"categories": [c.to_dict() for c in category_service.list_categories()]})


@catalog_bp.get("/categories/<int:category_id>")
def get_category(category_id: int):
    category = category_service.get_category(category_id)
    data = category.to_dict()
    data["subcategories"] = [c.to_summary() for c in category.subcategories]
    return success({"category": data})
