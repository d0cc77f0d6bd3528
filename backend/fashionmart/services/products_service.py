# Overview: Service-layer operations for products; public catalog queries and inventory-managed product writes.

"""
Products Service

PUBLIC CATALOG: every public read is filtered to active=true first; no
filter combination can widen that. Inactive products look absent (404).

PRODUCT CREATION: only from an approved design, at most one product per
design. Name, description, category and images default from the design.
"""

from __future__ import annotations

from sqlalchemy import and_, or_

from ..extensions import db
from ..errors import Conflict, NotFound, ValidationError
from ..models import Design, Product, Stock
from ..models.catalog import DESIGN_STATUS_APPROVED
from ..money import to_cents
from ..validation import (
    ModelValidationPolicy,
    coerce_bool,
    coerce_int,
    parse_pagination,
    require_json_object,
    validate_payload,
)
from .category_service import require_category
from . import inventory_service


DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 100
FEATURED_LIMIT = 8
RELATED_LIMIT = 4

SORT_COLUMNS = {
    "createdAt": Product.created_at,
    "price": Product.price_cents,
    "name": Product.name,
}

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name": "name",
        "description": "description",
        "categoryId": "category_id",
        "active": "active",
    },
)


def _split_csv(raw) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in str(raw).split(",") if part.strip()]


def parse_catalog_args(args) -> dict:
    """Normalize query-string filters into keyword arguments for list_catalog."""
    page, limit = parse_pagination(args, default_limit=DEFAULT_PAGE_SIZE, max_limit=MAX_PAGE_SIZE)

    sort_by = args.get("sortBy", "createdAt")
    if sort_by not in SORT_COLUMNS:
        raise ValidationError(f"sortBy must be one of: {', '.join(SORT_COLUMNS)}")
    sort_order = (args.get("sortOrder") or "desc").lower()
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sortOrder must be 'asc' or 'desc'")

    min_price = args.get("minPrice")
    max_price = args.get("maxPrice")
    category = args.get("category")
    in_stock = args.get("inStock")

    return {
        "search": (args.get("search") or "").strip() or None,
        "category_id": coerce_int(category, "category") if category not in (None, "") else None,
        "min_price_cents": to_cents(min_price, "minPrice") if min_price not in (None, "") else None,
        "max_price_cents": to_cents(max_price, "maxPrice") if max_price not in (None, "") else None,
        "sizes": _split_csv(args.get("sizes")),
        "colors": _split_csv(args.get("colors")),
        "in_stock": coerce_bool(in_stock, "inStock") if in_stock not in (None, "") else False,
        "page": page,
        "limit": limit,
        "sort_by": sort_by,
        "sort_order": sort_order,
    }


def list_catalog(
    *,
    search: str | None = None,
    category_id: int | None = None,
    min_price_cents: int | None = None,
    max_price_cents: int | None = None,
    sizes: list[str] | None = None,
    colors: list[str] | None = None,
    in_stock: bool = False,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
) -> tuple[list[Product], int]:
    """
    Public product listing. Returns (products, total).

    Size, color and in-stock filters match through the product's stock rows;
    a product qualifies when at least one variant satisfies all of them.
    """
    query = db.session.query(Product).filter(Product.active.is_(True))

    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if min_price_cents is not None:
        query = query.filter(Product.price_cents >= min_price_cents)
    if max_price_cents is not None:
        query = query.filter(Product.price_cents <= max_price_cents)

    stock_conditions = []
    if sizes:
        stock_conditions.append(Stock.size.in_(sizes))
    if colors:
        stock_conditions.append(Stock.color.in_(colors))
    if in_stock:
        stock_conditions.append(Stock.quantity > 0)
    if stock_conditions:
        query = query.filter(Product.stocks.any(and_(*stock_conditions)))

    total = query.count()

    column = SORT_COLUMNS[sort_by]
    ordering = column.asc() if sort_order == "asc" else column.desc()
    products = (
        query.order_by(ordering, Product.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return products, total


def list_featured(limit: int = FEATURED_LIMIT) -> list[Product]:
    """Newest active products with something on hand."""
    return (
        db.session.query(Product)
        .filter(Product.active.is_(True), Product.stocks.any(Stock.quantity > 0))
        .order_by(Product.created_at.desc(), Product.id.desc())
        .limit(limit)
        .all()
    )


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFound("Product not found")
    return product


def get_public_product(product_id: int) -> Product:
    product = get_product(product_id)
    if not product.active:
        raise NotFound("Product not found")
    return product


def get_availability(product_id: int) -> dict:
    """size -> color -> quantity for an active product."""
    product = get_public_product(product_id)
    availability: dict[str, dict[str, int]] = {}
    for stock in product.stocks:
        availability.setdefault(stock.size, {})[stock.color] = stock.quantity
    return {
        "productId": product.id,
        "inStock": any(s.quantity > 0 for s in product.stocks),
        "availability": availability,
    }


def list_related(product_id: int, limit: int = RELATED_LIMIT) -> list[Product]:
    product = get_public_product(product_id)
    return (
        db.session.query(Product)
        .filter(
            Product.active.is_(True),
            Product.category_id == product.category_id,
            Product.id != product.id,
            Product.stocks.any(Stock.quantity > 0),
        )
        .order_by(Product.created_at.desc(), Product.id.desc())
        .limit(limit)
        .all()
    )


# =============================================================================
# INVENTORY MANAGEMENT
# =============================================================================

def list_all_products(*, active: bool | None = None, page: int = 1, limit: int = 20) -> tuple[list[Product], int]:
    query = db.session.query(Product)
    if active is not None:
        query = query.filter(Product.active.is_(active))
    total = query.count()
    products = (
        query.order_by(Product.created_at.desc(), Product.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return products, total


def create_product(payload: dict, images: list[str] | None = None) -> Product:
    """
    Create a product from an approved design, with optional initial stock.

    Payload: designId, price, optional name/description/categoryId and
    stocks: [{size, color, quantity, lowStockThreshold}].

    Raises:
        ValidationError: missing/invalid fields, or design not approved
        Conflict: design already has a product
    """
    payload = require_json_object(payload)

    design_id = payload.get("designId")
    if design_id in (None, ""):
        raise ValidationError("designId is required")
    design = db.session.get(Design, coerce_int(design_id, "designId"))
    if not design:
        raise ValidationError("Design does not exist")
    if design.status != DESIGN_STATUS_APPROVED:
        raise ValidationError(f"Design must be approved before it becomes a product (current status: {design.status})")
    if db.session.query(Product).filter_by(design_id=design.id).first():
        raise Conflict("A product already exists for this design")

    price_cents = to_cents(payload.get("price"), "price")

    fields = {k: v for k, v in payload.items() if k in PRODUCT_POLICY.writable_fields}
    patch = validate_payload(model=Product, payload=fields, policy=PRODUCT_POLICY, partial=True)
    category_id = patch.get("category_id") or design.category_id
    require_category(category_id)

    stocks_raw = payload.get("stocks") or []
    if not isinstance(stocks_raw, list):
        raise ValidationError("stocks must be a list")

    product = Product(
        design_id=design.id,
        designer_id=design.designer_id,
        category_id=category_id,
        name=patch.get("name") or design.name,
        description=patch.get("description", design.description),
        price_cents=price_cents,
        images=list(images) if images else list(design.images or []),
        active=patch.get("active", True),
    )
    db.session.add(product)
    db.session.flush()

    for raw in stocks_raw:
        inventory_service.add_stock_variant(product, raw)

    db.session.commit()
    return product


def update_product(product_id: int, payload: dict, images: list[str] | None = None) -> Product:
    """
    Update product fields. Price changes never touch existing order lines;
    those carry their own captured unit price.
    """
    payload = require_json_object(payload)
    product = get_product(product_id)

    unknown = set(payload) - set(PRODUCT_POLICY.writable_fields) - {"price"}
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    fields = {k: v for k, v in payload.items() if k != "price"}
    patch = validate_payload(model=Product, payload=fields, policy=PRODUCT_POLICY, partial=True)
    if "category_id" in patch:
        require_category(patch["category_id"])
    if "price" in payload:
        patch["price_cents"] = to_cents(payload["price"], "price")

    for key, value in patch.items():
        setattr(product, key, value)
    if images:
        product.images = list(product.images or []) + list(images)

    db.session.commit()
    return product

