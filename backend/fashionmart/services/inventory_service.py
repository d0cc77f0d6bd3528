# Overview: Service-layer operations for inventory; stock variants, guarded decrements, low-stock alerts.

"""
Inventory Service

INVARIANTS:
- Stock.quantity never goes negative. Decrements are a single guarded
  UPDATE (quantity >= requested) run inside the caller's transaction, never
  read-then-write. The CHECK constraint on stocks.quantity backs this up.
- (product, size, color) is unique.

Crossing the low-stock threshold on a decrement notifies every active
inventory manager.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import Conflict, NotFound, ValidationError
from ..models import Product, Stock
from ..models.communications import NOTIFICATION_STOCK_ALERT
from ..roles import INVENTORY_MANAGER
from ..validation import coerce_int, require_json_object
from .concurrency import guarded_update
from . import notification_service


DEFAULT_COLOR = "default"


def get_stock(stock_id: int) -> Stock:
    stock = db.session.get(Stock, stock_id)
    if not stock:
        raise NotFound("Stock not found")
    return stock


def parse_stock_spec(raw) -> dict:
    """
    Validate one {size, color, quantity, lowStockThreshold} entry.
    Returns column-keyed values.
    """
    raw = require_json_object(raw)
    size = raw.get("size")
    if not isinstance(size, str) or not size.strip():
        raise ValidationError("Each stock entry requires a size")
    color = raw.get("color") or DEFAULT_COLOR
    if not isinstance(color, str):
        raise ValidationError("color must be a string")

    quantity = coerce_int(raw.get("quantity", 0), "quantity")
    if quantity < 0:
        raise ValidationError("quantity must be >= 0")

    threshold = raw.get("lowStockThreshold")
    if threshold is None:
        threshold = current_app.config.get("DEFAULT_LOW_STOCK_THRESHOLD", 5)
    threshold = coerce_int(threshold, "lowStockThreshold")
    if threshold < 0:
        raise ValidationError("lowStockThreshold must be >= 0")

    return {
        "size": size.strip(),
        "color": color.strip() or DEFAULT_COLOR,
        "quantity": quantity,
        "low_stock_threshold": threshold,
    }


def add_stock_variant(product: Product, raw) -> Stock:
    """Add a (size, color) variant to a product. Caller commits."""
    spec = parse_stock_spec(raw)
    existing = db.session.query(Stock).filter_by(
        product_id=product.id, size=spec["size"], color=spec["color"]
    ).first()
    if existing:
        raise Conflict(f"Stock for size {spec['size']} / color {spec['color']} already exists")

    stock = Stock(product_id=product.id, **spec)
    db.session.add(stock)
    db.session.flush()
    return stock


def create_stock_variant(product_id: int, raw) -> Stock:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFound("Product not found")
    try:
        stock = add_stock_variant(product, raw)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("Stock variant already exists")
    return stock


def update_stock(stock_id: int, payload: dict) -> Stock:
    """Set absolute quantity and/or threshold (manual adjustment)."""
    payload = require_json_object(payload)
    stock = get_stock(stock_id)

    unknown = set(payload) - {"quantity", "lowStockThreshold"}
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    if not payload:
        raise ValidationError("quantity or lowStockThreshold is required")

    if "quantity" in payload:
        quantity = coerce_int(payload["quantity"], "quantity")
        if quantity < 0:
            raise ValidationError("quantity must be >= 0")
        stock.quantity = quantity
    if "lowStockThreshold" in payload:
        threshold = coerce_int(payload["lowStockThreshold"], "lowStockThreshold")
        if threshold < 0:
            raise ValidationError("lowStockThreshold must be >= 0")
        stock.low_stock_threshold = threshold

    db.session.commit()
    return stock


def list_low_stock() -> list[Stock]:
    return (
        db.session.query(Stock)
        .join(Product, Product.id == Stock.product_id)
        .filter(Stock.quantity <= Stock.low_stock_threshold)
        .order_by(Stock.quantity.asc(), Stock.id.asc())
        .all()
    )


def decrement_stock(stock_id: int, quantity: int) -> bool:
    """
    Take `quantity` units from a stock row if and only if enough remain.

    Returns False on short-fall without changing anything. Does not commit;
    the caller's transaction decides whether the decrement sticks.
    """
    if quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    return guarded_update(
        Stock,
        stock_id,
        where=(Stock.quantity >= quantity,),
        values={"quantity": Stock.quantity - quantity},
    )


def restock(stock_id: int, quantity: int) -> None:
    """Put units back (cancellation, approved return). Caller commits."""
    if quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    if not guarded_update(Stock, stock_id, values={"quantity": Stock.quantity + quantity}):
        raise NotFound("Stock not found")


def alert_if_low(stock_ids) -> int:
    """
    Notify inventory managers about stock rows now at or below threshold.
    Returns number of low rows found. Caller commits.
    """
    ids = sorted(set(stock_ids))
    if not ids:
        return 0
    low_rows = (
        db.session.query(Stock)
        .filter(Stock.id.in_(ids), Stock.quantity <= Stock.low_stock_threshold)
        .all()
    )
    for stock in low_rows:
        db.session.refresh(stock)
        product_name = stock.product.name if stock.product else f"product {stock.product_id}"
        notification_service.notify_role(
            INVENTORY_MANAGER,
            NOTIFICATION_STOCK_ALERT,
            "Low stock",
            f"{product_name} ({stock.size}/{stock.color}) has {stock.quantity} left.",
            {"stockId": stock.id, "productId": stock.product_id, "quantity": stock.quantity},
        )
    return len(low_rows)
