# Overview: Service-layer operations for categories; tree-shaped with cycle protection.

from __future__ import annotations

from ..extensions import db
from ..errors import Conflict, NotFound, ValidationError
from ..models import Category, Design, Product
from ..validation import ModelValidationPolicy, validate_payload, coerce_int


CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={
        "name": "name",
        "description": "description",
        "parentId": "parent_id",
    },
    required_on_create={"name"},
)


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if not category:
        raise NotFound("Category not found")
    return category


def require_category(category_id) -> Category:
    """Resolve a client-supplied category id, 400 when it does not exist."""
    if category_id in (None, ""):
        raise ValidationError("categoryId is required")
    category = db.session.get(Category, coerce_int(category_id, "categoryId"))
    if not category:
        raise ValidationError("Category does not exist")
    return category


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def _ensure_unique_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Category).filter(db.func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise Conflict("Category name already exists")


def _ensure_no_cycle(category_id: int | None, parent_id: int | None) -> None:
    """
    Walk up from the proposed parent; reaching category_id means the new
    edge would close a loop.
    """
    if parent_id is None:
        return
    seen: set[int] = set()
    current = db.session.get(Category, parent_id)
    if current is None:
        raise ValidationError("Parent category does not exist")
    while current is not None:
        if category_id is not None and current.id == category_id:
            raise ValidationError("Category parent would create a cycle")
        if current.id in seen:
            # Pre-existing loop in stored data; refuse to extend it
            raise ValidationError("Category tree is inconsistent")
        seen.add(current.id)
        current = current.parent


def create_category(payload: dict) -> Category:
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    _ensure_unique_name(patch["name"])
    _ensure_no_cycle(None, patch.get("parent_id"))

    category = Category(**patch)
    db.session.add(category)
    db.session.commit()
    return category


def update_category(category_id: int, payload: dict) -> Category:
    category = get_category(category_id)
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)

    if "name" in patch:
        _ensure_unique_name(patch["name"], exclude_id=category.id)
    if "parent_id" in patch:
        _ensure_no_cycle(category.id, patch["parent_id"])

    for key, value in patch.items():
        setattr(category, key, value)
    db.session.commit()
    return category


def delete_category(category_id: int) -> None:
    """
    Delete an unreferenced category.

    Raises Conflict while subcategories, designs or products still point at it.
    """
    category = get_category(category_id)

    if db.session.query(Category).filter_by(parent_id=category.id).first():
        raise Conflict("Category has subcategories")
    if db.session.query(Design).filter_by(category_id=category.id).first():
        raise Conflict("Category is used by designs")
    if db.session.query(Product).filter_by(category_id=category.id).first():
        raise Conflict("Category is used by products")

    db.session.delete(category)
    db.session.commit()
