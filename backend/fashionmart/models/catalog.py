from __future__ import annotations

from ..extensions import db
from ..money import to_amount
from fashionmart.time_utils import to_utc_z


DESIGN_STATUS_DRAFT = "draft"
DESIGN_STATUS_PENDING = "pending"
DESIGN_STATUS_APPROVED = "approved"
DESIGN_STATUS_REJECTED = "rejected"

DESIGN_STATUSES = (
    DESIGN_STATUS_DRAFT,
    DESIGN_STATUS_PENDING,
    DESIGN_STATUS_APPROVED,
    DESIGN_STATUS_REJECTED,
)


class Category(db.Model):
    """
    Product/design category. Categories form a tree through parent_id.

    The no-cycle rule is enforced by category_service on every parent change.
    """
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    parent = db.relationship("Category", remote_side=[id], backref=db.backref("subcategories", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "parentId": self.parent_id,
            "createdAt": to_utc_z(self.created_at),
        }

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "description": self.description}


class Design(db.Model):
    """
    Designer submission. Lifecycle: draft -> pending -> approved | rejected.

    Only approved designs can be turned into products.
    """
    __tablename__ = "designs"
    __table_args__ = (
        db.Index("ix_designs_designer_status", "designer_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    designer_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)

    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    images = db.Column(db.JSON, nullable=False, default=list)

    status = db.Column(db.String(16), nullable=False, default=DESIGN_STATUS_DRAFT, index=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reviewed_by_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now()
    )

    designer = db.relationship("User", foreign_keys=[designer_id])
    reviewed_by = db.relationship("User", foreign_keys=[reviewed_by_id])
    category = db.relationship("Category")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "designerId": self.designer_id,
            "categoryId": self.category_id,
            "name": self.name,
            "description": self.description,
            "images": list(self.images or []),
            "status": self.status,
            "rejectionReason": self.rejection_reason,
            "submittedAt": to_utc_z(self.submitted_at),
            "approvedDate": to_utc_z(self.approved_at),
            "reviewedById": self.reviewed_by_id,
            "category": self.category.to_summary() if self.category else None,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Sellable product, always backed by exactly one approved design.

    Price is stored in cents (price_cents) and exposed as a decimal "price".
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("price_cents >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_active_category", "active", "category_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    design_id = db.Column(db.Integer, db.ForeignKey("designs.id"), nullable=False, unique=True)
    designer_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)

    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False)
    images = db.Column(db.JSON, nullable=False, default=list)
    active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now()
    )

    design = db.relationship("Design")
    designer = db.relationship("User")
    category = db.relationship("Category")
    stocks = db.relationship("Stock", back_populates="product", lazy=True, order_by="Stock.id")

    def to_dict(self, include_stocks: bool = True) -> dict:
        data = {
            "id": self.id,
            "designId": self.design_id,
            "designerId": self.designer_id,
            "categoryId": self.category_id,
            "name": self.name,
            "description": self.description,
            "price": to_amount(self.price_cents),
            "priceCents": self.price_cents,
            "images": list(self.images or []),
            "active": self.active,
            "category": self.category.to_summary() if self.category else None,
            "designer": self.designer.to_public_dict() if self.designer else None,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
        if include_stocks:
            data["stocks"] = [s.to_dict() for s in self.stocks]
        return data


class Stock(db.Model):
    """
    On-hand quantity for one (product, size, color) variant.

    quantity never goes negative: the CHECK constraint backs up the guarded
    decrement in inventory_service.
    """
    __tablename__ = "stocks"
    __table_args__ = (
        db.UniqueConstraint("product_id", "size", "color", name="uq_stocks_product_size_color"),
        db.CheckConstraint("quantity >= 0", name="ck_stocks_quantity_non_negative"),
        db.CheckConstraint("low_stock_threshold >= 0", name="ck_stocks_threshold_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    size = db.Column(db.String(16), nullable=False)
    color = db.Column(db.String(32), nullable=False, default="default")
    quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)

    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now()
    )

    product = db.relationship("Product", back_populates="stocks")

    @property
    def is_low(self) -> bool:
        return self.quantity <= self.low_stock_threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "size": self.size,
            "color": self.color,
            "quantity": self.quantity,
            "lowStockThreshold": self.low_stock_threshold,
            "isLow": self.is_low,
            "updatedAt": to_utc_z(self.updated_at),
        }
