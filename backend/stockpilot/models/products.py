from __future__ import annotations

from ..extensions import db
from stockpilot.time_utils import to_iso_date, to_utc_z


class Category(db.Model):
    """Product category. Names are unique; products reference it by id."""
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_categories_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Product master data with a denormalized stock counter.

    `stock` equals the sum of the product's applied inventory movements.
    It is only changed by inventory_service (stock-in, adjustment, sale,
    undo/redo), always in the same transaction as the movement row.

    `expiry_date` is derived from the batches: stock-in raises it when the
    new batch expires later, batch removal recomputes it.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    unit_of_measure = db.Column(db.String(32), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=0)
    expiry_date = db.Column(db.Date, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    batches = db.relationship(
        "ProductBatch",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductBatch.id",
    )
    images = db.relationship(
        "ProductImage",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductImage.position",
    )
    price_history = db.relationship(
        "PriceHistoryEntry",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="PriceHistoryEntry.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock}>"

    @property
    def stock_status(self) -> str:
        if self.stock <= 0:
            return "out_of_stock"
        if self.stock < (self.low_stock_threshold or 0):
            return "low"
        return "in_stock"

    def to_dict(self, *, include_details: bool = False) -> dict:
        data = {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "unit_of_measure": self.unit_of_measure,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "stock": self.stock,
            "stock_status": self.stock_status,
            "low_stock_threshold": self.low_stock_threshold,
            "expiry_date": to_iso_date(self.expiry_date),
            "images": [img.to_dict() for img in self.images],
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_details:
            data["batches"] = [b.to_dict() for b in self.batches]
            data["price_history"] = [p.to_dict() for p in self.price_history]
        return data


class ProductBatch(db.Model):
    """A received lot of stock with its own expiry and remaining quantity."""
    __tablename__ = "product_batches"
    __table_args__ = (
        db.UniqueConstraint("batch_code", name="uq_product_batches_code"),
        db.Index("ix_product_batches_product_expiry", "product_id", "expiry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    batch_code = db.Column(db.String(64), nullable=False)
    expiry_date = db.Column(db.Date, nullable=True)
    initial_quantity = db.Column(db.Integer, nullable=False)
    remaining_quantity = db.Column(db.Integer, nullable=False)
    cost_per_unit_cents = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", back_populates="batches")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "batch_code": self.batch_code,
            "expiry_date": to_iso_date(self.expiry_date),
            "initial_quantity": self.initial_quantity,
            "remaining_quantity": self.remaining_quantity,
            "cost_per_unit_cents": self.cost_per_unit_cents,
            "created_at": to_utc_z(self.created_at),
        }


class ProductImage(db.Model):
    __tablename__ = "product_images"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    url = db.Column(db.String(1024), nullable=False)
    # Key on the asset host, needed to delete the file
    public_id = db.Column(db.String(255), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product", back_populates="images")

    def to_dict(self) -> dict:
        return {"id": self.id, "url": self.url, "public_id": self.public_id}


class PriceHistoryEntry(db.Model):
    __tablename__ = "price_history"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    price_cents = db.Column(db.Integer, nullable=False)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    changed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    changed_by_name = db.Column(db.String(120), nullable=True)

    product = db.relationship("Product", back_populates="price_history")

    def to_dict(self) -> dict:
        return {
            "price_cents": self.price_cents,
            "changed_at": to_utc_z(self.changed_at),
            "changed_by_user_id": self.changed_by_user_id,
            "changed_by_name": self.changed_by_name,
        }
