from __future__ import annotations

from ..extensions import db
from stockpilot.time_utils import to_iso_date, to_utc_z

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "completed", "cancelled")
EDITABLE_STATUSES = ("pending", "processing")
ACTIVE_STATUSES = ("pending", "processing")

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"


class Order(db.Model):
    """
    Customer order. Money is stored in cents.

    discount_value is a whole percent for `percentage` discounts and an
    amount in cents for `fixed` discounts. discount_amount_cents is the
    resolved amount, clamped to [0, subtotal].

    Deletion is soft: is_deleted rows are hidden from normal listings and
    the stock they consumed is not returned.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.CheckConstraint(
            "status IN ('pending', 'processing', 'shipped', 'delivered', 'completed', 'cancelled')",
            name="ck_orders_status",
        ),
        db.Index("ix_orders_customer_date", "customer_id", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_type = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Integer, nullable=True)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_of_goods_sold_cents = db.Column(db.Integer, nullable=False, default=0)
    profit_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    order_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_by_name = db.Column(db.String(120), nullable=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    deleted_by_name = db.Column(db.String(120), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer", backref=db.backref("orders", lazy="dynamic"))
    items = db.relationship(
        "OrderLineItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLineItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, *, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "subtotal_cents": self.subtotal_cents,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "discount_amount_cents": self.discount_amount_cents,
            "shipping_fee_cents": self.shipping_fee_cents,
            "total_amount_cents": self.total_amount_cents,
            "cost_of_goods_sold_cents": self.cost_of_goods_sold_cents,
            "profit_cents": self.profit_cents,
            "status": self.status,
            "order_date": to_utc_z(self.order_date),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_by_name": self.created_by_name,
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at),
            "deleted_by_user_id": self.deleted_by_user_id,
            "deleted_by_name": self.deleted_by_name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderLineItem(db.Model):
    __tablename__ = "order_line_items"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    # Nullable so the line survives product deletion
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    # Product cost per unit at the time of sale
    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    order = db.relationship("Order", back_populates="items")
    batches_used = db.relationship(
        "OrderBatchUsage",
        back_populates="line_item",
        cascade="all, delete-orphan",
        order_by="OrderBatchUsage.id",
    )

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "cost_cents": self.cost_cents,
            "line_total_cents": self.line_total_cents,
            "notes": self.notes,
            "batches_used": [b.to_dict() for b in self.batches_used],
        }


class OrderBatchUsage(db.Model):
    """How many units of one line item were drawn from one batch."""
    __tablename__ = "order_batch_usages"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    line_item_id = db.Column(db.Integer, db.ForeignKey("order_line_items.id"), nullable=False, index=True)
    # Plain reference: the batch may later be removed by an undo
    batch_id = db.Column(db.Integer, nullable=True)
    batch_code = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    quantity_used = db.Column(db.Integer, nullable=False)

    line_item = db.relationship("OrderLineItem", back_populates="batches_used")

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "batch_code": self.batch_code,
            "expiry_date": to_iso_date(self.expiry_date),
            "quantity_used": self.quantity_used,
        }
