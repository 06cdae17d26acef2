from __future__ import annotations

from ..extensions import db
from stockpilot.time_utils import to_iso_date, to_utc_z

MOVEMENT_STOCK_IN = "stock-in"
MOVEMENT_STOCK_OUT = "stock-out"
MOVEMENT_SALE = "sale"
MOVEMENT_ADJUSTMENT_ADD = "adjustment-add"
MOVEMENT_ADJUSTMENT_REMOVE = "adjustment-remove"

MOVEMENT_TYPES = (
    MOVEMENT_STOCK_IN,
    MOVEMENT_STOCK_OUT,
    MOVEMENT_SALE,
    MOVEMENT_ADJUSTMENT_ADD,
    MOVEMENT_ADJUSTMENT_REMOVE,
)

STATE_APPLIED = "applied"
STATE_REVERSED = "reversed"


class InventoryMovement(db.Model):
    """
    One logged stock change.

    quantity is signed: positive for stock-in / adjustment-add, negative
    for stock-out / sale / adjustment-remove. Rows are never deleted.

    Undo does not remove the row; it sets the undo overlay
    (is_undone, undone_at, undone_by_*, undo_notes, original_stock_after)
    and redo clears it again. `state` exposes the overlay as
    applied/reversed. Sale movements never change state.

    batch_id links a stock-in to the batch it created. Redo of a stock-in
    creates a fresh batch and re-points batch_id.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.CheckConstraint(
            "type IN ('stock-in', 'stock-out', 'sale', 'adjustment-add', 'adjustment-remove')",
            name="ck_inventory_movements_type",
        ),
        db.Index("ix_inventory_movements_product_date", "product_id", "movement_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Nullable so the history survives product deletion (product_name is kept)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    movement_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    user_name = db.Column(db.String(120), nullable=True)

    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    batch_id = db.Column(db.Integer, db.ForeignKey("product_batches.id"), nullable=True, index=True)
    batch_code = db.Column(db.String(64), nullable=True)
    batch_expiry_date = db.Column(db.Date, nullable=True)
    # Receipt cost, kept so a redone stock-in recreates its batch at the same cost
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    related_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    # Undo overlay
    is_undone = db.Column(db.Boolean, nullable=False, default=False)
    undone_at = db.Column(db.DateTime(timezone=True), nullable=True)
    undone_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    undone_by_name = db.Column(db.String(120), nullable=True)
    undo_notes = db.Column(db.Text, nullable=True)
    original_stock_after = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))
    batch = db.relationship("ProductBatch", foreign_keys=[batch_id])

    @property
    def state(self) -> str:
        return STATE_REVERSED if self.is_undone else STATE_APPLIED

    @property
    def is_reversible(self) -> bool:
        return self.type != MOVEMENT_SALE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "type": self.type,
            "quantity": self.quantity,
            "movement_date": to_utc_z(self.movement_date),
            "user_id": self.user_id,
            "user_name": self.user_name,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "batch_id": self.batch_id,
            "batch_code": self.batch_code,
            "batch_expiry_date": to_iso_date(self.batch_expiry_date),
            "related_order_id": self.related_order_id,
            "notes": self.notes,
            "state": self.state,
            "is_undone": self.is_undone,
            "undone_at": to_utc_z(self.undone_at),
            "undone_by_user_id": self.undone_by_user_id,
            "undone_by_name": self.undone_by_name,
            "undo_notes": self.undo_notes,
            "original_stock_after": self.original_stock_after,
        }
