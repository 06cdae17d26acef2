from __future__ import annotations

from ..extensions import db
from stockpilot.time_utils import to_utc_z


class CustomerCategory(db.Model):
    """
    Customer segment. `code` is uppercase letters and underscores,
    unique, and either user supplied or generated from the name.
    """
    __tablename__ = "customer_categories"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_customer_categories_name"),
        db.UniqueConstraint("code", name="uq_customer_categories_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

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
            "code": self.code,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Customer(db.Model):
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("customer_code", name="uq_customers_code"),
        db.Index("ix_customers_name", "name"),
        db.Index("ix_customers_email", "email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    customer_code = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("customer_categories.id"), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("CustomerCategory", backref=db.backref("customers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "customer_code": self.customer_code,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
