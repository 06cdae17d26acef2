# Overview: Customer CRUD and search.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Customer, CustomerCategory, Order, User
from ..validation import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from .pagination import paginate
from .revalidation import revalidate_after_write

CUSTOMER_MUTABLE_FIELDS = {"name", "customer_code", "email", "phone", "address", "category_id", "notes"}


def apply_customer_patch(c: Customer, patch: dict) -> None:
    for k, v in patch.items():
        if k in CUSTOMER_MUTABLE_FIELDS:
            setattr(c, k, v)


def list_customers(*, search: str | None = None, page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(Customer)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Customer.name.ilike(pattern),
            Customer.email.ilike(pattern),
            Customer.phone.ilike(pattern),
            Customer.customer_code.ilike(pattern),
        ))
    return paginate(query.order_by(Customer.name.asc(), Customer.id.asc()), page, per_page)


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found.")
    return customer


def find_by_code(code: str) -> Customer | None:
    return db.session.query(Customer).filter(Customer.customer_code == code).first()


def find_by_email(email: str) -> Customer | None:
    return db.session.query(Customer).filter(db.func.lower(Customer.email) == email.lower()).first()


def _check_code_available(code: str | None, exclude_id: int | None = None) -> None:
    if not code:
        return
    query = db.session.query(Customer).filter(Customer.customer_code == code)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first():
        raise ConflictError(f"Customer code '{code}' is already in use.")


def _check_category(category_id: int | None) -> None:
    if category_id is not None and not db.session.get(CustomerCategory, category_id):
        raise ValidationError("Customer category not found.", "category_id")


def create_customer(*, patch: dict, commit: bool = True) -> Customer:
    if not patch.get("name"):
        raise ValidationError("name is required", "name")
    _check_code_available(patch.get("customer_code"))
    _check_category(patch.get("category_id"))

    customer = Customer()
    apply_customer_patch(customer, patch)
    db.session.add(customer)
    if commit:
        db.session.commit()
        revalidate_after_write()
    else:
        db.session.flush()
    return customer


def update_customer(*, customer_id: int, patch: dict, commit: bool = True) -> Customer:
    customer = get_customer(customer_id)
    if "customer_code" in patch and patch["customer_code"] != customer.customer_code:
        _check_code_available(patch["customer_code"], exclude_id=customer.id)
    if "category_id" in patch:
        _check_category(patch["category_id"])

    apply_customer_patch(customer, patch)
    if commit:
        db.session.commit()
        revalidate_after_write()
    else:
        db.session.flush()
    return customer


def delete_customer(*, customer_id: int, actor: User) -> None:
    """Admin only; refused while the customer still has orders."""
    if not actor.is_admin:
        raise PermissionDeniedError("Only administrators can delete customers.")
    customer = get_customer(customer_id)
    order_count = db.session.query(Order).filter(Order.customer_id == customer_id).count()
    if order_count:
        raise ConflictError(f"Cannot delete customer with {order_count} order(s).")

    db.session.delete(customer)
    db.session.commit()
    current_app.logger.info("Customer %s deleted by %s", customer_id, actor.email)
    revalidate_after_write()
