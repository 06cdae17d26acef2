# Overview: Product category CRUD.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Category, Product
from ..validation import ConflictError, NotFoundError, ValidationError
from .pagination import paginate
from .revalidation import revalidate_after_write


def list_categories(*, search: str | None = None, page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(Category)
    if search:
        query = query.filter(Category.name.ilike(f"%{search.strip()}%"))
    return paginate(query.order_by(Category.name.asc()), page, per_page)


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if not category:
        raise NotFoundError("Category not found.")
    return category


def _check_name_available(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Category).filter(db.func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise ConflictError(f'A category with name "{name}" already exists.')


def create_category(*, patch: dict) -> Category:
    name = patch.get("name")
    if not name:
        raise ValidationError("name is required", "name")
    _check_name_available(name)

    category = Category(name=name, description=patch.get("description"))
    db.session.add(category)
    db.session.commit()
    revalidate_after_write()
    return category


def update_category(*, category_id: int, patch: dict) -> Category:
    category = get_category(category_id)
    if "name" in patch and patch["name"] != category.name:
        _check_name_available(patch["name"], exclude_id=category.id)

    for key in ("name", "description"):
        if key in patch:
            setattr(category, key, patch[key])
    db.session.commit()
    revalidate_after_write()
    return category


def delete_category(*, category_id: int) -> None:
    category = get_category(category_id)
    product_count = db.session.query(Product).filter(Product.category_id == category_id).count()
    if product_count > 0:
        raise ConflictError(
            f"Cannot delete category. {product_count} product(s) are currently assigned to it."
        )
    db.session.delete(category)
    db.session.commit()
    current_app.logger.info("Category %s deleted", category_id)
    revalidate_after_write()
