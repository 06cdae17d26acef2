# Overview: Customer category CRUD with generated codes and self-healing code repair.

"""
Customer category codes.

A code is uppercase ASCII letters and underscores (the whole string
matches CODE_RE), unique
across categories. When the user does not supply one it is derived from
the name; collisions get a letter suffix (_A .. _Z, _AA, _AB, ...) and,
after MAX_SUFFIX_ATTEMPTS, a random four-letter suffix.

Reads repair stored codes that do not match CODE_RE (rows written by
older imports or by hand) and persist the repaired value.
"""

from __future__ import annotations

import random
import re
import string

from flask import current_app

from ..extensions import db
from ..models import Customer, CustomerCategory
from ..validation import ConflictError, NotFoundError, ValidationError
from .revalidation import revalidate_after_write

CODE_RE = re.compile(r"[A-Z_]+")
FALLBACK_CODE = "CATEGORY"
MAX_BASE_LENGTH = 20
MAX_SUFFIX_ATTEMPTS = 999


def generate_code_from_name(name: str) -> str:
    code = re.sub(r"[^A-Z\s]", "", (name or "").upper())
    code = re.sub(r"\s+", "_", code)
    code = code[:MAX_BASE_LENGTH]
    code = re.sub(r"[^A-Z_]", "", code)
    if not code:
        return FALLBACK_CODE
    if code.startswith("_"):
        code = FALLBACK_CODE + code
    return code


def letter_suffix(counter: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA, 27 -> AB, ... (bijective base 26)."""
    letters = string.ascii_uppercase
    suffix = ""
    n = counter + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        suffix = letters[rem] + suffix
    return suffix


def _code_taken(code: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(CustomerCategory.id).filter(CustomerCategory.code == code)
    if exclude_id is not None:
        query = query.filter(CustomerCategory.id != exclude_id)
    return query.first() is not None


def generate_unique_code(name: str, exclude_id: int | None = None) -> str:
    base = generate_code_from_name(name)
    if not _code_taken(base, exclude_id):
        return base

    for counter in range(MAX_SUFFIX_ATTEMPTS):
        candidate = f"{base}_{letter_suffix(counter)}"
        if not _code_taken(candidate, exclude_id):
            return candidate

    while True:
        candidate = f"{base}_{''.join(random.choices(string.ascii_uppercase, k=4))}"
        if not _code_taken(candidate, exclude_id):
            return candidate


def repair_code(code: str | None) -> str:
    fixed = re.sub(r"[^A-Z_]", "", (code or "").upper())
    fixed = re.sub(r"_+", "_", fixed)
    return fixed.strip("_")


def _heal(category: CustomerCategory) -> bool:
    """Fix an invalid stored code in place. Returns True if it changed."""
    if isinstance(category.code, str) and CODE_RE.fullmatch(category.code):
        return False

    fixed = repair_code(category.code)
    if not fixed or _code_taken(fixed, exclude_id=category.id):
        fixed = generate_unique_code(category.name, exclude_id=category.id)

    current_app.logger.warning(
        "Repaired customer category %s code %r -> %r", category.id, category.code, fixed
    )
    category.code = fixed
    return True


def _heal_and_save(categories: list[CustomerCategory]) -> int:
    repaired = 0
    for category in categories:
        if _heal(category):
            repaired += 1
            # flush each fix so the next collision check sees it
            db.session.flush()
    if repaired:
        db.session.commit()
    return repaired


def list_customer_categories(*, active_only: bool = False) -> list[CustomerCategory]:
    query = db.session.query(CustomerCategory)
    if active_only:
        query = query.filter(CustomerCategory.is_active.is_(True))
    categories = query.order_by(CustomerCategory.name.asc()).all()
    _heal_and_save(categories)
    return categories


def get_customer_category(category_id: int) -> CustomerCategory:
    category = db.session.get(CustomerCategory, category_id)
    if not category:
        raise NotFoundError("Customer category not found.")
    _heal_and_save([category])
    return category


def repair_all_codes() -> int:
    return _heal_and_save(db.session.query(CustomerCategory).order_by(CustomerCategory.id).all())


def _check_name_available(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(CustomerCategory).filter(CustomerCategory.name == name)
    if exclude_id is not None:
        query = query.filter(CustomerCategory.id != exclude_id)
    if query.first():
        raise ConflictError(f'A customer category named "{name}" already exists.')


def _validate_supplied_code(code: str, exclude_id: int | None = None) -> str:
    if not isinstance(code, str) or not CODE_RE.fullmatch(code):
        raise ValidationError("Code may only contain uppercase letters and underscores.", "code")
    if _code_taken(code, exclude_id):
        raise ConflictError(f'Category code "{code}" already exists.')
    return code


def create_customer_category(*, patch: dict) -> CustomerCategory:
    name = patch.get("name")
    if not name:
        raise ValidationError("name is required", "name")
    _check_name_available(name)

    code = patch.get("code")
    code = _validate_supplied_code(code) if code else generate_unique_code(name)

    category = CustomerCategory(
        name=name,
        code=code,
        description=patch.get("description"),
        is_active=patch.get("is_active", True),
    )
    db.session.add(category)
    db.session.commit()
    current_app.logger.info("Customer category %s created with code %s", category.id, category.code)
    revalidate_after_write()
    return category


def update_customer_category(*, category_id: int, patch: dict) -> CustomerCategory:
    """
    Patch name/code/description/is_active. An explicit null or blank code
    regenerates it from the (possibly new) name.
    """
    category = get_customer_category(category_id)

    if "name" in patch and patch["name"] != category.name:
        _check_name_available(patch["name"], exclude_id=category.id)
        category.name = patch["name"]

    if "code" in patch:
        code = patch["code"]
        if not code:
            category.code = generate_unique_code(category.name, exclude_id=category.id)
        elif code != category.code:
            category.code = _validate_supplied_code(code, exclude_id=category.id)

    for key in ("description", "is_active"):
        if key in patch:
            setattr(category, key, patch[key])

    db.session.commit()
    revalidate_after_write()
    return category


def delete_customer_category(*, category_id: int) -> None:
    category = db.session.get(CustomerCategory, category_id)
    if not category:
        raise NotFoundError("Customer category not found.")
    in_use = db.session.query(Customer).filter(Customer.category_id == category_id).count()
    if in_use:
        raise ConflictError(f"Cannot delete category. {in_use} customer(s) are assigned to it.")
    db.session.delete(category)
    db.session.commit()
    revalidate_after_write()


def find_or_create_by_name(name: str) -> CustomerCategory:
    """Import helper: match by name (case-insensitive) or create with a generated code."""
    category = db.session.query(CustomerCategory).filter(
        db.func.lower(CustomerCategory.name) == name.lower()
    ).first()
    if category:
        return category
    category = CustomerCategory(name=name, code=generate_unique_code(name), is_active=True)
    db.session.add(category)
    db.session.flush()
    return category
