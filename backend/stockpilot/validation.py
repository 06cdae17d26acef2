from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from stockpilot.time_utils import parse_iso_date, parse_iso_datetime


# Maximum money amount: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ValidationError(ValueError):
    """400-level input problem, optionally tied to one field."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(ValueError):
    """404-level: the referenced record does not exist."""


class ConflictError(ValueError):
    """409-level business rule conflict (negative stock, duplicate code, illegal transition)."""


class PermissionDeniedError(Exception):
    """403-level: the acting user lacks the required role."""


def error_response(exc: Exception):
    """Translate a service exception into the JSON failure result and status code."""
    body = {"success": False, "error": str(exc)}
    if isinstance(exc, ValidationError):
        if exc.field:
            body["errors"] = {exc.field: str(exc)}
        return body, 400
    if isinstance(exc, NotFoundError):
        return body, 404
    if isinstance(exc, ConflictError):
        return body, 409
    if isinstance(exc, PermissionDeniedError):
        return body, 403
    return body, 400


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer", col.key)
            if "e" in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)", col.key)
            if "." in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)", col.key)
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer", col.key)
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal", col.key)
        raise ValidationError(f"{col.key} must be an integer", col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", col.key)
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", col.key)
            return dt
        raise ValidationError(f"{col.key} must be a datetime", col.key)

    if isinstance(coltype, Date):
        if isinstance(value, (date, str)):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be a YYYY-MM-DD date", col.key)
            if d is None:
                # blank date input clears the field
                return None
            return d
        raise ValidationError(f"{col.key} must be a date", col.key)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing[0])

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", k)
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", k)

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", k)

        if isinstance(col.type, (String, Text)) and col.nullable and val == "":
            val = None

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", k)

        patch[k] = val

    return patch


def _check_money(patch: dict, key: str) -> None:
    if key in patch and patch[key] is not None:
        amount = patch[key]
        if amount < 0:
            raise ValidationError(f"{key} must be >= 0", key)
        if amount > MAX_PRICE_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}", key)


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _check_money(patch, "price_cents")
    _check_money(patch, "cost_cents")
    if patch.get("low_stock_threshold") is not None and patch["low_stock_threshold"] < 0:
        raise ValidationError("low_stock_threshold must be >= 0", "low_stock_threshold")
    if patch.get("stock") is not None and patch["stock"] < 0:
        raise ValidationError("stock must be >= 0", "stock")


def enforce_rules_customer(patch: dict) -> None:
    email = patch.get("email")
    if email and not EMAIL_RE.match(email):
        raise ValidationError("email is not a valid address", "email")


def enforce_rules_order(patch: dict) -> None:
    discount_type = patch.get("discount_type")
    if discount_type is not None and discount_type not in {"percentage", "fixed"}:
        raise ValidationError("discount_type must be 'percentage' or 'fixed'", "discount_type")
    value = patch.get("discount_value")
    if value is not None:
        if value < 0:
            raise ValidationError("discount_value must be >= 0", "discount_value")
        if discount_type == "percentage" and value > 100:
            raise ValidationError("percentage discount cannot exceed 100", "discount_value")
    _check_money(patch, "shipping_fee_cents")


def parse_int_field(payload: dict, key: str, *, required: bool = True, minimum: int | None = None) -> int | None:
    """Strictly parse an integer input that is not backed by a model column."""
    raw = payload.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        if required:
            raise ValidationError(f"{key} is required", key)
        return None
    if isinstance(raw, bool) or isinstance(raw, float):
        raise ValidationError(f"{key} must be an integer", key)
    if isinstance(raw, str):
        s = raw.strip()
        if not re.fullmatch(r"-?\d+", s):
            raise ValidationError(f"{key} must be an integer", key)
        raw = int(s)
    if not isinstance(raw, int):
        raise ValidationError(f"{key} must be an integer", key)
    if minimum is not None and raw < minimum:
        raise ValidationError(f"{key} must be >= {minimum}", key)
    return raw
