# Overview: Flask API routes for orders; parses input and returns JSON responses.

# backend/stockpilot/routes/orders.py
"""
Order routes.

Creating or editing an order consumes stock through the inventory ledger
in the same transaction. Deletion is a soft delete reserved for
administrators and does not give stock back.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth
from ..models import Order
from ..services import orders_service
from ..services.orders_service import ORDER_MUTABLE_FIELDS
from ..validation import (
    ModelValidationPolicy,
    PermissionDeniedError,
    ValidationError,
    enforce_rules_order,
    error_response,
    validate_payload,
)
from stockpilot.time_utils import parse_iso_date

ORDER_POLICY = ModelValidationPolicy(
    writable_fields=ORDER_MUTABLE_FIELDS,
    required_on_create={"customer_id"},
)

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _list_filters() -> dict:
    filters = {
        "search": request.args.get("search"),
        "customer_id": request.args.get("customer_id", type=int),
        "status": request.args.get("status"),
        "page": request.args.get("page", type=int),
        "per_page": request.args.get("per_page", type=int),
    }
    for key in ("date_from", "date_to"):
        try:
            filters[key] = parse_iso_date(request.args.get(key))
        except ValueError:
            raise ValidationError(f"{key} must be a YYYY-MM-DD date", key)
    return filters


def _split_payload(payload: dict, *, partial: bool):
    payload = dict(payload)
    has_items = "items" in payload
    items = payload.pop("items", None)
    patch = validate_payload(model=Order, payload=payload, policy=ORDER_POLICY, partial=partial)
    enforce_rules_order(patch)
    return patch, items, has_items


@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    Query params: search (order number or customer name), customer_id,
    status, date_from, date_to (inclusive, YYYY-MM-DD), page, per_page.
    """
    try:
        result = orders_service.list_orders(**_list_filters())
    except ValueError as e:
        return error_response(e)
    return {"success": True, **result}


@orders_bp.get("/deleted")
@require_auth
def list_deleted_orders_route():
    """Admin only."""
    try:
        result = orders_service.list_deleted_orders(actor=g.current_user, **_list_filters())
    except (ValueError, PermissionDeniedError) as e:
        return error_response(e)
    return {"success": True, **result}


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = orders_service.get_order(order_id)
    except ValueError as e:
        return error_response(e)
    if order.is_deleted and not g.current_user.is_admin:
        return error_response(PermissionDeniedError("Only administrators can view deleted orders."))
    return {"success": True, "order": order.to_dict()}


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Body: customer_id, items [{product_id, quantity, unit_price_cents?, notes?}],
    optional discount_type (percentage|fixed), discount_value,
    shipping_fee_cents, notes.
    """
    payload = request.get_json(silent=True) or {}
    try:
        patch, items, _ = _split_payload(payload, partial=False)
        order = orders_service.create_order(patch=patch, items=items, actor=g.current_user)
    except ValueError as e:
        return error_response(e)
    return {"success": True, "order": order.to_dict()}, 201


@orders_bp.put("/<int:order_id>")
@require_auth
def update_order_route(order_id: int):
    """Only pending and processing orders. Sending items replaces all lines."""
    payload = request.get_json(silent=True) or {}
    try:
        patch, items, has_items = _split_payload(payload, partial=True)
        order = orders_service.update_order(
            order_id=order_id,
            patch=patch,
            actor=g.current_user,
            items=items if has_items else None,
        )
    except ValueError as e:
        return error_response(e)
    return {"success": True, "order": order.to_dict()}


@orders_bp.put("/<int:order_id>/status")
@require_auth
def update_order_status_route(order_id: int):
    payload = request.get_json(silent=True) or {}
    status = payload.get("status")
    if not status:
        return error_response(ValidationError("status is required", "status"))
    try:
        order = orders_service.update_order_status(order_id=order_id, status=status, actor=g.current_user)
    except ValueError as e:
        return error_response(e)
    return {"success": True, "order": order.to_dict()}


@orders_bp.delete("/<int:order_id>")
@require_auth
def delete_order_route(order_id: int):
    """Admin only soft delete."""
    try:
        order = orders_service.delete_order(order_id=order_id, actor=g.current_user)
    except (ValueError, PermissionDeniedError) as e:
        return error_response(e)
    return {"success": True, "order": order.to_dict(include_items=False)}, 200
