# Overview: Flask API routes for the inventory ledger: stock-in, adjustments, movement history, undo and redo.

# backend/stockpilot/routes/inventory.py
"""
Inventory ledger routes.

Every write returns the movement it produced together with the product's
new state. Undo and redo are restricted to administrators.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth
from ..services import inventory_service
from ..validation import PermissionDeniedError, ValidationError, error_response, parse_int_field
from stockpilot.time_utils import parse_iso_date

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _parse_date_field(payload: dict, key: str):
    try:
        return parse_iso_date(payload.get(key))
    except ValueError:
        raise ValidationError(f"{key} must be a YYYY-MM-DD date", key)


def _ledger_result(movement, product) -> dict:
    return {
        "success": True,
        "movement": movement.to_dict(),
        "product": {
            "id": product.id,
            "name": product.name,
            "stock": product.stock,
            "expiry_date": product.to_dict()["expiry_date"],
            "batches": [b.to_dict() for b in product.batches],
        },
    }


@inventory_bp.post("/stock-in")
@require_auth
def stock_in_route():
    """
    Receive stock as a new batch.

    Body: product_id, quantity (> 0), batch_expiry_date (YYYY-MM-DD),
    optional cost_per_unit_cents (defaults to the product cost).
    """
    payload = request.get_json(silent=True) or {}
    try:
        product_id = parse_int_field(payload, "product_id")
        quantity = parse_int_field(payload, "quantity")
        expiry = _parse_date_field(payload, "batch_expiry_date")
        cost = parse_int_field(payload, "cost_per_unit_cents", required=False)
        movement, product = inventory_service.record_stock_in(
            product_id=product_id,
            quantity=quantity,
            batch_expiry_date=expiry,
            actor=g.current_user,
            cost_per_unit_cents=cost,
        )
    except ValueError as e:
        return error_response(e)
    return _ledger_result(movement, product), 201


@inventory_bp.post("/adjustments")
@require_auth
def adjustment_route():
    """Body: product_id, quantity_change (signed, non-zero), reason, optional notes."""
    payload = request.get_json(silent=True) or {}
    try:
        product_id = parse_int_field(payload, "product_id")
        change = parse_int_field(payload, "quantity_change")
        movement, product = inventory_service.record_stock_adjustment(
            product_id=product_id,
            quantity_change=change,
            reason=payload.get("reason"),
            notes=payload.get("notes"),
            actor=g.current_user,
        )
    except ValueError as e:
        return error_response(e)
    return _ledger_result(movement, product), 201


@inventory_bp.get("/movements")
@require_auth
def list_movements_route():
    """
    Query params: product_id, type, include_undone (default true),
    limit (default 100, max 500).
    """
    include_undone = request.args.get("include_undone", "true").lower() != "false"
    try:
        movements = inventory_service.list_movements(
            product_id=request.args.get("product_id", type=int),
            movement_type=request.args.get("type") or None,
            include_undone=include_undone,
            limit=request.args.get("limit", type=int),
        )
    except ValueError as e:
        return error_response(e)
    return {"success": True, "items": [m.to_dict() for m in movements], "count": len(movements)}


@inventory_bp.get("/movements/<int:movement_id>")
@require_auth
def get_movement_route(movement_id: int):
    try:
        movement = inventory_service.get_movement(movement_id)
    except ValueError as e:
        return error_response(e)
    return {"success": True, "movement": movement.to_dict()}


@inventory_bp.post("/movements/<int:movement_id>/undo")
@require_auth
def undo_movement_route(movement_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        movement, product = inventory_service.undo_movement(
            movement_id=movement_id,
            actor=g.current_user,
            notes=payload.get("notes"),
        )
    except (ValueError, PermissionDeniedError) as e:
        return error_response(e)
    return _ledger_result(movement, product)


@inventory_bp.post("/movements/<int:movement_id>/redo")
@require_auth
def redo_movement_route(movement_id: int):
    try:
        movement, product = inventory_service.redo_movement(movement_id=movement_id, actor=g.current_user)
    except (ValueError, PermissionDeniedError) as e:
        return error_response(e)
    return _ledger_result(movement, product)


@inventory_bp.get("/products/<int:product_id>/stock-in-history")
@require_auth
def stock_in_history_route(product_id: int):
    try:
        history = inventory_service.get_stock_in_history(product_id)
    except ValueError as e:
        return error_response(e)
    return {"success": True, "items": history, "count": len(history)}
