# Overview: Flask API routes for products; parses JSON or multipart input and returns JSON responses.

# backend/stockpilot/routes/products.py
"""
Product management routes.

Create and update accept either a JSON body or multipart/form-data with
one or more "images" files. Stock is never written here: initial stock on
create goes through the inventory ledger, later changes through
/api/inventory.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth
from ..models import Product
from ..services import products_service
from ..services.products_service import PRODUCT_MUTABLE_FIELDS
from ..validation import (
    ModelValidationPolicy,
    PermissionDeniedError,
    ValidationError,
    enforce_rules_product,
    error_response,
    parse_int_field,
    validate_payload,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_MUTABLE_FIELDS,
    required_on_create={"sku", "name", "price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _read_payload() -> tuple[dict, list, list]:
    """Returns (fields, image_files, remove_image_ids) for JSON or multipart requests."""
    if request.mimetype == "multipart/form-data":
        fields = {}
        for key, value in request.form.items():
            if key == "remove_image_ids":
                continue
            fields[key] = value if value.strip() else None
        remove_ids = []
        for raw in request.form.getlist("remove_image_ids"):
            remove_ids.extend(part for part in raw.split(",") if part.strip())
        return fields, request.files.getlist("images"), remove_ids

    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    fields = dict(payload)
    remove_ids = fields.pop("remove_image_ids", None) or []
    if not isinstance(remove_ids, list):
        raise ValidationError("remove_image_ids must be a list", "remove_image_ids")
    return fields, [], remove_ids


@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params:
    - category_id: int
    - search: matches name, SKU or description
    - stock_status: low | in_stock | out_of_stock | all
    - page, per_page: pagination (per_page default 10)
    """
    try:
        result = products_service.list_products(
            category_id=request.args.get("category_id", type=int),
            search=request.args.get("search"),
            stock_status=request.args.get("stock_status"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except ValueError as e:
        return error_response(e)
    return {"success": True, **result}


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except ValueError as e:
        return error_response(e)
    return {"success": True, "product": product.to_dict(include_details=True)}


@products_bp.post("")
@require_auth
def create_product_route():
    try:
        fields, image_files, _ = _read_payload()
        initial_stock = parse_int_field(fields, "stock", required=False, minimum=0) or 0
        fields.pop("stock", None)
        patch = validate_payload(model=Product, payload=fields, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = products_service.create_product(
            patch=patch,
            actor=g.current_user,
            initial_stock=initial_stock,
            image_files=image_files,
        )
    except ValueError as e:
        return error_response(e)

    return {"success": True, "product": product.to_dict(include_details=True)}, 201


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    try:
        fields, image_files, remove_ids = _read_payload()
        if "stock" in fields:
            raise ValidationError("Stock cannot be edited directly; use stock-in or an adjustment.", "stock")
        remove_ids = [parse_int_field({"id": raw}, "id") for raw in remove_ids]
        patch = validate_payload(model=Product, payload=fields, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = products_service.update_product(
            product_id=product_id,
            patch=patch,
            actor=g.current_user,
            image_files=image_files,
            remove_image_ids=remove_ids,
        )
    except ValueError as e:
        return error_response(e)

    return {"success": True, "product": product.to_dict(include_details=True)}


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    """Admin only."""
    try:
        products_service.delete_product(product_id=product_id, actor=g.current_user)
    except (ValueError, PermissionDeniedError) as e:
        return error_response(e)
    return {"success": True}, 200
