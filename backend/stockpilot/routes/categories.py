# Overview: Product category routes.

from flask import Blueprint, request

from ..decorators import require_auth
from ..models import Category
from ..services import categories_service
from ..validation import ModelValidationPolicy, error_response, validate_payload

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_auth
def list_categories_route():
    result = categories_service.list_categories(
        search=request.args.get("search"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return {"success": True, **result}


@categories_bp.get("/<int:category_id>")
@require_auth
def get_category_route(category_id: int):
    try:
        category = categories_service.get_category(category_id)
    except ValueError as e:
        return error_response(e)
    return {"success": True, "category": category.to_dict()}


@categories_bp.post("")
@require_auth
def create_category_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        category = categories_service.create_category(patch=patch)
    except ValueError as e:
        return error_response(e)
    return {"success": True, "category": category.to_dict()}, 201


@categories_bp.put("/<int:category_id>")
@require_auth
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        category = categories_service.update_category(category_id=category_id, patch=patch)
    except ValueError as e:
        return error_response(e)
    return {"success": True, "category": category.to_dict()}


@categories_bp.delete("/<int:category_id>")
@require_auth
def delete_category_route(category_id: int):
    try:
        categories_service.delete_category(category_id=category_id)
    except ValueError as e:
        return error_response(e)
    return {"success": True}, 200
