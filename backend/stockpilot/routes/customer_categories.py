# Overview: Customer category routes; codes are generated or validated by the service.

from flask import Blueprint, request

from ..decorators import require_auth
from ..models import CustomerCategory
from ..services import customer_category_service
from ..validation import ModelValidationPolicy, error_response, validate_payload

CUSTOMER_CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "code", "description", "is_active"},
    required_on_create={"name"},
)

customer_categories_bp = Blueprint("customer_categories", __name__, url_prefix="/api/customer-categories")


def _clean(payload: dict, *, partial: bool) -> dict:
    payload = dict(payload)
    # code is optional on create; null or blank on update regenerates it
    has_code = "code" in payload
    code = payload.pop("code", None)
    patch = validate_payload(model=CustomerCategory, payload=payload, policy=CUSTOMER_CATEGORY_POLICY, partial=partial)
    if has_code:
        patch["code"] = str(code).strip() if code is not None else None
    return patch


@customer_categories_bp.get("")
@require_auth
def list_customer_categories_route():
    active_only = request.args.get("active_only", "false").lower() == "true"
    categories = customer_category_service.list_customer_categories(active_only=active_only)
    return {"success": True, "items": [c.to_dict() for c in categories], "count": len(categories)}


@customer_categories_bp.get("/<int:category_id>")
@require_auth
def get_customer_category_route(category_id: int):
    try:
        category = customer_category_service.get_customer_category(category_id)
    except ValueError as e:
        return error_response(e)
    return {"success": True, "category": category.to_dict()}


@customer_categories_bp.post("")
@require_auth
def create_customer_category_route():
    try:
        patch = _clean(request.get_json(silent=True) or {}, partial=False)
        category = customer_category_service.create_customer_category(patch=patch)
    except ValueError as e:
        return error_response(e)
    return {"success": True, "category": category.to_dict()}, 201


@customer_categories_bp.put("/<int:category_id>")
@require_auth
def update_customer_category_route(category_id: int):
    try:
        patch = _clean(request.get_json(silent=True) or {}, partial=True)
        category = customer_category_service.update_customer_category(category_id=category_id, patch=patch)
    except ValueError as e:
        return error_response(e)
    return {"success": True, "category": category.to_dict()}


@customer_categories_bp.delete("/<int:category_id>")
@require_auth
def delete_customer_category_route(category_id: int):
    try:
        customer_category_service.delete_customer_category(category_id=category_id)
    except ValueError as e:
        return error_response(e)
    return {"success": True}, 200
