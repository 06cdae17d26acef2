# Overview: Customer routes, including a customer's order list.

from flask import Blueprint, g, request

from ..decorators import require_auth
from ..models import Customer
from ..services import customers_service, orders_service
from ..services.customers_service import CUSTOMER_MUTABLE_FIELDS
from ..validation import (
    ModelValidationPolicy,
    PermissionDeniedError,
    enforce_rules_customer,
    error_response,
    validate_payload,
)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields=CUSTOMER_MUTABLE_FIELDS,
    required_on_create={"name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    result = customers_service.list_customers(
        search=request.args.get("search"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return {"success": True, **result}


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        customer = customers_service.get_customer(customer_id)
    except ValueError as e:
        return error_response(e)
    return {"success": True, "customer": customer.to_dict()}


@customers_bp.get("/<int:customer_id>/orders")
@require_auth
def customer_orders_route(customer_id: int):
    try:
        customers_service.get_customer(customer_id)
        result = orders_service.list_orders(
            customer_id=customer_id,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except ValueError as e:
        return error_response(e)
    return {"success": True, **result}


@customers_bp.post("")
@require_auth
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        enforce_rules_customer(patch)
        customer = customers_service.create_customer(patch=patch)
    except ValueError as e:
        return error_response(e)
    return {"success": True, "customer": customer.to_dict()}, 201


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        enforce_rules_customer(patch)
        customer = customers_service.update_customer(customer_id=customer_id, patch=patch)
    except ValueError as e:
        return error_response(e)
    return {"success": True, "customer": customer.to_dict()}


@customers_bp.delete("/<int:customer_id>")
@require_auth
def delete_customer_route(customer_id: int):
    """Admin only; refused while the customer has orders."""
    try:
        customers_service.delete_customer(customer_id=customer_id, actor=g.current_user)
    except (ValueError, PermissionDeniedError) as e:
        return error_response(e)
    return {"success": True}, 200
