# Overview: Admin-only staff account management.

from flask import Blueprint, g, request

from ..decorators import require_admin, require_auth
from ..services import auth_service
from ..validation import PermissionDeniedError, error_response

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_admin
def list_users_route():
    users = auth_service.list_users()
    return {"success": True, "items": [u.to_dict() for u in users], "count": len(users)}


@users_bp.post("")
@require_auth
@require_admin
def create_user_route():
    payload = request.get_json(silent=True) or {}
    try:
        user = auth_service.create_user(
            name=payload.get("name"),
            email=payload.get("email"),
            password=payload.get("password"),
            role=payload.get("role") or "employee",
        )
    except ValueError as e:
        return error_response(e)
    return {"success": True, "user": user.to_dict()}, 201


@users_bp.delete("/<int:user_id>")
@require_auth
@require_admin
def delete_user_route(user_id: int):
    try:
        auth_service.delete_user(user_id=user_id, actor=g.current_user)
    except (ValueError, PermissionDeniedError) as e:
        return error_response(e)
    return {"success": True}, 200
