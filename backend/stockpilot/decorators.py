# Overview: Authentication and role decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid session token.

    Sets g.current_user and g.session_token. Returns 401 when the header
    is missing or the token is unknown, revoked or expired.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"success": False, "error": "Authentication required"}), 401

        user = session_service.validate_session(token)
        if not user:
            return jsonify({"success": False, "error": "Invalid or expired token"}), 401

        g.current_user = user
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Must be stacked under @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, "current_user"):
            return jsonify({"success": False, "error": "Authentication required"}), 401
        if not g.current_user.is_admin:
            return jsonify({"success": False, "error": "Administrator access required"}), 403
        return f(*args, **kwargs)

    return decorated_function
