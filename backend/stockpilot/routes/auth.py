# Overview: Login, logout and current-user endpoints.

# backend/stockpilot/routes/auth.py
"""
Authentication API routes.

Accounts are created by administrators (POST /api/users or the CLI);
there is no self-registration.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import auth_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate with email + password and create a session token.

    The token must be sent as "Authorization: Bearer <token>".
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not email or not password:
        return jsonify({"success": False, "error": "email and password required"}), 400

    user = auth_service.authenticate(email, password)
    if not user:
        current_app.logger.warning("Failed login for %s from %s", email, request.remote_addr)
        return jsonify({"success": False, "error": "Invalid credentials"}), 401

    session, token = session_service.create_session(
        user,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    current_app.logger.info("User %s logged in", user.email)

    return jsonify({
        "success": True,
        "user": user.to_dict(),
        "token": token,
        "expires_at": session.to_dict()["expires_at"],
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.session_token, reason="User logout")
    return jsonify({"success": True, "message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"success": True, "user": g.current_user.to_dict()}), 200
