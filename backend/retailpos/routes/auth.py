# backend/retailpos/routes/auth.py
"""
Authentication API routes

Login exchanges credentials for a bearer token; the token carries the tenant
context for every later request. There is no self-registration: users are
created through `flask users create`.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import error_body
from ..services import auth_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Body: {"username": str, "password": str, "tenant_code": str (optional)}
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")
        tenant_code = data.get("tenant_code")

        if not all([username, password]):
            return jsonify(error_body("username/email and password required")), 400

        user = auth_service.authenticate(username, password, tenant_code=tenant_code)
        if not user:
            current_app.logger.warning("Failed login for %r", username)
            return jsonify(error_body("Invalid credentials")), 401

        session, token = session_service.create_session(user.id)

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "tenant_id": session.tenant_id,
            "expires_at": session.expires_at.isoformat(),
        }), 200

    except Exception:
        current_app.logger.exception("Login failed")
        return jsonify(error_body("Internal server error")), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers.get("Authorization", "").split(" ", 1)[1]
    session_service.revoke_session(token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict(), "tenant_id": g.tenant_id}), 200
