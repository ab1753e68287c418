# Overview: Request decorators for API routes; authentication and role guards.

from functools import wraps

from flask import g, jsonify, request

from .errors import error_body
from .services import session_service


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.tenant_id: The tenant the session was created for
    - g.session_context: The full SessionContext object

    Route handlers read g.tenant_id once and pass it explicitly downstream.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify(error_body("Authentication required")), 401

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)

        if not context:
            return jsonify(error_body("Invalid or expired token")), 401

        g.current_user = context.user
        g.tenant_id = context.tenant_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Restrict a route to users holding one of the given roles.

    Must be stacked below @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify(error_body("Authentication required")), 401

            if user.role not in roles:
                return jsonify(error_body(
                    "Permission denied",
                    {"required_roles": list(roles), "role": user.role},
                )), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
