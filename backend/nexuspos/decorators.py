# Overview: Request decorators for API routes.

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
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.business_id: The tenant captured by the session at login
    - g.auth_context: AuthContext handed to every service call
    - g.session_token: The raw bearer token (for logout)

    Permission checks are left to the services, so every route and CLI
    command goes through the same checks.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if context is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.business_id = context.business_id
        g.session_token = token
        g.auth_context = context.auth_context(
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        return f(*args, **kwargs)

    return decorated_function
