# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication, onboarding and permission administration routes.

Onboarding is open only for a brand-new business (its owner). Every
other account is created by an owner or admin through /users.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..permissions import PERMISSION_DEFINITIONS
from ..services import auth_service, permission_service, session_service
from . import json_body, require_fields


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register-business")
def register_business_route():
    """
    Create a business and its owner account.

    Request body:
    {
        "business_name": "Abarrotes Lupita", "location": "...", "business_phone": "...",
        "first_name": "...", "paternal_last_name": "...", "email": "...",
        "phone": "...", "password": "...", "pin": "1234"  (optional)
    }
    """
    data = json_body()
    business, owner = auth_service.register_business(
        business_name=data.get("business_name"),
        location=data.get("location"),
        business_phone=data.get("business_phone"),
        business_email=data.get("business_email"),
        website=data.get("website"),
        first_name=data.get("first_name"),
        paternal_last_name=data.get("paternal_last_name"),
        maternal_last_name=data.get("maternal_last_name"),
        email=data.get("email"),
        phone=data.get("phone"),
        password=data.get("password"),
        pin=data.get("pin"),
    )
    return jsonify({"business": business.to_dict(), "user": owner.to_dict()}), 201


@auth_bp.post("/login")
def login_route():
    """Authenticate by email and password and open a session."""
    data = json_body()
    require_fields(data, "email", "password")

    result = session_service.login(
        data["email"],
        data["password"],
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    if result is None:
        return jsonify({"error": "Invalid email or password"}), 401

    user, token = result
    return jsonify({
        "user": user.to_dict(),
        "token": token,
        "business_id": user.business_id,
        "permissions": sorted(permission_service.get_effective_permissions(user.id, user.business_id)),
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.logout(g.session_token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({
        "user": g.current_user.to_dict(),
        "permissions": sorted(permission_service.get_effective_permissions(g.current_user.id, g.business_id)),
    }), 200


@auth_bp.post("/users")
@require_auth
def register_user_route():
    """Register an admin (as owner) or a cashier (as admin)."""
    data = json_body()
    user = auth_service.register_user(
        g.auth_context,
        first_name=data.get("first_name"),
        paternal_last_name=data.get("paternal_last_name"),
        maternal_last_name=data.get("maternal_last_name"),
        email=data.get("email"),
        phone=data.get("phone"),
        password=data.get("password"),
        pin=data.get("pin"),
        user_type=data.get("type"),
    )
    return jsonify({"user": user.to_dict()}), 201


@auth_bp.delete("/users/<int:user_id>")
@require_auth
def deactivate_user_route(user_id: int):
    user = auth_service.deactivate_user(g.auth_context, user_id)
    return jsonify({"user": user.to_dict()}), 200


@auth_bp.put("/users/<int:user_id>/pin")
@require_auth
def set_pin_route(user_id: int):
    data = json_body()
    require_fields(data, "pin")
    auth_service.set_user_pin(g.auth_context, user_id, data["pin"])
    return jsonify({"message": "PIN updated"}), 200


@auth_bp.get("/permissions")
@require_auth
def list_permissions_route():
    """Catalogue of every permission code, grouped by category."""
    return jsonify({"permissions": [
        {"code": code, "name": name, "description": description, "category": category}
        for code, name, description, category in PERMISSION_DEFINITIONS
    ]}), 200


@auth_bp.get("/users/<int:user_id>/permissions")
@require_auth
def user_permissions_route(user_id: int):
    """Effective permissions of a user in the caller's business."""
    return jsonify({
        "user_id": user_id,
        "permissions": sorted(permission_service.get_effective_permissions(user_id, g.business_id)),
        "assignments": [a.to_dict() for a in permission_service.get_user_permissions(user_id, g.business_id)],
    }), 200


@auth_bp.post("/users/<int:user_id>/permissions")
@require_auth
def assign_permission_route(user_id: int):
    data = json_body()
    require_fields(data, "permission")
    assignment = permission_service.assign_permission(g.auth_context, user_id, data["permission"])
    return jsonify({"assignment": assignment.to_dict()}), 201


@auth_bp.delete("/users/<int:user_id>/permissions/<permission>")
@require_auth
def revoke_permission_route(user_id: int, permission: str):
    permission_service.revoke_permission(g.auth_context, user_id, permission)
    return jsonify({"message": f"Revoked {permission}"}), 200
