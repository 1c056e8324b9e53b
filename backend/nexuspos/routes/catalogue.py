# Overview: Flask API routes for departments and services; parses input and returns JSON responses.

"""
Department and service catalogue routes.

MULTI-TENANT: All operations are scoped to g.business_id through the
AuthContext built by @require_auth.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import department_service, service_items_service
from . import json_body, require_fields


catalogue_bp = Blueprint("catalogue", __name__, url_prefix="/api")


@catalogue_bp.get("/departments")
@require_auth
def list_departments_route():
    include_inactive = request.args.get("include_inactive") == "1"
    departments = department_service.get_departments(g.auth_context, include_inactive=include_inactive)
    return jsonify({"departments": [d.to_dict() for d in departments]}), 200


@catalogue_bp.post("/departments")
@require_auth
def create_department_route():
    data = json_body()
    require_fields(data, "name")
    department = department_service.create_department(g.auth_context, data["name"], data.get("description"))
    return jsonify({"department": department.to_dict()}), 201


@catalogue_bp.patch("/departments/<int:department_id>")
@require_auth
def update_department_route(department_id: int):
    department = department_service.update_department(g.auth_context, department_id, json_body())
    return jsonify({"department": department.to_dict()}), 200


@catalogue_bp.delete("/departments/<int:department_id>")
@require_auth
def deactivate_department_route(department_id: int):
    department = department_service.deactivate_department(g.auth_context, department_id)
    return jsonify({"department": department.to_dict()}), 200


@catalogue_bp.post("/departments/<int:department_id>/activate")
@require_auth
def activate_department_route(department_id: int):
    department = department_service.activate_department(g.auth_context, department_id)
    return jsonify({"department": department.to_dict()}), 200


@catalogue_bp.get("/departments/<int:department_id>/items")
@require_auth
def department_items_route(department_id: int):
    """Active products and services filed under one department."""
    ctx = g.auth_context
    products = department_service.get_products_by_department(ctx, department_id)
    services = service_items_service.get_services_by_department(ctx, department_id)
    return jsonify({
        "products": [p.to_dict() for p in products],
        "services": [s.to_dict() for s in services],
    }), 200


@catalogue_bp.get("/services")
@require_auth
def list_services_route():
    """
    List services.

    Query params:
    - q: search term over name and description (active only)
    - include_inactive: "1" to include deactivated services
    """
    term = request.args.get("q")
    if term:
        services = service_items_service.search_services(g.auth_context, term)
    else:
        include_inactive = request.args.get("include_inactive") == "1"
        services = service_items_service.get_services(g.auth_context, include_inactive=include_inactive)
    return jsonify({"services": [s.to_dict() for s in services]}), 200


@catalogue_bp.post("/services")
@require_auth
def create_service_route():
    data = json_body()
    service = service_items_service.create_service(
        g.auth_context,
        name=data.get("name"),
        price_cents=data.get("price_cents", 0),
        description=data.get("description"),
        department_id=data.get("department_id"),
        tax_type=data.get("tax_type"),
        tax_rate=data.get("tax_rate"),
    )
    return jsonify({"service": service.to_dict()}), 201


@catalogue_bp.get("/services/<int:service_id>")
@require_auth
def get_service_route(service_id: int):
    return jsonify({"service": service_items_service.get_service_with_usage(g.auth_context, service_id)}), 200


@catalogue_bp.patch("/services/<int:service_id>")
@require_auth
def update_service_route(service_id: int):
    service = service_items_service.update_service(g.auth_context, service_id, json_body())
    return jsonify({"service": service.to_dict()}), 200


@catalogue_bp.post("/services/<int:service_id>/deactivate")
@require_auth
def deactivate_service_route(service_id: int):
    service = service_items_service.deactivate_service(g.auth_context, service_id)
    return jsonify({"service": service.to_dict()}), 200


@catalogue_bp.post("/services/<int:service_id>/activate")
@require_auth
def activate_service_route(service_id: int):
    service = service_items_service.activate_service(g.auth_context, service_id)
    return jsonify({"service": service.to_dict()}), 200


@catalogue_bp.delete("/services/<int:service_id>")
@require_auth
def delete_service_route(service_id: int):
    service_items_service.delete_service(g.auth_context, service_id)
    return jsonify({"deleted": True}), 200
