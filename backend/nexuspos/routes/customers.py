# Overview: Flask API routes for customers operations; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import customer_service
from ..time_utils import to_utc_z
from . import json_body


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    term = request.args.get("q")
    if term:
        customers = customer_service.search_customers(g.auth_context, term)
    else:
        include_inactive = request.args.get("include_inactive") == "1"
        customers = customer_service.list_customers(g.auth_context, include_inactive=include_inactive)
    return jsonify({"customers": [c.to_dict() for c in customers]}), 200


@customers_bp.post("")
@require_auth
def create_customer_route():
    customer = customer_service.create_customer(g.auth_context, **json_body())
    return jsonify({"customer": customer.to_dict()}), 201


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    customer = customer_service.get_customer(g.auth_context, customer_id)
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.patch("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    customer = customer_service.update_customer(g.auth_context, customer_id, json_body())
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.delete("/<int:customer_id>")
@require_auth
def deactivate_customer_route(customer_id: int):
    customer = customer_service.deactivate_customer(g.auth_context, customer_id)
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.get("/<int:customer_id>/summary")
@require_auth
def customer_summary_route(customer_id: int):
    summary = customer_service.get_customer_summary(g.auth_context, customer_id)
    summary["last_purchase_at"] = to_utc_z(summary["last_purchase_at"])
    return jsonify({"summary": summary}), 200
