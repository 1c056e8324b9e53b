# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product catalogue, pricing and tax routes.

MULTI-TENANT: All operations are scoped to g.business_id through the
AuthContext built by @require_auth.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import inventory_service, pricing_service, products_service, tax_service
from ..time_utils import parse_iso_datetime
from . import json_body, require_fields


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _product_payload(product) -> dict:
    data = product.to_dict()
    data["current_stock"] = inventory_service.calculate_stock_from_movements(product.id)
    data["margin_percent"] = pricing_service.calculate_margin(product.cost_cents, product.price_cents)
    return data


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List products.

    Query params:
    - q: search term over name, barcode and description (active only)
    - include_inactive: "1" to include deactivated products
    """
    term = request.args.get("q")
    if term:
        products = products_service.search_products(g.auth_context, term)
    else:
        include_inactive = request.args.get("include_inactive") == "1"
        products = products_service.list_products(g.auth_context, include_inactive=include_inactive)
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.post("")
@require_auth
def create_product_route():
    data = json_body()
    product = products_service.create_product(
        g.auth_context,
        name=data.get("name"),
        barcode=data.get("barcode"),
        cost_cents=data.get("cost_cents", 0),
        price_cents=data.get("price_cents", 0),
        product_type=data.get("product_type", "piece"),
        package_content=data.get("package_content"),
        description=data.get("description"),
        min_stock_level=data.get("min_stock_level", 0),
        tax_type=data.get("tax_type"),
        tax_rate=data.get("tax_rate"),
        department_id=data.get("department_id"),
    )
    return jsonify({"product": product.to_dict()}), 201


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    product = products_service.get_product(g.auth_context, product_id)
    return jsonify({"product": _product_payload(product)}), 200


@products_bp.get("/barcode/<barcode>")
@require_auth
def find_by_barcode_route(barcode: str):
    product = products_service.find_product_by_barcode(g.auth_context, barcode)
    return jsonify({"product": _product_payload(product)}), 200


@products_bp.patch("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    product = products_service.update_product(g.auth_context, product_id, json_body())
    return jsonify({"product": product.to_dict()}), 200


@products_bp.delete("/<int:product_id>")
@require_auth
def deactivate_product_route(product_id: int):
    product = products_service.deactivate_product(g.auth_context, product_id)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("/<int:product_id>/activate")
@require_auth
def activate_product_route(product_id: int):
    product = products_service.activate_product(g.auth_context, product_id)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.put("/<int:product_id>/price")
@require_auth
def update_price_route(product_id: int):
    """
    Change cost and/or price.

    Request body:
    {
        "cost_cents": 1200,        (optional)
        "price_cents": 1800,       (optional)
        "reason": "Supplier increase",
        "effective_date": "2024-05-01T00:00:00Z"  (optional)
    }
    """
    data = json_body()
    try:
        effective_date = parse_iso_datetime(data.get("effective_date"))
    except ValueError:
        return jsonify({"error": "effective_date must be an ISO-8601 datetime"}), 400

    entry = pricing_service.update_product_price(
        g.auth_context,
        product_id,
        cost_cents=data.get("cost_cents"),
        price_cents=data.get("price_cents"),
        reason=data.get("reason"),
        effective_date=effective_date,
        metadata=data.get("metadata"),
    )
    return jsonify({"changed": entry is not None, "history": entry.to_dict() if entry else None}), 200


@products_bp.post("/prices/bulk")
@require_auth
def bulk_price_route():
    data = json_body()
    require_fields(data, "updates", "reason")
    changed = pricing_service.bulk_update_prices(g.auth_context, data["updates"], data["reason"])
    return jsonify({"changed": changed}), 200


@products_bp.get("/<int:product_id>/price-history")
@require_auth
def price_history_route(product_id: int):
    limit = request.args.get("limit", 50, type=int)
    history = pricing_service.get_price_history(g.auth_context, product_id, limit=limit)
    return jsonify({"history": [h.to_dict() for h in history]}), 200


@products_bp.put("/<int:product_id>/tax")
@require_auth
def update_tax_route(product_id: int):
    data = json_body()
    require_fields(data, "tax_type", "tax_rate")
    product = tax_service.update_product_tax(g.auth_context, product_id, data["tax_type"], data["tax_rate"])
    return jsonify({"product": product.to_dict()}), 200


@products_bp.get("/tax-configs")
@require_auth
def tax_configs_route():
    return jsonify({"tax_configs": [
        {"type": c.type, "rate": c.rate, "description": c.description}
        for c in tax_service.get_available_tax_configs()
    ]}), 200


@products_bp.get("/barcode-conflicts")
@require_auth
def barcode_conflicts_route():
    return jsonify({"conflicts": products_service.get_conflicting_barcodes(g.auth_context)}), 200
