# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes: create, pay, cancel and refund sale documents."""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import fiscal_service, sales_service
from . import json_body, require_fields


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Create a pending sale on an open shift.

    Request body:
    {
        "shift_id": 3,
        "items": [{"product_id": 1, "quantity": 2, "discount_cents": 0}],
        "customer_id": 7,   (optional)
        "series": "VENTA",  (optional)
        "notes": "..."      (optional)
    }
    """
    data = json_body()
    require_fields(data, "shift_id", "items")
    sale = sales_service.create_sale(
        g.auth_context,
        data["shift_id"],
        data["items"],
        customer_id=data.get("customer_id"),
        series=data.get("series"),
        notes=data.get("notes"),
    )
    return jsonify({"sale": sales_service.get_sale_with_items(g.auth_context, sale.id)}), 201


@sales_bp.post("/checkout")
@require_auth
def checkout_route():
    """Create and pay a sale on the caller's open shift in one step."""
    data = json_body()
    require_fields(data, "items", "payments")
    result = sales_service.process_complete_sale(
        g.auth_context,
        data["items"],
        data["payments"],
        customer_id=data.get("customer_id"),
    )
    return jsonify({
        "sale": sales_service.get_sale_with_items(g.auth_context, result["sale"].id),
        "change_cents": result["change_cents"],
    }), 201


@sales_bp.post("/<int:sale_id>/payments")
@require_auth
def process_payment_route(sale_id: int):
    """
    Pay a pending sale.

    Request body:
    {
        "payments": [{"method": "cash", "amount_cents": 6000}]
    }
    """
    data = json_body()
    require_fields(data, "payments")
    change = sales_service.process_payment(g.auth_context, sale_id, data["payments"])
    return jsonify({
        "sale": sales_service.get_sale_with_items(g.auth_context, sale_id),
        "change_cents": change,
    }), 200


@sales_bp.post("/<int:sale_id>/cancel")
@require_auth
def cancel_sale_route(sale_id: int):
    data = json_body()
    sale = sales_service.cancel_sale(g.auth_context, sale_id, pin=data.get("pin"), reason=data.get("reason"))
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.post("/<int:sale_id>/refund")
@require_auth
def refund_sale_route(sale_id: int):
    """
    Refund all or part of a completed sale.

    Request body:
    {
        "amount_cents": 5800,
        "pin": "1234",
        "reason": "Damaged",                                 (optional)
        "items": [{"sale_item_id": 10, "quantity": 1}],      (optional)
        "method": "cash"                                     (optional)
    }
    """
    data = json_body()
    require_fields(data, "amount_cents")
    sale = sales_service.refund_sale(
        g.auth_context,
        sale_id,
        data["amount_cents"],
        pin=data.get("pin"),
        reason=data.get("reason"),
        items=data.get("items"),
        method=data.get("method", "cash"),
    )
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    sale = sales_service.get_sale(g.auth_context, sale_id)
    return jsonify({
        "sale": sales_service.get_sale_with_items(g.auth_context, sale_id),
        "summary": sales_service.calculate_sale_summary(sale),
    }), 200


@sales_bp.get("/recent")
@require_auth
def recent_sales_route():
    limit = request.args.get("limit", 10, type=int)
    sales = sales_service.get_recent_sales(g.auth_context, limit=limit)
    return jsonify({"sales": [s.to_dict() for s in sales]}), 200


@sales_bp.get("/fiscal/<fiscal_number>")
@require_auth
def sale_by_fiscal_number_route(fiscal_number: str):
    sale = fiscal_service.get_sale_by_fiscal_number(g.auth_context, fiscal_number)
    return jsonify({"sale": sales_service.get_sale_with_items(g.auth_context, sale.id)}), 200
