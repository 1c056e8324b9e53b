# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

"""
Inventory ledger routes.

Stock is never written directly: every request appends a movement and
on-hand quantities are derived from the ledger.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..errors import ValidationError
from ..services import inventory_service, products_service
from . import json_body, query_datetime, require_fields


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

_RECORDERS = {
    "entrada": inventory_service.record_stock_entry,
    "ajuste": inventory_service.record_stock_adjustment,
    "merma": inventory_service.record_stock_loss,
    "devolucion": inventory_service.record_stock_return,
}


@inventory_bp.post("/movements")
@require_auth
def record_movement_route():
    """
    Record one stock movement.

    Request body:
    {
        "type": "entrada" | "salida" | "ajuste" | "merma" | "devolucion",
        "product_id": 1,
        "quantity": 12,
        "reason": "Weekly delivery",   (optional)
        "reference": "PO-1001"         (optional)
    }
    """
    data = json_body()
    require_fields(data, "type", "product_id", "quantity")
    movement_type = data["type"]

    if movement_type == "salida":
        movement = inventory_service.record_stock_sale(
            g.auth_context, data["product_id"], data["quantity"], reference=data.get("reference"),
        )
    elif movement_type in _RECORDERS:
        movement = _RECORDERS[movement_type](
            g.auth_context, data["product_id"], data["quantity"],
            reason=data.get("reason"), reference=data.get("reference"),
        )
    else:
        raise ValidationError(f"Invalid movement type: {movement_type}")

    return jsonify({"movement": movement.to_dict()}), 201


@inventory_bp.get("/movements")
@require_auth
def list_movements_route():
    movements = inventory_service.get_movements_by_business(
        g.auth_context,
        movement_type=request.args.get("type"),
        start=query_datetime("start"),
        end=query_datetime("end"),
    )
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200


@inventory_bp.get("/products/<int:product_id>/movements")
@require_auth
def product_movements_route(product_id: int):
    movements = inventory_service.get_movements_by_product(g.auth_context, product_id)
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200


@inventory_bp.get("/products/<int:product_id>/stock")
@require_auth
def product_stock_route(product_id: int):
    product = products_service.get_product(g.auth_context, product_id)
    return jsonify({
        "product_id": product.id,
        "current_stock": inventory_service.calculate_stock_from_movements(product.id),
        "min_stock_level": product.min_stock_level,
    }), 200


@inventory_bp.get("/low-stock")
@require_auth
def low_stock_route():
    rows = inventory_service.get_low_stock_products(g.auth_context)
    return jsonify({"products": [
        {**row["product"].to_dict(), "current_stock": row["current_stock"]}
        for row in rows
    ]}), 200
