# Overview: Flask API routes for registers and cash shifts; parses input and returns JSON responses.

"""
Register and cash shift routes.

Flow: open a shift on a register -> ring sales -> close with a counted
drawer -> a manager reconciles.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import shift_service
from ..time_utils import to_utc_z
from . import json_body, query_datetime, require_fields


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api")


def _summary_payload(summary: dict) -> dict:
    payload = dict(summary)
    if "closed_at" in payload:
        payload["closed_at"] = to_utc_z(payload["closed_at"])
    return payload


@shifts_bp.post("/registers")
@require_auth
def create_register_route():
    data = json_body()
    require_fields(data, "device_id")
    register = shift_service.create_register(g.auth_context, data["device_id"], location=data.get("location"))
    return jsonify({"register": register.to_dict()}), 201


@shifts_bp.get("/registers")
@require_auth
def list_registers_route():
    include_inactive = request.args.get("include_inactive") == "1"
    registers = shift_service.get_registers(g.auth_context, include_inactive=include_inactive)
    return jsonify({"registers": [r.to_dict() for r in registers]}), 200


@shifts_bp.delete("/registers/<int:register_id>")
@require_auth
def deactivate_register_route(register_id: int):
    register = shift_service.deactivate_register(g.auth_context, register_id)
    return jsonify({"register": register.to_dict()}), 200


@shifts_bp.post("/registers/<int:register_id>/shifts")
@require_auth
def open_shift_route(register_id: int):
    """
    Open a shift for the caller.

    Request body:
    {
        "opening_cash_cents": 10000
    }
    """
    data = json_body()
    require_fields(data, "opening_cash_cents")
    shift = shift_service.open_shift(g.auth_context, register_id, data["opening_cash_cents"])
    return jsonify({"shift": shift.to_dict()}), 201


@shifts_bp.get("/shifts/current")
@require_auth
def current_shift_route():
    shift = shift_service.get_current_shift(g.auth_context)
    return jsonify({"shift": shift.to_dict() if shift else None}), 200


@shifts_bp.get("/shifts")
@require_auth
def shift_history_route():
    shifts = shift_service.get_shift_history(
        g.auth_context,
        start=query_datetime("start"),
        end=query_datetime("end"),
        user_id=request.args.get("user_id", type=int),
        limit=request.args.get("limit", 50, type=int),
    )
    return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200


@shifts_bp.post("/shifts/<int:shift_id>/close")
@require_auth
def close_shift_route(shift_id: int):
    """
    Close the caller's shift.

    Request body:
    {
        "actual_cash_cents": 15800,
        "notes": "..."  (optional)
    }
    """
    data = json_body()
    require_fields(data, "actual_cash_cents")
    summary = shift_service.close_shift(g.auth_context, shift_id, data["actual_cash_cents"], notes=data.get("notes"))
    return jsonify({"summary": _summary_payload(summary)}), 200


@shifts_bp.post("/shifts/<int:shift_id>/force-close")
@require_auth
def force_close_shift_route(shift_id: int):
    data = json_body()
    require_fields(data, "reason", "declared_cash_cents")
    summary = shift_service.force_close_shift(
        g.auth_context, shift_id, data["reason"], data["declared_cash_cents"],
    )
    return jsonify({"summary": _summary_payload(summary)}), 200


@shifts_bp.post("/shifts/<int:shift_id>/reconcile")
@require_auth
def reconcile_shift_route(shift_id: int):
    data = json_body()
    shift = shift_service.reconcile_shift(g.auth_context, shift_id, notes=data.get("notes"))
    return jsonify({"shift": shift.to_dict()}), 200


@shifts_bp.post("/shifts/<int:shift_id>/transfer")
@require_auth
def transfer_shift_route(shift_id: int):
    data = json_body()
    require_fields(data, "to_user_id", "reason")
    shift = shift_service.transfer_shift(g.auth_context, shift_id, data["to_user_id"], data["reason"])
    return jsonify({"shift": shift.to_dict()}), 200


@shifts_bp.post("/shifts/<int:shift_id>/drawer")
@require_auth
def open_drawer_route(shift_id: int):
    data = json_body()
    shift_service.open_cash_drawer(g.auth_context, shift_id, data.get("reason") or "No sale")
    return jsonify({"message": "Drawer opened"}), 200


@shifts_bp.get("/shifts/<int:shift_id>/report")
@require_auth
def shift_report_route(shift_id: int):
    report = shift_service.get_shift_report(g.auth_context, shift_id)
    return jsonify({
        "shift": report["shift"].to_dict(),
        "register": report["register"].to_dict(),
        "summary": _summary_payload(report["summary"]),
        "sales": [s.to_dict() for s in report["sales"]],
    }), 200
