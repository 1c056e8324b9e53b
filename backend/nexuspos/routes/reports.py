# Overview: Flask API routes for reports; parses input and returns JSON responses.

"""
Reporting routes.

Read-only aggregates. Each report enforces its own reports.* permission
in the service layer.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import audit_service, customer_service, fiscal_service, inventory_service, sales_service, tax_service
from ..time_utils import to_utc_z
from . import query_datetime


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
@require_auth
def sales_report_route():
    """Query params: start, end (ISO-8601, optional)."""
    start = query_datetime("start")
    end = query_datetime("end")
    report = sales_service.get_sales_report(g.auth_context, start=start, end=end)
    report["start"] = to_utc_z(start)
    report["end"] = to_utc_z(end)
    return jsonify({"report": report}), 200


@reports_bp.get("/tax")
@require_auth
def tax_report_route():
    report = sales_service.get_tax_summary(
        g.auth_context, start=query_datetime("start"), end=query_datetime("end"),
    )
    return jsonify({"report": report}), 200


@reports_bp.get("/inventory")
@require_auth
def inventory_report_route():
    return jsonify({
        "report": inventory_service.get_inventory_summary(g.auth_context),
        "tax_breakdown": tax_service.get_tax_breakdown(g.auth_context),
    }), 200


@reports_bp.get("/fiscal")
@require_auth
def fiscal_report_route():
    summary = fiscal_service.get_fiscal_summary(g.auth_context)
    summary["first_sale_at"] = to_utc_z(summary["first_sale_at"])
    summary["last_sale_at"] = to_utc_z(summary["last_sale_at"])
    return jsonify({"report": summary}), 200


@reports_bp.get("/top-customers")
@require_auth
def top_customers_route():
    limit = request.args.get("limit", 10, type=int)
    customers = customer_service.get_top_customers(g.auth_context, limit=limit)
    return jsonify({"customers": [c.to_dict() for c in customers]}), 200


@reports_bp.get("/audit")
@require_auth
def audit_report_route():
    logs = audit_service.get_audit_logs(
        g.auth_context,
        start=query_datetime("start"),
        end=query_datetime("end"),
        user_id=request.args.get("user_id", type=int),
        action=request.args.get("action"),
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"logs": [entry.to_dict() for entry in logs]}), 200
