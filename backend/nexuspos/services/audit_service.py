# Overview: Best-effort audit sink; records sensitive actions without ever blocking them.

"""
Audit Log Service

WHY: Every state-changing action is attributable after the fact.

DESIGN PRINCIPLES:
- Audit rows are written inside a SAVEPOINT of the caller's transaction,
  so they commit (or roll back) together with the business change.
- A failure to write the audit row is logged to the application logger
  and swallowed. Audit is observability, not a correctness gate.
- Rows are append-only.
"""

from __future__ import annotations

import json
from datetime import datetime

from flask import current_app

from ..context import AuthContext
from ..extensions import db
from ..models import AuditLog
from ..time_utils import utcnow
from . import permission_service


def _json_dumps(value) -> str | None:
    if value is None:
        return None
    return json.dumps(value, default=str, sort_keys=True)


def log_audit_action(
    business_id: int,
    user_id: int | None,
    action: str,
    resource_type: str,
    resource_id=None,
    details: str | None = None,
    old_value=None,
    new_value=None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuditLog | None:
    """
    Append an audit entry. Never raises.

    action examples:
    - product.price_updated
    - sale.created / sale.completed / sale.cancelled / sale.refunded
    - shift.opened / shift.closed / shift.force_closed / shift.reconciled
    - permission.assigned / permission.revoked
    """
    # Pending business changes flush outside the guarded block so their
    # own errors still reach the caller.
    db.session.flush()

    try:
        entry = AuditLog(
            business_id=business_id,
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            details=details,
            old_value=_json_dumps(old_value),
            new_value=_json_dumps(new_value),
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=utcnow(),
        )
        with db.session.begin_nested():
            db.session.add(entry)
        return entry
    except Exception:
        current_app.logger.exception("Failed to write audit log entry for %s", action)
        return None


def audit(ctx: AuthContext, action: str, resource_type: str, resource_id=None, **kwargs) -> AuditLog | None:
    """Shorthand for log_audit_action using the caller's context."""
    return log_audit_action(
        business_id=ctx.business_id,
        user_id=ctx.user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
        **kwargs,
    )


def get_audit_logs(
    ctx: AuthContext,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    user_id: int | None = None,
    action: str | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    """Audit trail for the caller's business, newest first. Requires reports.audit."""
    permission_service.require_permission(ctx.user_id, "reports.audit", ctx.business_id)

    query = db.session.query(AuditLog).filter(AuditLog.business_id == ctx.business_id)
    if start is not None:
        query = query.filter(AuditLog.created_at >= start)
    if end is not None:
        query = query.filter(AuditLog.created_at <= end)
    if user_id is not None:
        query = query.filter(AuditLog.user_id == user_id)
    if action:
        query = query.filter(AuditLog.action == action)

    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
