# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Permission Oracle

WHY: Every state-changing operation is gated on a specific permission
whose blast radius matches the action (price changes need
products.adjust_price, not the coarser products.update).

RESOLUTION ORDER:
0. Unknown or inactive user: nothing, explicit grants included.
1. Explicit PermissionAssignment rows for (user_id, permission). Grant if
   any exists and either no business_id was asked about or one of the
   matching assignments belongs to it.
2. Otherwise the static default set for the user's type
   (owner ⊇ admin ⊇ cashier). Defaults only apply to active users and
   only inside the user's own business.

DESIGN PRINCIPLES:
- Fail closed: unknown users and inactive users get nothing at all
- Additive only: there is no explicit deny
- Log denials only: grants are not logged
"""

from __future__ import annotations

from flask import current_app

from ..context import AuthContext
from ..errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..extensions import db
from ..models import PermissionAssignment, User
from ..permissions import DEFAULT_TYPE_PERMISSIONS, validate_permission_code
from ..time_utils import utcnow


def get_default_permissions(user_type: str) -> frozenset[str]:
    """Default permission set for a user type (empty for unknown types)."""
    return DEFAULT_TYPE_PERMISSIONS.get(user_type, frozenset())


def check_permission(user_id: int, permission: str, business_id: int | None = None) -> bool:
    """
    Return True if the user holds the permission.

    Unknown and inactive users hold nothing, not even explicit grants.
    Explicit assignments are consulted next, then the type defaults.
    """
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        return False

    assignments = db.session.query(PermissionAssignment).filter_by(
        user_id=user_id,
        permission=permission,
    ).all()

    if assignments:
        if business_id is None:
            return True
        if any(a.business_id == business_id for a in assignments):
            return True

    if business_id is not None and user.business_id != business_id:
        return False

    return permission in get_default_permissions(user.type)


def require_permission(user_id: int, permission: str, business_id: int | None = None) -> None:
    """
    Require user to have permission, raise PermissionDeniedError if not.

    Usage:
        require_permission(ctx.user_id, "sales.cancel", ctx.business_id)
    """
    if not check_permission(user_id, permission, business_id):
        current_app.logger.warning(
            "Permission denied: user=%s permission=%s business=%s",
            user_id, permission, business_id,
        )
        raise PermissionDeniedError(f"Permission denied: {permission}", permission=permission)


def get_user_permissions(user_id: int, business_id: int | None = None) -> list[PermissionAssignment]:
    """Explicit assignments held by a user, optionally limited to one business."""
    query = db.session.query(PermissionAssignment).filter_by(user_id=user_id)
    if business_id is not None:
        query = query.filter_by(business_id=business_id)
    return query.order_by(PermissionAssignment.permission).all()


def get_effective_permissions(user_id: int, business_id: int | None = None) -> set[str]:
    """
    Union of the user's type defaults and explicit assignments.

    Mirrors check_permission, so `perm in get_effective_permissions(...)`
    answers the same as check_permission(...).
    """
    codes: set[str] = set()

    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        return codes
    if business_id is None or user.business_id == business_id:
        codes.update(get_default_permissions(user.type))

    for assignment in get_user_permissions(user_id, business_id):
        codes.add(assignment.permission)

    return codes


def assign_permission(ctx: AuthContext, user_id: int, permission: str) -> PermissionAssignment:
    """
    Grant an explicit permission to a user of the caller's business.

    Requires settings.permissions. Raises ConflictError if the grant
    already exists.
    """
    from . import audit_service
    from .concurrency import run_atomically
    from .tenant_service import get_owned

    def _op() -> PermissionAssignment:
        require_permission(ctx.user_id, "settings.permissions", ctx.business_id)

        if not validate_permission_code(permission):
            raise ValidationError(f"Unknown permission: {permission}")

        target = get_owned(User, user_id, ctx.business_id, label="User")

        existing = db.session.query(PermissionAssignment).filter_by(
            business_id=ctx.business_id,
            user_id=target.id,
            permission=permission,
        ).first()
        if existing:
            raise ConflictError(f"User already has permission {permission}")

        assignment = PermissionAssignment(
            business_id=ctx.business_id,
            user_id=target.id,
            permission=permission,
            granted_by_user_id=ctx.user_id,
            granted_at=utcnow(),
        )
        db.session.add(assignment)

        audit_service.audit(
            ctx, "permission.assigned", "user", target.id,
            details=f"Granted {permission}",
            new_value={"permission": permission},
        )
        return assignment

    return run_atomically(_op)


def revoke_permission(ctx: AuthContext, user_id: int, permission: str) -> None:
    """
    Remove an explicit grant. Type defaults are unaffected.

    Requires settings.permissions. Raises NotFoundError if no such grant.
    """
    from . import audit_service
    from .concurrency import run_atomically

    def _op() -> None:
        require_permission(ctx.user_id, "settings.permissions", ctx.business_id)

        assignment = db.session.query(PermissionAssignment).filter_by(
            business_id=ctx.business_id,
            user_id=user_id,
            permission=permission,
        ).first()
        if not assignment:
            raise NotFoundError("Permission assignment not found")

        db.session.delete(assignment)

        audit_service.audit(
            ctx, "permission.revoked", "user", user_id,
            details=f"Revoked {permission}",
            old_value={"permission": permission},
        )

    run_atomically(_op)
