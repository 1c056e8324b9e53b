# Overview: Service-layer operations for departments; groups products and services.

"""
Department Service

Departments group the catalogue on the till screen and in reports.
Names are unique among a business's departments (case-insensitive).
Deactivation is a soft delete: products and services keep their
department_id, but no new item may be filed under an inactive department.

Reads need products.read; every write needs products.update.
"""

from __future__ import annotations

from sqlalchemy import func

from ..context import AuthContext
from ..errors import ConflictError, InvalidStateError, ValidationError
from ..extensions import db
from ..models import Department, Product
from . import audit_service, permission_service
from .concurrency import run_atomically
from .tenant_service import get_owned


_EDITABLE_FIELDS = {"name", "description"}


def _name_taken(business_id: int, name: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Department).filter(
        Department.business_id == business_id,
        func.lower(Department.name) == name.lower(),
    )
    if exclude_id is not None:
        query = query.filter(Department.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def require_active_department(business_id: int, department_id: int) -> Department:
    """Resolve a department an item is being filed under."""
    department = get_owned(Department, department_id, business_id, label="Department")
    if not department.is_active:
        raise InvalidStateError(f"Department '{department.name}' is not active")
    return department


def create_department(ctx: AuthContext, name: str, description: str | None = None) -> Department:
    def _op() -> Department:
        permission_service.require_permission(ctx.user_id, "products.update", ctx.business_id)

        clean = (name or "").strip()
        if not clean:
            raise ValidationError("Department name is required")
        if _name_taken(ctx.business_id, clean):
            raise ConflictError(f"Department '{clean}' already exists")

        department = Department(
            business_id=ctx.business_id,
            name=clean,
            description=description,
            is_active=True,
        )
        db.session.add(department)
        db.session.flush()

        audit_service.audit(
            ctx, "department.created", "department", department.id,
            details="Created department",
            new_value=department.to_dict(),
        )
        return department

    return run_atomically(_op)


def get_departments(ctx: AuthContext, include_inactive: bool = False) -> list[Department]:
    permission_service.require_permission(ctx.user_id, "products.read", ctx.business_id)
    query = db.session.query(Department).filter_by(business_id=ctx.business_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(Department.name).all()


def get_department(ctx: AuthContext, department_id: int) -> Department:
    permission_service.require_permission(ctx.user_id, "products.read", ctx.business_id)
    return get_owned(Department, department_id, ctx.business_id, label="Department")


def update_department(ctx: AuthContext, department_id: int, updates: dict) -> Department:
    """Rename or re-describe a department."""
    def _op() -> Department:
        unknown = set(updates) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError([f"Field '{k}' cannot be updated" for k in sorted(unknown)])

        permission_service.require_permission(ctx.user_id, "products.update", ctx.business_id)
        department = get_owned(Department, department_id, ctx.business_id, label="Department")

        changes = dict(updates)
        if "name" in changes:
            clean = (changes["name"] or "").strip()
            if not clean:
                raise ValidationError("Department name is required")
            if _name_taken(ctx.business_id, clean, exclude_id=department.id):
                raise ConflictError(f"Department '{clean}' already exists")
            changes["name"] = clean

        before = department.to_dict()
        for key, value in changes.items():
            setattr(department, key, value)

        audit_service.audit(
            ctx, "department.updated", "department", department.id,
            details="Updated department",
            old_value={k: before[k] for k in changes},
            new_value=changes,
        )
        return department

    return run_atomically(_op)


def _set_active(ctx: AuthContext, department_id: int, active: bool) -> Department:
    def _op() -> Department:
        permission_service.require_permission(ctx.user_id, "products.update", ctx.business_id)
        department = get_owned(Department, department_id, ctx.business_id, label="Department")
        department.is_active = active
        audit_service.audit(
            ctx, "department.activated" if active else "department.deactivated",
            "department", department.id,
            details="Activated department" if active else "Deactivated department",
            old_value={"is_active": not active},
            new_value={"is_active": active},
        )
        return department

    return run_atomically(_op)


def deactivate_department(ctx: AuthContext, department_id: int) -> Department:
    """Soft delete; items already filed under it keep their department_id."""
    return _set_active(ctx, department_id, False)


def activate_department(ctx: AuthContext, department_id: int) -> Department:
    return _set_active(ctx, department_id, True)


def get_products_by_department(
    ctx: AuthContext, department_id: int, include_inactive: bool = False
) -> list[Product]:
    permission_service.require_permission(ctx.user_id, "products.read", ctx.business_id)
    get_owned(Department, department_id, ctx.business_id, label="Department")

    query = db.session.query(Product).filter_by(business_id=ctx.business_id, department_id=department_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(Product.name).all()
