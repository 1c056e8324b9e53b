# Overview: Service-layer operations for non-stock services sold alongside products.

"""
Service Catalogue

Services (repairs, copies, delivery) ring up like products but have no
stock and no barcode. They use the products.* permission codes:
create needs products.create, edits need products.update, deletion
needs products.delete and reads need products.read.

delete_service removes a row only while no sale line references it;
once sold, a service can only be deactivated so sales keep their lines.
"""

from __future__ import annotations

from sqlalchemy import func, or_

from ..context import AuthContext
from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import Sale, SaleItem, ServiceItem
from . import audit_service, department_service, permission_service, pricing_service, tax_service
from .concurrency import run_atomically
from .tenant_service import get_owned


_EDITABLE_FIELDS = {"name", "description", "price_cents", "tax_type", "tax_rate", "department_id"}


def _validate(data: dict) -> list[str]:
    errors: list[str] = []
    if "name" in data and not (data["name"] or "").strip():
        errors.append("Name is required")
    pricing_service.validate_amount("Price", data.get("price_cents"), errors)
    if "tax_type" in data or "tax_rate" in data:
        errors.extend(tax_service.validate_tax_config(data.get("tax_type"), data.get("tax_rate")))
    return errors


def create_service(
    ctx: AuthContext,
    *,
    name: str,
    price_cents: int = 0,
    description: str | None = None,
    department_id: int | None = None,
    tax_type: str | None = None,
    tax_rate: float | None = None,
) -> ServiceItem:
    """Add a service. Defaults to IVA 16% like products."""
    def _op() -> ServiceItem:
        permission_service.require_permission(ctx.user_id, "products.create", ctx.business_id)

        effective_tax_type = tax_type or tax_service.DEFAULT_TAX_TYPE
        effective_tax_rate = tax_service.DEFAULT_TAX_RATE if tax_rate is None else tax_rate
        errors = _validate({
            "name": name,
            "price_cents": price_cents,
            "tax_type": effective_tax_type,
            "tax_rate": effective_tax_rate,
        })
        if errors:
            raise ValidationError(errors)

        if department_id is not None:
            department_service.require_active_department(ctx.business_id, department_id)

        service = ServiceItem(
            business_id=ctx.business_id,
            department_id=department_id,
            name=name.strip(),
            description=description,
            price_cents=price_cents,
            tax_type=effective_tax_type,
            tax_rate=float(effective_tax_rate),
            is_active=True,
        )
        db.session.add(service)
        db.session.flush()

        audit_service.audit(
            ctx, "service.created", "service", service.id,
            details="Created service",
            new_value=service.to_dict(),
        )
        return service

    return run_atomically(_op)


def update_service(ctx: AuthContext, service_id: int, updates: dict) -> ServiceItem:
    """Edit a service. Sales already rung up keep the price they were sold at."""
    def _op() -> ServiceItem:
        unknown = set(updates) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError([f"Field '{k}' cannot be updated" for k in sorted(unknown)])

        permission_service.require_permission(ctx.user_id, "products.update", ctx.business_id)
        service = get_owned(ServiceItem, service_id, ctx.business_id, label="Service")

        merged = dict(updates)
        if "tax_type" in updates or "tax_rate" in updates:
            merged.setdefault("tax_type", service.tax_type)
            merged.setdefault("tax_rate", service.tax_rate)
        errors = _validate(merged)
        if errors:
            raise ValidationError(errors)

        if updates.get("department_id") is not None:
            department_service.require_active_department(ctx.business_id, updates["department_id"])

        before = service.to_dict()
        for key, value in updates.items():
            if key == "name":
                value = value.strip()
            elif key == "tax_rate":
                value = float(value)
            setattr(service, key, value)

        audit_service.audit(
            ctx, "service.updated", "service", service.id,
            details="Updated service",
            old_value={k: before[k] for k in updates},
            new_value=dict(updates),
        )
        return service

    return run_atomically(_op)


def _set_active(ctx: AuthContext, service_id: int, active: bool) -> ServiceItem:
    def _op() -> ServiceItem:
        permission_service.require_permission(ctx.user_id, "products.update", ctx.business_id)
        service = get_owned(ServiceItem, service_id, ctx.business_id, label="Service")
        service.is_active = active
        audit_service.audit(
            ctx, "service.activated" if active else "service.deactivated",
            "service", service.id,
            old_value={"is_active": not active},
            new_value={"is_active": active},
        )
        return service

    return run_atomically(_op)


def deactivate_service(ctx: AuthContext, service_id: int) -> ServiceItem:
    return _set_active(ctx, service_id, False)


def activate_service(ctx: AuthContext, service_id: int) -> ServiceItem:
    return _set_active(ctx, service_id, True)


def delete_service(ctx: AuthContext, service_id: int) -> None:
    """
    Remove a service that was never sold.

    Raises:
        ConflictError: some sale line references the service; deactivate it instead
    """
    def _op() -> None:
        permission_service.require_permission(ctx.user_id, "products.delete", ctx.business_id)
        service = get_owned(ServiceItem, service_id, ctx.business_id, label="Service")

        referenced = db.session.query(
            db.session.query(SaleItem).filter_by(service_id=service.id).exists()
        ).scalar()
        if referenced:
            raise ConflictError("Service has been sold and cannot be deleted; deactivate it instead")

        snapshot = service.to_dict()
        db.session.delete(service)
        audit_service.audit(
            ctx, "service.deleted", "service", service_id,
            details="Deleted service",
            old_value=snapshot,
        )

    run_atomically(_op)


def get_service(ctx: AuthContext, service_id: int) -> ServiceItem:
    permission_service.require_permission(ctx.user_id, "products.read", ctx.business_id)
    return get_owned(ServiceItem, service_id, ctx.business_id, label="Service")


def get_services(ctx: AuthContext, include_inactive: bool = False) -> list[ServiceItem]:
    permission_service.require_permission(ctx.user_id, "products.read", ctx.business_id)
    query = db.session.query(ServiceItem).filter_by(business_id=ctx.business_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(ServiceItem.name).all()


def get_services_by_department(ctx: AuthContext, department_id: int) -> list[ServiceItem]:
    permission_service.require_permission(ctx.user_id, "products.read", ctx.business_id)
    department_service.get_department(ctx, department_id)
    return db.session.query(ServiceItem).filter_by(
        business_id=ctx.business_id, department_id=department_id, is_active=True,
    ).order_by(ServiceItem.name).all()


def search_services(ctx: AuthContext, term: str) -> list[ServiceItem]:
    """Case-insensitive match on name or description among active services."""
    permission_service.require_permission(ctx.user_id, "products.read", ctx.business_id)
    pattern = f"%{term.strip()}%"
    return db.session.query(ServiceItem).filter(
        ServiceItem.business_id == ctx.business_id,
        ServiceItem.is_active.is_(True),
        or_(ServiceItem.name.ilike(pattern), ServiceItem.description.ilike(pattern)),
    ).order_by(ServiceItem.name).all()


def get_service_usage_count(ctx: AuthContext, service_id: int) -> int:
    """Number of sale lines for the service on completed sales."""
    permission_service.require_permission(ctx.user_id, "products.read", ctx.business_id)
    service = get_owned(ServiceItem, service_id, ctx.business_id, label="Service")
    return db.session.query(func.count(SaleItem.id)).join(Sale, Sale.id == SaleItem.sale_id).filter(
        SaleItem.service_id == service.id,
        Sale.payment_status == "completed",
        Sale.is_active.is_(True),
    ).scalar() or 0


def get_service_with_usage(ctx: AuthContext, service_id: int) -> dict:
    service = get_service(ctx, service_id)
    return {**service.to_dict(), "usage_count": get_service_usage_count(ctx, service_id)}
