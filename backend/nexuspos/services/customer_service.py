# Overview: Service-layer operations for customers; encapsulates business logic and database work.

"""
Customer Ledger

WHY: Track who buys, how much, and how much credit they are using.

AGGREGATES: current_balance_cents, total_purchases_cents, purchase_count
and last_purchase_at are incremented by record_customer_purchase, which
the sale engine calls exactly once per completed sale that carries a
customer. They are never recomputed from a scan of sales.
"""

from __future__ import annotations

from sqlalchemy import or_

from ..context import AuthContext
from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer
from ..models.customers import CUSTOMER_TYPES
from ..time_utils import utcnow
from . import audit_service, permission_service
from .concurrency import lock_for_update, run_atomically
from .tenant_service import get_owned


_EDITABLE_FIELDS = {"name", "email", "phone", "address", "tax_id", "customer_type", "credit_limit_cents", "notes"}


def _validate_customer_fields(data: dict, *, creating: bool) -> list[str]:
    errors: list[str] = []
    if creating or "name" in data:
        if not (data.get("name") or "").strip():
            errors.append("Name is required")
    if "customer_type" in data and data["customer_type"] not in CUSTOMER_TYPES:
        errors.append(f"customer_type must be one of {', '.join(CUSTOMER_TYPES)}")
    if "credit_limit_cents" in data:
        limit = data["credit_limit_cents"]
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
            errors.append("credit_limit_cents must be a non-negative integer")
    if data.get("email") and "@" not in data["email"]:
        errors.append("Email is not valid")
    return errors


def _check_unique_contact(business_id: int, data: dict, exclude_id: int | None = None) -> None:
    """Phone and tax id identify a customer within a business."""
    if data.get("phone"):
        existing = find_customer_by_phone(business_id, data["phone"])
        if existing and existing.id != exclude_id:
            raise ConflictError(f"A customer with phone {data['phone']} already exists")
    if data.get("tax_id"):
        existing = find_customer_by_tax_id(business_id, data["tax_id"])
        if existing and existing.id != exclude_id:
            raise ConflictError(f"A customer with tax id {data['tax_id']} already exists")


def create_customer(ctx: AuthContext, **fields) -> Customer:
    """Register a customer. Requires users.create."""
    def _op() -> Customer:
        permission_service.require_permission(ctx.user_id, "users.create", ctx.business_id)

        unknown = set(fields) - _EDITABLE_FIELDS
        errors = [f"Unknown field '{k}'" for k in sorted(unknown)]
        errors.extend(_validate_customer_fields(fields, creating=True))
        if errors:
            raise ValidationError(errors)

        _check_unique_contact(ctx.business_id, fields)

        customer = Customer(
            business_id=ctx.business_id,
            name=fields["name"].strip(),
            email=fields.get("email"),
            phone=fields.get("phone"),
            address=fields.get("address"),
            tax_id=fields.get("tax_id"),
            customer_type=fields.get("customer_type", "individual"),
            credit_limit_cents=fields.get("credit_limit_cents", 0),
            notes=fields.get("notes"),
            is_active=True,
        )
        db.session.add(customer)
        db.session.flush()

        audit_service.audit(
            ctx, "customer.created", "customer", customer.id,
            details="Created customer",
            new_value=customer.to_dict(),
        )
        return customer

    return run_atomically(_op)


def update_customer(ctx: AuthContext, customer_id: int, updates: dict) -> Customer:
    """
    Edit customer details. Requires users.update.

    Purchase aggregates are not editable here.
    """
    def _op() -> Customer:
        permission_service.require_permission(ctx.user_id, "users.update", ctx.business_id)
        customer = get_owned(Customer, customer_id, ctx.business_id, label="Customer")

        unknown = set(updates) - _EDITABLE_FIELDS
        errors = [f"Field '{k}' cannot be updated" for k in sorted(unknown)]
        errors.extend(_validate_customer_fields(updates, creating=False))
        if errors:
            raise ValidationError(errors)

        _check_unique_contact(ctx.business_id, updates, exclude_id=customer.id)

        before = customer.to_dict()
        for key, value in updates.items():
            setattr(customer, key, value)

        audit_service.audit(
            ctx, "customer.updated", "customer", customer.id,
            details="Updated customer",
            old_value={k: before[k] for k in updates},
            new_value=updates,
        )
        return customer

    return run_atomically(_op)


def deactivate_customer(ctx: AuthContext, customer_id: int) -> Customer:
    """Soft delete. Requires users.delete."""
    def _op() -> Customer:
        permission_service.require_permission(ctx.user_id, "users.delete", ctx.business_id)
        customer = get_owned(Customer, customer_id, ctx.business_id, label="Customer")
        customer.is_active = False
        audit_service.audit(
            ctx, "customer.deactivated", "customer", customer.id,
            details="Deactivated customer",
            old_value={"is_active": True},
            new_value={"is_active": False},
        )
        return customer

    return run_atomically(_op)


def get_customer(ctx: AuthContext, customer_id: int) -> Customer:
    permission_service.require_permission(ctx.user_id, "users.read", ctx.business_id)
    return get_owned(Customer, customer_id, ctx.business_id, label="Customer")


def list_customers(ctx: AuthContext, include_inactive: bool = False) -> list[Customer]:
    permission_service.require_permission(ctx.user_id, "users.read", ctx.business_id)
    query = db.session.query(Customer).filter_by(business_id=ctx.business_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(Customer.name).all()


def search_customers(ctx: AuthContext, term: str) -> list[Customer]:
    """Case-insensitive match on name, email, phone or tax id among active customers."""
    permission_service.require_permission(ctx.user_id, "users.read", ctx.business_id)
    pattern = f"%{term.strip()}%"
    return db.session.query(Customer).filter(
        Customer.business_id == ctx.business_id,
        Customer.is_active.is_(True),
        or_(
            Customer.name.ilike(pattern),
            Customer.email.ilike(pattern),
            Customer.phone.ilike(pattern),
            Customer.tax_id.ilike(pattern),
        ),
    ).order_by(Customer.name).all()


def find_customer_by_tax_id(business_id: int, tax_id: str) -> Customer | None:
    return db.session.query(Customer).filter_by(business_id=business_id, tax_id=tax_id, is_active=True).first()


def find_customer_by_phone(business_id: int, phone: str) -> Customer | None:
    return db.session.query(Customer).filter_by(business_id=business_id, phone=phone, is_active=True).first()


def record_customer_purchase(customer_id: int, amount_cents: int) -> Customer:
    """
    Fold one completed sale into the customer's aggregates. Does not commit.

    Called by the sale engine only; never call it for anonymous sales.
    """
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if customer is None:
        raise NotFoundError("Customer not found")

    customer.current_balance_cents += amount_cents
    customer.total_purchases_cents += amount_cents
    customer.purchase_count += 1
    customer.last_purchase_at = utcnow()
    return customer


def get_customer_summary(ctx: AuthContext, customer_id: int) -> dict:
    """Spend and credit position from the stored aggregates. Requires users.read."""
    customer = get_customer(ctx, customer_id)

    average = customer.total_purchases_cents // customer.purchase_count if customer.purchase_count else 0
    credit_used = customer.current_balance_cents

    return {
        "customer_id": customer.id,
        "total_spent_cents": customer.total_purchases_cents,
        "purchase_count": customer.purchase_count,
        "average_purchase_cents": average,
        "last_purchase_at": customer.last_purchase_at,
        "credit_used_cents": credit_used,
        "credit_available_cents": customer.credit_limit_cents - credit_used,
    }


def get_top_customers(ctx: AuthContext, limit: int = 10) -> list[Customer]:
    """Active customers ranked by total spend. Requires reports.sales."""
    permission_service.require_permission(ctx.user_id, "reports.sales", ctx.business_id)
    return db.session.query(Customer).filter_by(
        business_id=ctx.business_id,
        is_active=True,
    ).order_by(Customer.total_purchases_cents.desc(), Customer.id).limit(limit).all()
