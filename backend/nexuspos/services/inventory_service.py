# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

"""
Inventory Ledger

WHY: Stock is never stored as a mutable counter. Every change is an
immutable signed InventoryMovement and on-hand quantity is the SUM of
those movements, computed on read.

DESIGN PRINCIPLES:
- create_movement is the single append primitive; it never commits, so
  callers can bundle movements with the rest of their transaction
- Movements are never updated or deleted; corrections append a
  compensating movement
- Sign is normalized by type, so callers cannot book a negative entrada
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..context import AuthContext
from ..errors import ValidationError
from ..extensions import db
from ..models import InventoryMovement, Product
from ..models.inventory import MOVEMENT_TYPES
from ..time_utils import utcnow
from . import audit_service, permission_service
from .concurrency import run_atomically
from .tenant_service import get_owned


# +1 always positive, -1 always negative, 0 keep caller's sign
MOVEMENT_SIGNS = {
    "entrada": 1,
    "salida": -1,
    "ajuste": 0,
    "merma": -1,
    "devolucion": 1,
}

DEFAULT_REASONS = {
    "entrada": "Stock entry",
    "salida": "Sale",
    "ajuste": "Stock adjustment",
    "merma": "Shrinkage",
    "devolucion": "Return",
}


def normalize_quantity(movement_type: str, quantity: int) -> int:
    """Apply the sign convention for a movement type."""
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Invalid movement type: {movement_type}")
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity == 0:
        raise ValidationError("quantity must be non-zero")

    sign = MOVEMENT_SIGNS[movement_type]
    if sign > 0:
        return abs(quantity)
    if sign < 0:
        return -abs(quantity)
    return quantity


def create_movement(
    *,
    product_id: int,
    business_id: int,
    quantity: int,
    movement_type: str,
    user_id: int,
    reason: str | None = None,
    reference: str | None = None,
    sale_id: int | None = None,
) -> InventoryMovement:
    """
    Append one signed movement. Does not commit.

    The product must belong to business_id.
    """
    signed = normalize_quantity(movement_type, quantity)
    product = get_owned(Product, product_id, business_id, label="Product")

    movement = InventoryMovement(
        business_id=business_id,
        product_id=product.id,
        quantity=signed,
        type=movement_type,
        reason=reason or DEFAULT_REASONS[movement_type],
        reference=reference,
        sale_id=sale_id,
        user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def calculate_stock_from_movements(product_id: int) -> int:
    """
    Current stock for a product (SUM of signed movement quantities).

    Returns 0 for a product with no movements.
    """
    total = db.session.query(
        func.coalesce(func.sum(InventoryMovement.quantity), 0)
    ).filter(InventoryMovement.product_id == product_id).scalar()
    return int(total or 0)


def get_stock_levels(product_ids: list[int]) -> dict[int, int]:
    """Stock for many products in one grouped query; missing products map to 0."""
    if not product_ids:
        return {}
    rows = db.session.query(
        InventoryMovement.product_id,
        func.sum(InventoryMovement.quantity),
    ).filter(
        InventoryMovement.product_id.in_(product_ids)
    ).group_by(InventoryMovement.product_id).all()

    levels = {pid: 0 for pid in product_ids}
    for pid, total in rows:
        levels[pid] = int(total or 0)
    return levels


def _record(
    ctx: AuthContext,
    *,
    product_id: int,
    quantity: int,
    movement_type: str,
    permission: str,
    reason: str | None,
    reference: str | None,
) -> InventoryMovement:
    def _op() -> InventoryMovement:
        permission_service.require_permission(ctx.user_id, permission, ctx.business_id)

        movement = create_movement(
            product_id=product_id,
            business_id=ctx.business_id,
            quantity=quantity,
            movement_type=movement_type,
            user_id=ctx.user_id,
            reason=reason,
            reference=reference,
        )

        audit_service.audit(
            ctx, f"inventory.{movement_type}", "movement", movement.id,
            details=f"{movement.reason}: {movement.quantity:+d} units",
            new_value={"product_id": product_id, "quantity": movement.quantity, "reference": reference},
        )
        return movement

    return run_atomically(_op)


def record_stock_entry(ctx: AuthContext, product_id: int, quantity: int, reason: str | None = None,
                       reference: str | None = None) -> InventoryMovement:
    """Goods received (entrada). Requires inventory.entrada."""
    return _record(ctx, product_id=product_id, quantity=quantity, movement_type="entrada",
                   permission="inventory.entrada", reason=reason, reference=reference)


def record_stock_sale(ctx: AuthContext, product_id: int, quantity: int,
                      reference: str | None = None) -> InventoryMovement:
    """Manual sale-driven decrement (salida). Requires inventory.salida."""
    return _record(ctx, product_id=product_id, quantity=quantity, movement_type="salida",
                   permission="inventory.salida", reason=None, reference=reference)


def record_stock_adjustment(ctx: AuthContext, product_id: int, quantity: int, reason: str | None = None,
                            reference: str | None = None) -> InventoryMovement:
    """Signed manual correction (ajuste). Requires inventory.ajuste."""
    return _record(ctx, product_id=product_id, quantity=quantity, movement_type="ajuste",
                   permission="inventory.ajuste", reason=reason, reference=reference)


def record_stock_loss(ctx: AuthContext, product_id: int, quantity: int, reason: str | None = None,
                      reference: str | None = None) -> InventoryMovement:
    """Shrinkage, damage, expiry (merma). Requires inventory.merma."""
    return _record(ctx, product_id=product_id, quantity=quantity, movement_type="merma",
                   permission="inventory.merma", reason=reason, reference=reference)


def record_stock_return(ctx: AuthContext, product_id: int, quantity: int, reason: str | None = None,
                        reference: str | None = None) -> InventoryMovement:
    """Customer or supplier return put back on the shelf (devolucion). Requires inventory.devolucion."""
    return _record(ctx, product_id=product_id, quantity=quantity, movement_type="devolucion",
                   permission="inventory.devolucion", reason=reason, reference=reference)


def get_movements_by_product(ctx: AuthContext, product_id: int) -> list[InventoryMovement]:
    """Movement history for one product, oldest first."""
    permission_service.require_permission(ctx.user_id, "products.read", ctx.business_id)
    get_owned(Product, product_id, ctx.business_id, label="Product")

    return db.session.query(InventoryMovement).filter_by(
        product_id=product_id
    ).order_by(InventoryMovement.created_at, InventoryMovement.id).all()


def get_movements_by_business(
    ctx: AuthContext,
    *,
    movement_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[InventoryMovement]:
    """All movements of the caller's business, oldest first."""
    permission_service.require_permission(ctx.user_id, "products.read", ctx.business_id)

    query = db.session.query(InventoryMovement).filter(InventoryMovement.business_id == ctx.business_id)
    if movement_type:
        query = query.filter(InventoryMovement.type == movement_type)
    if start is not None:
        query = query.filter(InventoryMovement.created_at >= start)
    if end is not None:
        query = query.filter(InventoryMovement.created_at <= end)

    return query.order_by(InventoryMovement.created_at, InventoryMovement.id).all()


def get_low_stock_products(ctx: AuthContext) -> list[dict]:
    """
    Active products whose derived stock is at or below min_stock_level.

    Returns [{"product": Product, "current_stock": int}, ...] ordered by
    how far below the threshold each product is.
    """
    permission_service.require_permission(ctx.user_id, "products.read", ctx.business_id)

    products = db.session.query(Product).filter_by(
        business_id=ctx.business_id,
        is_active=True,
    ).all()
    levels = get_stock_levels([p.id for p in products])

    low = [
        {"product": p, "current_stock": levels[p.id]}
        for p in products
        if levels[p.id] <= p.min_stock_level
    ]
    low.sort(key=lambda row: row["current_stock"] - row["product"].min_stock_level)
    return low


def get_inventory_summary(ctx: AuthContext) -> dict:
    """Stock totals and valuation at current cost. Requires reports.inventory."""
    permission_service.require_permission(ctx.user_id, "reports.inventory", ctx.business_id)

    products = db.session.query(Product).filter_by(
        business_id=ctx.business_id,
        is_active=True,
    ).all()
    levels = get_stock_levels([p.id for p in products])

    total_units = 0
    value_at_cost_cents = 0
    value_at_price_cents = 0
    low_stock_count = 0
    out_of_stock_count = 0

    for product in products:
        stock = levels[product.id]
        if stock > 0:
            total_units += stock
            value_at_cost_cents += stock * product.cost_cents
            value_at_price_cents += stock * product.price_cents
        else:
            out_of_stock_count += 1
        if stock <= product.min_stock_level:
            low_stock_count += 1

    return {
        "product_count": len(products),
        "total_units": total_units,
        "value_at_cost_cents": value_at_cost_cents,
        "value_at_price_cents": value_at_price_cents,
        "low_stock_count": low_stock_count,
        "out_of_stock_count": out_of_stock_count,
    }
