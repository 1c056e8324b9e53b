# Overview: Service-layer operations for product pricing; encapsulates business logic and database work.

"""
Price Engine

WHY: Product cost/price are current values only. Every change appends a
PriceHistory row (who, why, when, effective date) and an audit entry,
and requires products.adjust_price rather than the coarser
products.update.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from ..context import AuthContext
from ..errors import ValidationError
from ..extensions import db
from ..models import PriceHistory, Product
from ..time_utils import utcnow
from . import audit_service, permission_service
from .concurrency import run_atomically
from .tenant_service import get_owned


def validate_amount(name: str, value, errors: list[str]) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        errors.append(f"{name} must be an integer amount of cents")
    elif value < 0:
        errors.append(f"{name} cannot be negative")


def validate_price_update(cost_cents: int, price_cents: int) -> list[str]:
    """
    Every problem with a proposed cost/price pair; empty list means valid.

    Selling below cost is reported as a problem here (negative margin)
    even though update_product_price itself allows it.
    """
    errors: list[str] = []
    validate_amount("Cost", cost_cents, errors)
    validate_amount("Price", price_cents, errors)
    if not errors and price_cents < cost_cents:
        errors.append("Selling price cannot be lower than cost (negative margin)")
    return errors


def calculate_margin(cost_cents: int, price_cents: int) -> float:
    """Markup over cost as a percentage, rounded to 2 places (0 when cost is 0)."""
    if cost_cents == 0:
        return 0.0
    margin = (Decimal(price_cents - cost_cents) / Decimal(cost_cents)) * 100
    return float(margin.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def calculate_profit(cost_cents: int, price_cents: int) -> int:
    return price_cents - cost_cents


def record_price_history(
    product: Product,
    *,
    user_id: int,
    reason: str,
    old_cost_cents: int | None,
    new_cost_cents: int | None,
    old_price_cents: int | None,
    new_price_cents: int | None,
    effective_date: datetime | None = None,
    metadata: dict | None = None,
) -> PriceHistory:
    """Append one PriceHistory row. Does not commit."""
    now = utcnow()
    entry = PriceHistory(
        business_id=product.business_id,
        product_id=product.id,
        old_cost_cents=old_cost_cents,
        new_cost_cents=new_cost_cents,
        old_price_cents=old_price_cents,
        new_price_cents=new_price_cents,
        change_reason=reason,
        changed_by_user_id=user_id,
        changed_at=now,
        effective_date=effective_date or now,
        change_metadata=json.dumps(metadata, default=str) if metadata else None,
    )
    db.session.add(entry)
    return entry


def apply_price_update(
    ctx: AuthContext,
    product: Product,
    *,
    cost_cents: int | None,
    price_cents: int | None,
    reason: str | None,
    effective_date: datetime | None,
    metadata: dict | None,
) -> PriceHistory | None:
    """Apply a cost/price change to a loaded product. Caller checks permission and commits."""
    errors: list[str] = []
    validate_amount("Cost", cost_cents, errors)
    validate_amount("Price", price_cents, errors)
    if errors:
        raise ValidationError(errors)

    old_cost = product.cost_cents
    old_price = product.price_cents
    new_cost = cost_cents if cost_cents is not None else old_cost
    new_price = price_cents if price_cents is not None else old_price

    # Only update if there's an actual change
    if new_cost == old_cost and new_price == old_price:
        return None

    product.cost_cents = new_cost
    product.price_cents = new_price

    entry = record_price_history(
        product,
        user_id=ctx.user_id,
        reason=reason or "price_update",
        old_cost_cents=old_cost if cost_cents is not None else None,
        new_cost_cents=new_cost,
        old_price_cents=old_price if price_cents is not None else None,
        new_price_cents=new_price,
        effective_date=effective_date,
        metadata=metadata,
    )

    audit_service.audit(
        ctx, "product.price_updated", "product", product.id,
        details=f"Price updated: {reason or 'Manual update'}",
        old_value={"cost_cents": old_cost, "price_cents": old_price},
        new_value={"cost_cents": new_cost, "price_cents": new_price},
    )
    return entry


def update_product_price(
    ctx: AuthContext,
    product_id: int,
    *,
    cost_cents: int | None = None,
    price_cents: int | None = None,
    reason: str | None = None,
    effective_date: datetime | None = None,
    metadata: dict | None = None,
) -> PriceHistory | None:
    """
    Change a product's current cost and/or price. Requires products.adjust_price.

    Returns the PriceHistory row, or None when neither value differs from
    the current one (no-op, nothing written).
    """
    def _op() -> PriceHistory | None:
        permission_service.require_permission(ctx.user_id, "products.adjust_price", ctx.business_id)
        product = get_owned(Product, product_id, ctx.business_id, label="Product")
        return apply_price_update(
            ctx, product,
            cost_cents=cost_cents,
            price_cents=price_cents,
            reason=reason,
            effective_date=effective_date,
            metadata=metadata,
        )

    return run_atomically(_op)


def bulk_update_prices(ctx: AuthContext, updates: list[dict], reason: str) -> int:
    """
    Apply many price changes in one transaction. Requires products.adjust_price.

    updates: [{"product_id": 1, "cost_cents": 500, "price_cents": 900}, ...]
    Returns the number of products that actually changed. Any invalid
    row aborts the whole batch.
    """
    def _op() -> int:
        permission_service.require_permission(ctx.user_id, "products.adjust_price", ctx.business_id)

        changed = 0
        for update in updates:
            product = get_owned(Product, update.get("product_id"), ctx.business_id, label="Product")
            entry = apply_price_update(
                ctx, product,
                cost_cents=update.get("cost_cents"),
                price_cents=update.get("price_cents"),
                reason=reason,
                effective_date=None,
                metadata={"bulk_update": True},
            )
            if entry is not None:
                changed += 1

        audit_service.audit(
            ctx, "product.bulk_price_update", "bulk_update",
            details=f"Bulk price update: {len(updates)} products, reason: {reason}",
            new_value={"updates": updates, "reason": reason},
        )
        return changed

    return run_atomically(_op)


def get_price_history(ctx: AuthContext, product_id: int, limit: int = 50) -> list[PriceHistory]:
    """Newest-first price history for a product. Requires products.read."""
    permission_service.require_permission(ctx.user_id, "products.read", ctx.business_id)
    get_owned(Product, product_id, ctx.business_id, label="Product")

    return db.session.query(PriceHistory).filter_by(
        product_id=product_id
    ).order_by(PriceHistory.changed_at.desc(), PriceHistory.id.desc()).limit(limit).all()
