"""
Tenant Scoping Helpers

Every record except Business carries business_id. Services load the
records a caller names through these helpers so that a record owned by
another business is indistinguishable from a missing one.

USAGE:
    product = get_owned(Product, product_id, ctx.business_id, label="Product")
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError
from ..extensions import db
from ..models import Business
from .concurrency import lock_for_update


def get_owned(model, entity_id: int, business_id: int, *, label: str | None = None, lock: bool = False):
    """
    Load model row by id and require it to belong to business_id.

    Raises NotFoundError if the row doesn't exist or belongs to a
    different business (don't reveal it exists elsewhere).
    """
    name = label or model.__name__
    if entity_id is None:
        raise NotFoundError(f"{name} not found")

    query = db.session.query(model).filter_by(id=entity_id)
    if lock:
        query = lock_for_update(query)
    entity = query.first()

    if entity is None:
        raise NotFoundError(f"{name} not found")

    if entity.business_id != business_id:
        current_app.logger.warning(
            "Cross-tenant access denied: %s %s belongs to business %s, caller is in %s",
            name, entity_id, entity.business_id, business_id,
        )
        raise NotFoundError(f"{name} not found")

    return entity


def require_business(business_id: int) -> Business:
    """Validate that a business exists and is active."""
    business = db.session.get(Business, business_id)
    if not business or not business.is_active:
        raise NotFoundError("Business not found")
    return business
