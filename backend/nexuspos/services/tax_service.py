# Overview: Tax configuration rules and tax arithmetic in integer cents.

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from ..context import AuthContext
from ..errors import ValidationError
from ..extensions import db
from ..models import Product
from ..models.inventory import TAX_TYPES
from . import audit_service, permission_service
from .concurrency import run_atomically
from .tenant_service import get_owned


DEFAULT_TAX_TYPE = "IVA"
DEFAULT_TAX_RATE = 16.0

ZERO_RATED_TYPES = {"EXENTO", "TASA_CERO"}


@dataclass(frozen=True)
class TaxConfiguration:
    type: str
    rate: float
    description: str
    is_active: bool = True


# Standard configurations offered to the catalogue UI
TAX_CONFIGURATIONS = [
    TaxConfiguration("IVA", 16.0, "Impuesto al Valor Agregado 16%"),
    TaxConfiguration("IVA", 8.0, "Impuesto al Valor Agregado 8% (zona fronteriza)", is_active=False),
    TaxConfiguration("EXENTO", 0.0, "Exento de IVA"),
    TaxConfiguration("TASA_CERO", 0.0, "Tasa cero"),
    TaxConfiguration("IEPS", 0.0, "Impuesto Especial sobre Producción y Servicios"),
]


def get_available_tax_configs() -> list[TaxConfiguration]:
    return [config for config in TAX_CONFIGURATIONS if config.is_active]


def calculate_tax(amount_cents: int, tax_type: str, tax_rate: float) -> int:
    """
    Tax owed on amount_cents, rounded half-up to the cent.

    EXENTO and TASA_CERO never owe tax whatever rate is stored.
    """
    if tax_type in ZERO_RATED_TYPES:
        return 0
    tax = Decimal(amount_cents) * Decimal(str(tax_rate)) / Decimal(100)
    return int(tax.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_tax_config(tax_type: str, tax_rate) -> list[str]:
    """
    Return every problem with a (type, rate) pair; empty list means valid.

    - rate must be a finite number within [0, 100]
    - EXENTO / TASA_CERO require rate 0
    - IVA at most 50, ISR at most 35
    - IEPS varies by product and is only bounded by the general range
    """
    errors: list[str] = []

    if tax_type not in TAX_TYPES:
        errors.append(f"Unknown tax type: {tax_type}")

    if isinstance(tax_rate, bool) or not isinstance(tax_rate, (int, float, Decimal)):
        errors.append("Tax rate must be a number")
        return errors

    if not math.isfinite(tax_rate):
        errors.append("Tax rate must be a finite number")
        return errors

    if tax_rate < 0:
        errors.append("Tax rate cannot be negative")
    if tax_rate > 100:
        errors.append("Tax rate cannot exceed 100%")

    if tax_type in ZERO_RATED_TYPES and tax_rate != 0:
        errors.append(f"{tax_type} tax rate must be 0%")
    elif tax_type == "IVA" and tax_rate > 50:
        errors.append("IVA rate should be between 0% and 50%")
    elif tax_type == "ISR" and tax_rate > 35:
        errors.append("ISR rate should be between 0% and 35%")

    return errors


def require_valid_tax_config(tax_type: str, tax_rate) -> None:
    errors = validate_tax_config(tax_type, tax_rate)
    if errors:
        raise ValidationError(errors)


def update_product_tax(ctx: AuthContext, product_id: int, tax_type: str, tax_rate: float) -> Product:
    """
    Change a product's current tax configuration. Requires products.update.

    Sales already rung keep the tax frozen on their items.
    """
    def _op() -> Product:
        permission_service.require_permission(ctx.user_id, "products.update", ctx.business_id)
        product = get_owned(Product, product_id, ctx.business_id, label="Product")
        require_valid_tax_config(tax_type, tax_rate)

        old_value = {"tax_type": product.tax_type, "tax_rate": product.tax_rate}
        product.tax_type = tax_type
        product.tax_rate = float(tax_rate)

        audit_service.audit(
            ctx, "product.tax_updated", "product", product.id,
            details="Updated product tax configuration",
            old_value=old_value,
            new_value={"tax_type": tax_type, "tax_rate": float(tax_rate)},
        )
        return product

    return run_atomically(_op)


def get_tax_breakdown(ctx: AuthContext) -> dict:
    """
    Catalogue price and tax per unit grouped by tax type. Requires reports.inventory.

    Values are per single unit at current price, not stock-weighted.
    """
    permission_service.require_permission(ctx.user_id, "reports.inventory", ctx.business_id)

    products = db.session.query(Product).filter_by(
        business_id=ctx.business_id,
        is_active=True,
    ).all()

    by_tax_type: dict[str, dict] = {}
    total_value = 0
    total_tax = 0
    for product in products:
        tax = calculate_tax(product.price_cents, product.tax_type, product.tax_rate)
        bucket = by_tax_type.setdefault(product.tax_type, {"count": 0, "total_value_cents": 0, "total_tax_cents": 0})
        bucket["count"] += 1
        bucket["total_value_cents"] += product.price_cents
        bucket["total_tax_cents"] += tax
        total_value += product.price_cents
        total_tax += tax

    return {
        "by_tax_type": by_tax_type,
        "total_products": len(products),
        "total_value_cents": total_value,
        "total_tax_cents": total_tax,
    }
