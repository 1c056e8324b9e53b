# Overview: Service-layer operations for products; encapsulates business logic and database work.

"""
Product Catalogue Service

WHY: Products carry the current cost/price/tax used to ring up sales.
Barcodes are unique within a business. Creation seeds the price history
so every product's pricing can be traced from day one.

Stock is not a product field; see inventory_service.
"""

from __future__ import annotations

import time

from sqlalchemy import or_

from ..context import AuthContext
from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from ..models.inventory import PRODUCT_TYPES
from . import audit_service, department_service, permission_service, pricing_service, tax_service
from .concurrency import run_atomically
from .tenant_service import get_owned


# Fields update_product may set directly; cost/price go through pricing_service
_EDITABLE_FIELDS = {
    "name", "barcode", "product_type", "package_content", "description", "min_stock_level", "department_id",
}


def get_product_by_barcode(business_id: int, barcode: str) -> Product | None:
    return db.session.query(Product).filter_by(business_id=business_id, barcode=barcode).first()


def is_barcode_available(business_id: int, barcode: str, exclude_product_id: int | None = None) -> bool:
    existing = get_product_by_barcode(business_id, barcode)
    if existing is None:
        return True
    return exclude_product_id is not None and existing.id == exclude_product_id



def _barcode_key(barcode: str) -> str:
    return barcode.strip().casefold()


def get_conflicting_barcodes(ctx: AuthContext) -> list[dict]:
    """
    Barcodes that collide once case and surrounding blanks are ignored.

    The unique constraint only rejects exact duplicates, so "ab-1" and
    "AB-1 " can coexist and confuse a scanner. Inactive products are
    included since reactivating one brings the clash back.
    """
    permission_service.require_permission(ctx.user_id, "products.read", ctx.business_id)
    groups: dict[str, list[Product]] = {}
    for product in db.session.query(Product).filter_by(business_id=ctx.business_id).order_by(Product.id):
        groups.setdefault(_barcode_key(product.barcode), []).append(product)

    return [
        {"barcode": key, "products": [p.to_dict() for p in products]}
        for key, products in sorted(groups.items())
        if len(products) > 1
    ]


def generate_unique_barcode(business_id: int, base: str | None = None) -> str:
    """Timestamp-based barcode not yet used in the business."""
    prefix = base or "AUTO"
    candidate = base or f"AUTO{int(time.time() * 1000) % 10**8:08d}"
    for counter in range(1000):
        if is_barcode_available(business_id, candidate):
            return candidate
        candidate = f"{prefix}{int(time.time() * 1000) % 10**6:06d}{counter}"
    raise ConflictError("Could not generate unique barcode")


def _validate_product_fields(data: dict) -> list[str]:
    errors: list[str] = []

    if "name" in data and not (data["name"] or "").strip():
        errors.append("Name is required")

    if "barcode" in data and not (data["barcode"] or "").strip():
        errors.append("Barcode cannot be empty")

    if "product_type" in data and data["product_type"] not in PRODUCT_TYPES:
        errors.append(f"product_type must be one of {', '.join(PRODUCT_TYPES)}")

    if data.get("product_type") == "package":
        content = data.get("package_content")
        if not isinstance(content, int) or content < 1:
            errors.append("package_content must be a positive integer for package products")

    min_stock = data.get("min_stock_level")
    if min_stock is not None and (not isinstance(min_stock, int) or isinstance(min_stock, bool) or min_stock < 0):
        errors.append("min_stock_level must be a non-negative integer")

    return errors


def create_product(
    ctx: AuthContext,
    *,
    name: str,
    barcode: str | None = None,
    cost_cents: int = 0,
    price_cents: int = 0,
    product_type: str = "piece",
    package_content: int | None = None,
    description: str | None = None,
    min_stock_level: int = 0,
    tax_type: str | None = None,
    tax_rate: float | None = None,
    department_id: int | None = None,
) -> Product:
    """
    Add a product to the catalogue. Requires products.create.

    Defaults to IVA 16%. Validation reports every problem at once.
    Raises ConflictError if the barcode is already used in the business.
    """
    def _op() -> Product:
        permission_service.require_permission(ctx.user_id, "products.create", ctx.business_id)

        effective_tax_type = tax_type or tax_service.DEFAULT_TAX_TYPE
        effective_tax_rate = tax_service.DEFAULT_TAX_RATE if tax_rate is None else tax_rate

        errors = _validate_product_fields({
            "name": name,
            "product_type": product_type,
            "package_content": package_content,
            "min_stock_level": min_stock_level,
            **({"barcode": barcode} if barcode is not None else {}),
        })
        pricing_service.validate_amount("Cost", cost_cents, errors)
        pricing_service.validate_amount("Price", price_cents, errors)
        errors.extend(tax_service.validate_tax_config(effective_tax_type, effective_tax_rate))
        if errors:
            raise ValidationError(errors)

        code = barcode.strip() if barcode else generate_unique_barcode(ctx.business_id)
        if not is_barcode_available(ctx.business_id, code):
            raise ConflictError(f"Barcode {code} already exists for this business")
        if department_id is not None:
            department_service.require_active_department(ctx.business_id, department_id)

        product = Product(
            business_id=ctx.business_id,
            name=name.strip(),
            barcode=code,
            department_id=department_id,
            product_type=product_type,
            package_content=package_content,
            description=description,
            cost_cents=cost_cents,
            price_cents=price_cents,
            min_stock_level=min_stock_level,
            tax_type=effective_tax_type,
            tax_rate=float(effective_tax_rate),
            is_active=True,
            created_by_user_id=ctx.user_id,
        )
        db.session.add(product)
        db.session.flush()

        pricing_service.record_price_history(
            product,
            user_id=ctx.user_id,
            reason="initial",
            old_cost_cents=None,
            new_cost_cents=cost_cents,
            old_price_cents=None,
            new_price_cents=price_cents,
            metadata={"created": True},
        )

        audit_service.audit(
            ctx, "product.created", "product", product.id,
            details="Created new product",
            new_value=product.to_dict(),
        )
        return product

    return run_atomically(_op)


def update_product(ctx: AuthContext, product_id: int, updates: dict) -> Product:
    """
    Edit product details.

    Descriptive fields need products.update. cost_cents/price_cents are
    routed through the price engine and need products.adjust_price.
    tax_type/tax_rate are validated together.
    """
    def _op() -> Product:
        price_fields = {k: updates[k] for k in ("cost_cents", "price_cents") if k in updates}
        tax_fields = {k: updates[k] for k in ("tax_type", "tax_rate") if k in updates}
        plain_fields = {k: v for k, v in updates.items() if k in _EDITABLE_FIELDS}

        unknown = set(updates) - set(price_fields) - set(tax_fields) - set(plain_fields)
        if unknown:
            raise ValidationError([f"Field '{k}' cannot be updated" for k in sorted(unknown)])

        if plain_fields or tax_fields:
            permission_service.require_permission(ctx.user_id, "products.update", ctx.business_id)
        if price_fields:
            permission_service.require_permission(ctx.user_id, "products.adjust_price", ctx.business_id)

        product = get_owned(Product, product_id, ctx.business_id, label="Product")

        merged = {
            "product_type": product.product_type,
            "package_content": product.package_content,
            **plain_fields,
        }
        errors = _validate_product_fields(merged)
        if tax_fields:
            errors.extend(tax_service.validate_tax_config(
                tax_fields.get("tax_type", product.tax_type),
                tax_fields.get("tax_rate", product.tax_rate),
            ))
        if errors:
            raise ValidationError(errors)

        new_barcode = plain_fields.get("barcode")
        if new_barcode and new_barcode != product.barcode:
            if not is_barcode_available(ctx.business_id, new_barcode, exclude_product_id=product.id):
                raise ConflictError(f"Barcode {new_barcode} already exists for this business")
        if plain_fields.get("department_id") is not None:
            department_service.require_active_department(ctx.business_id, plain_fields["department_id"])

        if price_fields:
            pricing_service.apply_price_update(
                ctx, product,
                cost_cents=price_fields.get("cost_cents"),
                price_cents=price_fields.get("price_cents"),
                reason="manual_update",
                effective_date=None,
                metadata=None,
            )

        if plain_fields or tax_fields:
            before = product.to_dict()
            for key, value in plain_fields.items():
                setattr(product, key, value)
            if "tax_type" in tax_fields:
                product.tax_type = tax_fields["tax_type"]
            if "tax_rate" in tax_fields:
                product.tax_rate = float(tax_fields["tax_rate"])

            audit_service.audit(
                ctx, "product.updated", "product", product.id,
                details="Updated product",
                old_value={k: before[k] for k in list(plain_fields) + list(tax_fields)},
                new_value={**plain_fields, **tax_fields},
            )

        return product

    return run_atomically(_op)


def deactivate_product(ctx: AuthContext, product_id: int) -> Product:
    """Soft delete. Requires products.delete. History and movements are kept."""
    def _op() -> Product:
        permission_service.require_permission(ctx.user_id, "products.delete", ctx.business_id)
        product = get_owned(Product, product_id, ctx.business_id, label="Product")
        product.is_active = False
        audit_service.audit(
            ctx, "product.deactivated", "product", product.id,
            details="Deactivated product",
            old_value={"is_active": True},
            new_value={"is_active": False},
        )
        return product

    return run_atomically(_op)


def activate_product(ctx: AuthContext, product_id: int) -> Product:
    """Undo deactivate_product. Requires products.update."""
    def _op() -> Product:
        permission_service.require_permission(ctx.user_id, "products.update", ctx.business_id)
        product = get_owned(Product, product_id, ctx.business_id, label="Product")
        product.is_active = True
        audit_service.audit(
            ctx, "product.activated", "product", product.id,
            details="Activated product",
            old_value={"is_active": False},
            new_value={"is_active": True},
        )
        return product

    return run_atomically(_op)


def get_product(ctx: AuthContext, product_id: int) -> Product:
    permission_service.require_permission(ctx.user_id, "products.read", ctx.business_id)
    return get_owned(Product, product_id, ctx.business_id, label="Product")


def find_product_by_barcode(ctx: AuthContext, barcode: str) -> Product:
    """Scanner lookup. Raises NotFoundError for unknown or inactive barcodes."""
    permission_service.require_permission(ctx.user_id, "products.read", ctx.business_id)
    product = get_product_by_barcode(ctx.business_id, barcode)
    if not product or not product.is_active:
        raise NotFoundError("Product not found")
    return product


def list_products(ctx: AuthContext, include_inactive: bool = False) -> list[Product]:
    permission_service.require_permission(ctx.user_id, "products.read", ctx.business_id)
    query = db.session.query(Product).filter_by(business_id=ctx.business_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(Product.name).all()


def search_products(ctx: AuthContext, term: str) -> list[Product]:
    """Case-insensitive match on name, barcode or description among active products."""
    permission_service.require_permission(ctx.user_id, "products.read", ctx.business_id)
    pattern = f"%{term.strip()}%"
    return db.session.query(Product).filter(
        Product.business_id == ctx.business_id,
        Product.is_active.is_(True),
        or_(
            Product.name.ilike(pattern),
            Product.barcode.ilike(pattern),
            Product.description.ilike(pattern),
        ),
    ).order_by(Product.name).all()
