from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


MOVEMENT_TYPES = ("entrada", "salida", "ajuste", "merma", "devolucion")
TAX_TYPES = ("IVA", "EXENTO", "TASA_CERO", "IEPS", "ISR")
PRODUCT_TYPES = ("piece", "package")



class Department(db.Model):
    """Grouping for products and services on the till screen."""
    __tablename__ = "departments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Catalogue entry.

    cost/price/tax fields hold CURRENT values only. Every change is
    recorded in PriceHistory, and every sale freezes its own copy on
    SaleItem, so editing a product never rewrites history.

    There is deliberately no quantity column: stock is the SUM of
    InventoryMovement.quantity for the product.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("business_id", "barcode", name="uq_products_business_barcode"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    barcode = db.Column(db.String(64), nullable=False, index=True)
    product_type = db.Column(db.String(16), nullable=False, default="piece")
    package_content = db.Column(db.Integer, nullable=True)  # units per package
    description = db.Column(db.Text, nullable=True)

    # All amounts in cents
    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    min_stock_level = db.Column(db.Integer, nullable=False, default=0)

    tax_type = db.Column(db.String(16), nullable=False, default="IVA")
    tax_rate = db.Column(db.Float, nullable=False, default=16.0)  # percent

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} barcode={self.barcode!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "department_id": self.department_id,
            "name": self.name,
            "barcode": self.barcode,
            "product_type": self.product_type,
            "package_content": self.package_content,
            "description": self.description,
            "cost_cents": self.cost_cents,
            "price_cents": self.price_cents,
            "min_stock_level": self.min_stock_level,
            "tax_type": self.tax_type,
            "tax_rate": self.tax_rate,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ServiceItem(db.Model):
    """
    Sellable item that is not stocked (repairs, copies, delivery).

    Sold on the same sale lines as products but never moves inventory.
    Prices and tax follow the same freeze-on-sale rule as products.
    """
    __tablename__ = "services"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    tax_type = db.Column(db.String(16), nullable=False, default="IVA")
    tax_rate = db.Column(db.Float, nullable=False, default=16.0)  # percent

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "department_id": self.department_id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "tax_type": self.tax_type,
            "tax_rate": self.tax_rate,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """
    Immutable, signed stock movement.

    APPEND-ONLY: rows are never updated or deleted. Mistakes are fixed
    by appending a compensating movement.

    Sign convention (enforced by inventory_service.create_movement):
    - entrada: positive (goods received)
    - salida: negative (sale-driven decrement)
    - ajuste: either sign (manual correction, sale cancellation)
    - merma: negative (loss, shrinkage)
    - devolucion: positive (return/refund restock)
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.CheckConstraint("quantity != 0", name="ck_inventory_movements_nonzero"),
        db.Index("ix_inventory_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(16), nullable=False, index=True)
    reason = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(64), nullable=True, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "type": self.type,
            "reason": self.reason,
            "reference": self.reference,
            "sale_id": self.sale_id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }


class PriceHistory(db.Model):
    """Append-only record of every cost/price change."""
    __tablename__ = "price_history"
    __table_args__ = (
        db.Index("ix_price_history_product_changed", "product_id", "changed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    # Old values are only recorded for the fields that were changed
    old_cost_cents = db.Column(db.Integer, nullable=True)
    new_cost_cents = db.Column(db.Integer, nullable=True)
    old_price_cents = db.Column(db.Integer, nullable=True)
    new_price_cents = db.Column(db.Integer, nullable=True)

    change_reason = db.Column(db.String(255), nullable=False)
    changed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    effective_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    # "metadata" is reserved on declarative models
    change_metadata = db.Column("metadata", db.Text, nullable=True)

    product = db.relationship("Product", backref=db.backref("price_history", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "old_cost_cents": self.old_cost_cents,
            "new_cost_cents": self.new_cost_cents,
            "old_price_cents": self.old_price_cents,
            "new_price_cents": self.new_price_cents,
            "change_reason": self.change_reason,
            "changed_by_user_id": self.changed_by_user_id,
            "changed_at": to_utc_z(self.changed_at),
            "effective_date": to_utc_z(self.effective_date),
            "metadata": json.loads(self.change_metadata) if self.change_metadata else None,
        }
