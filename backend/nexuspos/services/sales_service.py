# Overview: Service-layer operations for sales; encapsulates business logic and database work.

"""
Sale Engine

WHY: A sale is the one document that moves money, stock and the
customer ledger at the same time. All of it happens in a single
transaction so a failed payment never leaves stock decremented, and a
failed stock write never leaves a payment recorded.

DESIGN PRINCIPLES:
- Line cost, price and tax configuration are frozen onto SaleItem at
  creation; later catalogue changes never alter past sales
- Stock only moves when a sale completes (salida per line), and comes
  back through compensating movements, never by deleting history
- Money is integer cents throughout; tax rounds half-up per line
- Reversing a completed sale (cancel or refund) needs the permission
  AND the acting user's PIN
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..context import AuthContext
from ..errors import (
    InsufficientPaymentError,
    InvalidStateError,
    NotFoundError,
    PinRequiredError,
    ValidationError,
)
from ..extensions import db
from ..models import CashShift, Customer, Payment, Product, Sale, SaleItem, ServiceItem
from ..models.sales import PAYMENT_METHODS
from ..time_utils import utcnow
from . import audit_service, auth_service, customer_service, fiscal_service, inventory_service, permission_service
from .concurrency import run_atomically
from .tax_service import ZERO_RATED_TYPES, calculate_tax
from .tenant_service import get_owned


def _is_cents(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# =============================================================================
# CREATE
# =============================================================================

def _validate_items(items: list[dict]) -> list[str]:
    errors: list[str] = []
    if not items:
        errors.append("A sale needs at least one item")
        return errors

    for index, item in enumerate(items, start=1):
        if (item.get("product_id") is None) == (item.get("service_id") is None):
            errors.append(f"Item {index}: exactly one of product_id or service_id is required")
        quantity = item.get("quantity")
        if not _is_cents(quantity) or quantity <= 0:
            errors.append(f"Item {index}: quantity must be a positive integer")
        unit_price = item.get("unit_price_cents")
        if unit_price is not None and (not _is_cents(unit_price) or unit_price < 0):
            errors.append(f"Item {index}: unit_price_cents must be a non-negative integer")
        discount = item.get("discount_cents", 0)
        if not _is_cents(discount) or discount < 0:
            errors.append(f"Item {index}: discount_cents must be a non-negative integer")
    return errors


def _create_sale(
    ctx: AuthContext,
    shift_id: int,
    items: list[dict],
    customer_id: int | None,
    series: str | None,
    notes: str | None,
) -> Sale:
    permission_service.require_permission(ctx.user_id, "sales.create", ctx.business_id)

    errors = _validate_items(items)
    if errors:
        raise ValidationError(errors)

    shift = get_owned(CashShift, shift_id, ctx.business_id, label="Shift")
    if shift.status != "open":
        raise InvalidStateError("Sales can only be created on an open shift")

    if customer_id is not None:
        customer = get_owned(Customer, customer_id, ctx.business_id, label="Customer")
        if not customer.is_active:
            raise InvalidStateError("Customer is not active")

    can_modify_price = None
    lines = []
    subtotal = 0
    tax_total = 0
    discount_total = 0

    for item in items:
        if item.get("product_id") is not None:
            product = get_owned(Product, item["product_id"], ctx.business_id, label="Product")
            kind = "Product"
        else:
            product = get_owned(ServiceItem, item["service_id"], ctx.business_id, label="Service")
            kind = "Service"
        if not product.is_active:
            raise InvalidStateError(f"{kind} '{product.name}' is not active")

        quantity = item["quantity"]
        unit_price = item.get("unit_price_cents")
        if unit_price is None:
            unit_price = product.price_cents
        elif unit_price != product.price_cents:
            if can_modify_price is None:
                permission_service.require_permission(ctx.user_id, "sales.modify_price", ctx.business_id)
                can_modify_price = True

        discount = item.get("discount_cents", 0)
        line_subtotal = quantity * unit_price
        if discount > line_subtotal:
            raise ValidationError(f"Discount on '{product.name}' exceeds the line subtotal")

        # Tax is charged on the discounted amount
        line_tax = calculate_tax(line_subtotal - discount, product.tax_type, product.tax_rate)

        lines.append((product, quantity, unit_price, discount, line_subtotal, line_tax))
        subtotal += line_subtotal
        tax_total += line_tax
        discount_total += discount

    series, folio = fiscal_service.allocate_fiscal_number(
        ctx.business_id, series or current_app.config.get("DEFAULT_FISCAL_SERIES")
    )

    sale = Sale(
        business_id=ctx.business_id,
        shift_id=shift.id,
        user_id=ctx.user_id,
        customer_id=customer_id,
        series=series,
        folio=folio,
        subtotal_cents=subtotal,
        tax_cents=tax_total,
        discount_cents=discount_total,
        total_cents=subtotal + tax_total - discount_total,
        refunded_cents=0,
        payment_status="pending",
        notes=notes,
        is_active=True,
        created_at=utcnow(),
    )
    db.session.add(sale)
    db.session.flush()

    for product, quantity, unit_price, discount, line_subtotal, line_tax in lines:
        is_service = isinstance(product, ServiceItem)
        db.session.add(SaleItem(
            sale_id=sale.id,
            shift_id=shift.id,
            product_id=None if is_service else product.id,
            service_id=product.id if is_service else None,
            quantity=quantity,
            cost_at_sale_cents=0 if is_service else product.cost_cents,
            price_at_sale_cents=unit_price,
            tax_type_at_sale=product.tax_type,
            tax_rate_at_sale=product.tax_rate,
            subtotal_cents=line_subtotal,
            discount_cents=discount,
            tax_cents=line_tax,
            total_cents=line_subtotal - discount + line_tax,
            refunded_quantity=0,
        ))
    db.session.flush()

    audit_service.audit(
        ctx, "sale.created", "sale", sale.id,
        details=f"Created sale {sale.fiscal_number} for {sale.total_cents} cents",
        new_value={
            "fiscal_number": sale.fiscal_number,
            "total_cents": sale.total_cents,
            "items": len(lines),
            "customer_id": customer_id,
        },
    )
    return sale


def create_sale(
    ctx: AuthContext,
    shift_id: int,
    items: list[dict],
    customer_id: int | None = None,
    series: str | None = None,
    notes: str | None = None,
) -> Sale:
    """
    Create a pending sale on an open shift. Requires sales.create.

    items: [{"product_id": 1, "quantity": 2, "unit_price_cents": 900, "discount_cents": 0}, ...]
    A line carries either product_id or service_id. Service lines never
    touch stock and freeze a cost of 0.
    unit_price_cents defaults to the current catalogue price; charging a
    different price requires sales.modify_price.

    Raises:
        ValidationError: malformed items or discount above line subtotal
        NotFoundError: shift/customer/product/service missing or in another business
        InvalidStateError: shift not open, customer or product inactive
    """
    return run_atomically(lambda: _create_sale(ctx, shift_id, items, customer_id, series, notes))


# =============================================================================
# PAYMENT
# =============================================================================

def _validate_payments(payments: list[dict]) -> list[str]:
    errors: list[str] = []
    if not payments:
        errors.append("At least one payment is required")
        return errors

    for index, payment in enumerate(payments, start=1):
        if payment.get("method") not in PAYMENT_METHODS:
            errors.append(f"Payment {index}: method must be one of {', '.join(PAYMENT_METHODS)}")
        amount = payment.get("amount_cents")
        if not _is_cents(amount) or amount <= 0:
            errors.append(f"Payment {index}: amount_cents must be a positive integer")
    return errors


def _process_payment(ctx: AuthContext, sale_id: int, payments: list[dict]) -> int:
    permission_service.require_permission(ctx.user_id, "sales.create", ctx.business_id)
    permission_service.require_permission(ctx.user_id, "inventory.salida", ctx.business_id)

    errors = _validate_payments(payments)
    if errors:
        raise ValidationError(errors)

    sale = get_owned(Sale, sale_id, ctx.business_id, label="Sale", lock=True)
    if sale.payment_status != "pending":
        raise InvalidStateError(f"Sale is {sale.payment_status}, only pending sales can be paid")

    paid = sum(p["amount_cents"] for p in payments)
    if paid < sale.total_cents:
        raise InsufficientPaymentError(sale.total_cents, paid)

    change = paid - sale.total_cents
    cash_tendered = sum(p["amount_cents"] for p in payments if p["method"] == "cash")
    if change > cash_tendered:
        raise ValidationError("Change can only be given from cash; non-cash payments exceed the total")

    now = utcnow()
    sale.payment_status = "completed"
    sale.completed_at = now

    for item in sale.items:
        if item.product_id is None:
            continue
        inventory_service.create_movement(
            product_id=item.product_id,
            business_id=sale.business_id,
            quantity=item.quantity,
            movement_type="salida",
            user_id=ctx.user_id,
            reason=f"Sale {sale.fiscal_number}",
            reference=str(sale.id),
            sale_id=sale.id,
        )

    # Change comes out of the cash rows, first cash tender first
    change_left = change
    for payment in payments:
        change_on_row = 0
        if payment["method"] == "cash" and change_left:
            change_on_row = min(change_left, payment["amount_cents"])
            change_left -= change_on_row
        db.session.add(Payment(
            sale_id=sale.id,
            shift_id=sale.shift_id,
            method=payment["method"],
            amount_cents=payment["amount_cents"],
            change_cents=change_on_row,
            status="completed",
            reference=payment.get("reference"),
            notes=payment.get("notes"),
            processed_by_user_id=ctx.user_id,
            processed_at=now,
        ))

    if sale.customer_id is not None:
        customer_service.record_customer_purchase(sale.customer_id, sale.total_cents)

    db.session.flush()

    audit_service.audit(
        ctx, "sale.completed", "sale", sale.id,
        details=f"Payment processed for sale {sale.fiscal_number}",
        old_value={"payment_status": "pending"},
        new_value={
            "payment_status": "completed",
            "paid_cents": paid,
            "change_cents": change,
            "methods": sorted({p["method"] for p in payments}),
        },
    )
    return change


def process_payment(ctx: AuthContext, sale_id: int, payments: list[dict]) -> int:
    """
    Pay a pending sale and complete it. Requires sales.create and inventory.salida.

    payments: [{"method": "cash", "amount_cents": 6000}, {"method": "card", "amount_cents": 500, "reference": "A1"}]
    Returns the change owed to the customer.

    Raises:
        InsufficientPaymentError: tendered total is below the sale total
        InvalidStateError: sale is not pending
        ValidationError: malformed tenders, or change larger than the cash tendered
    """
    return run_atomically(lambda: _process_payment(ctx, sale_id, payments))


def process_complete_sale(
    ctx: AuthContext,
    items: list[dict],
    payments: list[dict],
    customer_id: int | None = None,
) -> dict:
    """
    Create and pay a sale on the caller's open shift in one transaction.

    Returns {"sale": Sale, "change_cents": int}. Nothing is written if
    any step fails.
    """
    def _op() -> dict:
        shift = db.session.query(CashShift).filter_by(
            business_id=ctx.business_id,
            user_id=ctx.user_id,
            status="open",
        ).first()
        if shift is None:
            raise InvalidStateError("No open shift found. Please open a shift before making sales.")

        sale = _create_sale(ctx, shift.id, items, customer_id, None, None)
        change = _process_payment(ctx, sale.id, payments)
        return {"sale": sale, "change_cents": change}

    return run_atomically(_op)


# =============================================================================
# REVERSALS
# =============================================================================

def _require_pin(ctx: AuthContext, pin: str | None) -> None:
    if not pin:
        raise PinRequiredError("PIN verification is required for this operation")
    if not auth_service.verify_user_pin(ctx.user_id, pin):
        current_app.logger.warning("Invalid PIN for user %s in business %s", ctx.user_id, ctx.business_id)
        raise PinRequiredError("Invalid PIN")


def _restock_remaining(ctx: AuthContext, sale: Sale, *, movement_type: str, reference: str, reason: str) -> int:
    """Put back every unit not already returned. Returns units restocked."""
    restocked = 0
    for item in sale.items:
        remaining = item.quantity - item.refunded_quantity
        if remaining <= 0 or item.product_id is None:
            continue
        inventory_service.create_movement(
            product_id=item.product_id,
            business_id=sale.business_id,
            quantity=remaining,
            movement_type=movement_type,
            user_id=ctx.user_id,
            reason=reason,
            reference=reference,
            sale_id=sale.id,
        )
        item.refunded_quantity = item.quantity
        restocked += remaining
    return restocked


def _reverse_tenders(ctx: AuthContext, sale: Sale, reason: str | None) -> int:
    """
    Hand back whatever of the sale has not been refunded yet.

    Each reversal mirrors an original tender, latest first, and is booked
    on the sale's shift because that drawer took the money. Earlier refund
    rows stay untouched on the shifts that paid them out. Returns the
    amount reversed.
    """
    outstanding = sale.total_cents - sale.refunded_cents
    reversed_total = 0
    tenders = [p for p in sale.payments if p.amount_cents > 0 and p.status == "completed"]
    now = utcnow()

    for tender in reversed(tenders):
        if outstanding <= 0:
            break
        amount = min(outstanding, tender.amount_cents - (tender.change_cents or 0))
        if amount <= 0:
            continue
        db.session.add(Payment(
            sale_id=sale.id,
            shift_id=sale.shift_id,
            method=tender.method,
            amount_cents=-amount,
            change_cents=0,
            status="completed",
            reference=tender.reference,
            notes=f"Cancellation - {reason or 'No reason provided'}",
            processed_by_user_id=ctx.user_id,
            processed_at=now,
        ))
        outstanding -= amount
        reversed_total += amount

    return reversed_total


def cancel_sale(ctx: AuthContext, sale_id: int, pin: str | None = None, reason: str | None = None) -> Sale:
    """
    Cancel a sale.

    - pending: status flips to cancelled (needs sales.create); no stock had moved
    - completed: needs sales.cancel plus the caller's PIN; every unreturned
      unit is restocked with an ajuste movement and the money not already
      refunded is handed back as negative payments on the sale's shift
    - anything else: InvalidStateError
    """
    def _op() -> Sale:
        sale = get_owned(Sale, sale_id, ctx.business_id, label="Sale", lock=True)
        old_status = sale.payment_status
        reversed_cents = 0

        if old_status == "pending":
            permission_service.require_permission(ctx.user_id, "sales.create", ctx.business_id)
        elif old_status == "completed":
            permission_service.require_permission(ctx.user_id, "sales.cancel", ctx.business_id)
            _require_pin(ctx, pin)
            _restock_remaining(
                ctx, sale,
                movement_type="ajuste",
                reference=f"CANCEL-{sale.id}",
                reason=f"Sale cancelled - {reason or 'No reason provided'}",
            )
            reversed_cents = _reverse_tenders(ctx, sale, reason)
        else:
            raise InvalidStateError(f"Sale is {old_status} and cannot be cancelled")

        sale.payment_status = "cancelled"
        sale.is_active = False
        sale.cancelled_at = utcnow()
        sale.cancelled_by_user_id = ctx.user_id
        sale.cancel_reason = reason
        db.session.flush()

        audit_service.audit(
            ctx, "sales.cancel", "sale", sale.id,
            details=f"Cancelled sale {sale.fiscal_number}: {reason or 'No reason provided'}",
            old_value={"payment_status": old_status, "total_cents": sale.total_cents},
            new_value={"payment_status": "cancelled", "reason": reason, "reversed_cents": reversed_cents},
        )
        return sale

    return run_atomically(_op)


def _refund_shift_id(ctx: AuthContext, sale: Sale) -> int:
    """Book refunds on the refunder's open shift so the cash leaves the right drawer."""
    shift = db.session.query(CashShift).filter_by(
        business_id=ctx.business_id,
        user_id=ctx.user_id,
        status="open",
    ).first()
    return shift.id if shift is not None else sale.shift_id


def refund_sale(
    ctx: AuthContext,
    sale_id: int,
    refund_amount_cents: int,
    pin: str | None = None,
    reason: str | None = None,
    items: list[dict] | None = None,
    method: str = "cash",
) -> Sale:
    """
    Refund all or part of a completed sale. Requires sales.refund plus the caller's PIN.

    items: optional [{"sale_item_id": 3, "quantity": 1}, ...] of units coming
    back to the shelf (devolucion). Once the cumulative refund reaches the
    sale total, every remaining unit is restocked and the sale becomes
    refunded.

    Raises:
        ValidationError: amount not positive, cumulative refunds above the
            total, or returned quantities above what was sold
        InvalidStateError: sale is not completed
    """
    def _op() -> Sale:
        permission_service.require_permission(ctx.user_id, "sales.refund", ctx.business_id)
        _require_pin(ctx, pin)

        sale = get_owned(Sale, sale_id, ctx.business_id, label="Sale", lock=True)
        if sale.payment_status != "completed":
            raise InvalidStateError(f"Sale is {sale.payment_status}, only completed sales can be refunded")

        errors: list[str] = []
        if not _is_cents(refund_amount_cents) or refund_amount_cents <= 0:
            errors.append("Refund amount must be a positive integer amount of cents")
        elif sale.refunded_cents + refund_amount_cents > sale.total_cents:
            errors.append("Refund amount cannot exceed sale total")
        if method not in PAYMENT_METHODS:
            errors.append(f"Refund method must be one of {', '.join(PAYMENT_METHODS)}")
        if errors:
            raise ValidationError(errors)

        reference = f"REFUND-{sale.id}"
        movement_reason = f"Refund - {reason or 'No reason provided'}"
        sale_items = {item.id: item for item in sale.items}

        for entry in items or []:
            item = sale_items.get(entry.get("sale_item_id"))
            if item is None:
                raise NotFoundError("Sale item not found on this sale")
            quantity = entry.get("quantity")
            if not _is_cents(quantity) or quantity <= 0:
                raise ValidationError("Returned quantity must be a positive integer")
            if item.refunded_quantity + quantity > item.quantity:
                raise ValidationError(f"Cannot return more units than were sold on item {item.id}")
            if item.product_id is not None:
                inventory_service.create_movement(
                    product_id=item.product_id,
                    business_id=sale.business_id,
                    quantity=quantity,
                    movement_type="devolucion",
                    user_id=ctx.user_id,
                    reason=movement_reason,
                    reference=reference,
                    sale_id=sale.id,
                )
            item.refunded_quantity += quantity

        old_refunded = sale.refunded_cents
        sale.refunded_cents += refund_amount_cents
        if sale.refunded_cents == sale.total_cents:
            _restock_remaining(
                ctx, sale, movement_type="devolucion", reference=reference, reason=movement_reason,
            )
            sale.payment_status = "refunded"

        db.session.add(Payment(
            sale_id=sale.id,
            shift_id=_refund_shift_id(ctx, sale),
            method=method,
            amount_cents=-refund_amount_cents,
            change_cents=0,
            status="completed",
            notes=reason,
            processed_by_user_id=ctx.user_id,
            processed_at=utcnow(),
        ))
        db.session.flush()

        audit_service.audit(
            ctx, "sales.refund", "sale", sale.id,
            details=(
                f"Processed refund of {refund_amount_cents} cents for sale "
                f"{sale.fiscal_number}: {reason or 'No reason provided'}"
            ),
            old_value={"refunded_cents": old_refunded},
            new_value={
                "refunded_cents": sale.refunded_cents,
                "refund_amount_cents": refund_amount_cents,
                "payment_status": sale.payment_status,
                "reason": reason,
            },
        )
        return sale

    return run_atomically(_op)


# =============================================================================
# QUERIES AND REPORTS
# =============================================================================

def get_sale(ctx: AuthContext, sale_id: int) -> Sale:
    permission_service.require_permission(ctx.user_id, "sales.read", ctx.business_id)
    return get_owned(Sale, sale_id, ctx.business_id, label="Sale")


def get_sale_with_items(ctx: AuthContext, sale_id: int) -> dict:
    """Sale plus its lines and payments, serialized. Requires sales.read."""
    sale = get_sale(ctx, sale_id)
    data = sale.to_dict()
    data["items"] = [item.to_dict() for item in sale.items]
    data["payments"] = [payment.to_dict() for payment in sale.payments]
    return data


def get_recent_sales(ctx: AuthContext, limit: int = 10) -> list[Sale]:
    permission_service.require_permission(ctx.user_id, "sales.read", ctx.business_id)
    return db.session.query(Sale).filter_by(
        business_id=ctx.business_id
    ).order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()


def calculate_sale_summary(sale: Sale) -> dict:
    """Cost, profit and item count of a sale from its frozen lines."""
    cost = sum(item.cost_at_sale_cents * item.quantity for item in sale.items)
    net = sale.subtotal_cents - sale.discount_cents
    return {
        "sale_id": sale.id,
        "item_count": sum(item.quantity for item in sale.items),
        "line_count": len(sale.items),
        "subtotal_cents": sale.subtotal_cents,
        "discount_cents": sale.discount_cents,
        "tax_cents": sale.tax_cents,
        "total_cents": sale.total_cents,
        "cost_cents": cost,
        "profit_cents": net - cost,
    }


def _completed_sales_query(business_id: int, start: datetime | None, end: datetime | None):
    query = db.session.query(Sale).filter(
        Sale.business_id == business_id,
        Sale.payment_status == "completed",
        Sale.is_active.is_(True),
    )
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    return query


def get_sales_report(ctx: AuthContext, start: datetime | None = None, end: datetime | None = None) -> dict:
    """Totals over completed sales in a period. Requires reports.sales."""
    permission_service.require_permission(ctx.user_id, "reports.sales", ctx.business_id)

    count, total, tax, discount = _completed_sales_query(ctx.business_id, start, end).with_entities(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_cents), 0),
        func.coalesce(func.sum(Sale.tax_cents), 0),
        func.coalesce(func.sum(Sale.discount_cents), 0),
    ).one()

    return {
        "total_sales": int(count),
        "total_revenue_cents": int(total),
        "total_tax_cents": int(tax),
        "total_discount_cents": int(discount),
        "average_sale_cents": int(total) // int(count) if count else 0,
        "start": start,
        "end": end,
    }


def get_tax_summary(ctx: AuthContext, start: datetime | None = None, end: datetime | None = None) -> dict:
    """
    Tax collected by tax type over completed sales. Requires reports.sales.

    exempt/taxable split uses the tax type frozen on each line.
    """
    permission_service.require_permission(ctx.user_id, "reports.sales", ctx.business_id)

    sale_ids = _completed_sales_query(ctx.business_id, start, end).with_entities(Sale.id)
    items = db.session.query(SaleItem).filter(SaleItem.sale_id.in_(sale_ids)).all()

    tax_by_type: dict[str, int] = {}
    exempt = 0
    taxable = 0
    for item in items:
        tax_by_type[item.tax_type_at_sale] = tax_by_type.get(item.tax_type_at_sale, 0) + item.tax_cents
        base = item.subtotal_cents - item.discount_cents
        if item.tax_type_at_sale in ZERO_RATED_TYPES:
            exempt += base
        else:
            taxable += base

    return {
        "total_tax_collected_cents": sum(tax_by_type.values()),
        "tax_by_type": tax_by_type,
        "exempt_sales_cents": exempt,
        "taxable_sales_cents": taxable,
    }
