"""
Register and Cash Shift Service

WHY: Cash accountability. A shift is one cashier's period on one
register, from opening float to counted close. Expected cash is derived
from the payments recorded against the shift, never kept as a running
counter that could drift.

DESIGN PRINCIPLES:
- A user holds at most one open shift at a time, on any register
- Only the shift's owner closes it normally; force_close_shift is the
  escape hatch for abandoned shifts
- expected = opening + cash sales (net of change) - cash refunds; card and
  other refunds are reported in refunds_cents but never leave the drawer,
  so they are left out of expected cash
- difference = actual - expected, signed, to the cent
- Reconciliation is terminal and idempotent: it never recomputes totals
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.exc import IntegrityError

from ..context import AuthContext
from ..errors import (
    ConflictError,
    InvalidStateError,
    PermissionDeniedError,
    ShiftAlreadyOpenError,
    ValidationError,
)
from ..extensions import db
from ..models import CashRegister, CashShift, Payment, Sale, User
from ..time_utils import utcnow
from . import audit_service, permission_service
from .concurrency import run_atomically
from .tenant_service import get_owned


def _require_cents(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer amount of cents")
    if value < 0:
        raise ValidationError(f"{name} cannot be negative")


# =============================================================================
# REGISTER MANAGEMENT
# =============================================================================

def create_register(ctx: AuthContext, device_id: str, location: str | None = None) -> CashRegister:
    """
    Create a new POS register. Requires settings.business.

    Raises ConflictError if device_id is already registered in the business.
    """
    def _op() -> CashRegister:
        permission_service.require_permission(ctx.user_id, "settings.business", ctx.business_id)

        if not (device_id or "").strip():
            raise ValidationError("device_id is required")

        existing = db.session.query(CashRegister).filter_by(
            business_id=ctx.business_id,
            device_id=device_id,
        ).first()
        if existing:
            raise ConflictError(f"Register '{device_id}' already exists in this business")

        register = CashRegister(
            business_id=ctx.business_id,
            device_id=device_id,
            location=location,
            is_active=True,
        )
        db.session.add(register)
        db.session.flush()

        audit_service.audit(
            ctx, "register.created", "cash_register", register.id,
            details=f"Created cash register: {device_id}",
            new_value={"device_id": device_id, "location": location},
        )
        return register

    return run_atomically(_op)


def get_registers(ctx: AuthContext, include_inactive: bool = False) -> list[CashRegister]:
    """Registers of the caller's business. Requires cashier.view_reports."""
    permission_service.require_permission(ctx.user_id, "cashier.view_reports", ctx.business_id)
    query = db.session.query(CashRegister).filter_by(business_id=ctx.business_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(CashRegister.device_id).all()


def deactivate_register(ctx: AuthContext, register_id: int) -> CashRegister:
    """
    Deactivate a register (soft delete). Requires settings.business.

    Inactive registers cannot open new shifts. Refused while a shift is open on it.
    """
    def _op() -> CashRegister:
        permission_service.require_permission(ctx.user_id, "settings.business", ctx.business_id)
        register = get_owned(CashRegister, register_id, ctx.business_id, label="Cash register")

        open_shift = db.session.query(CashShift).filter_by(register_id=register.id, status="open").first()
        if open_shift:
            raise InvalidStateError("Cannot deactivate register with open shift. Close shift first.")

        register.is_active = False
        audit_service.audit(
            ctx, "register.deactivated", "cash_register", register.id,
            old_value={"is_active": True},
            new_value={"is_active": False},
        )
        return register

    return run_atomically(_op)


# =============================================================================
# SHIFT LIFECYCLE
# =============================================================================

def get_open_shift_for_user(user_id: int) -> CashShift | None:
    return db.session.query(CashShift).filter_by(user_id=user_id, status="open").first()


def open_shift(ctx: AuthContext, register_id: int, opening_cash_cents: int) -> CashShift:
    """
    Open a shift for the caller on a register. Requires cashier.open_drawer.

    Raises:
        NotFoundError: register missing or in another business
        InvalidStateError: register inactive
        ShiftAlreadyOpenError: caller already holds an open shift anywhere
    """
    def _op() -> CashShift:
        register = get_owned(CashRegister, register_id, ctx.business_id, label="Cash register")
        if not register.is_active:
            raise InvalidStateError("Cash register is not active")

        permission_service.require_permission(ctx.user_id, "cashier.open_drawer", ctx.business_id)
        _require_cents("Opening cash", opening_cash_cents)

        existing = get_open_shift_for_user(ctx.user_id)
        if existing:
            raise ShiftAlreadyOpenError(f"User already has an open shift (shift {existing.id})")

        shift = CashShift(
            business_id=ctx.business_id,
            register_id=register.id,
            user_id=ctx.user_id,
            opened_by_user_id=ctx.user_id,
            status="open",
            opening_cash_cents=opening_cash_cents,
            expected_cash_cents=opening_cash_cents,
            opened_at=utcnow(),
        )
        db.session.add(shift)
        try:
            db.session.flush()
        except IntegrityError as exc:
            # Partial unique index caught a concurrent open
            raise ShiftAlreadyOpenError("User already has an open shift") from exc

        audit_service.audit(
            ctx, "shift.opened", "cash_shift", shift.id,
            details=f"Opened shift with {opening_cash_cents} cents opening cash",
            new_value={"register_id": register.id, "opening_cash_cents": opening_cash_cents},
        )
        return shift

    return run_atomically(_op)


def _close(shift: CashShift, *, closed_by: int, actual_cash_cents: int, notes: str | None) -> dict:
    summary = calculate_shift_summary(shift.id)
    expected = shift.opening_cash_cents + summary["cash_sales_cents"] - summary["cash_refunds_cents"]
    difference = actual_cash_cents - expected

    shift.status = "closed"
    shift.closed_at = utcnow()
    shift.closed_by_user_id = closed_by
    shift.closing_cash_cents = actual_cash_cents
    shift.expected_cash_cents = expected
    shift.difference_cents = difference
    shift.notes = notes

    summary.update({
        "expected_cash_cents": expected,
        "actual_cash_cents": actual_cash_cents,
        "difference_cents": difference,
        "closed_at": shift.closed_at,
    })
    return summary


def close_shift(ctx: AuthContext, shift_id: int, actual_cash_cents: int, notes: str | None = None) -> dict:
    """
    Close the caller's own shift with a counted drawer. Requires cashier.close_shift.

    Returns the shift summary including expected/actual/difference.

    Raises:
        InvalidStateError: shift is not open
        PermissionDeniedError: caller is not the shift's owner
    """
    def _op() -> dict:
        shift = get_owned(CashShift, shift_id, ctx.business_id, label="Shift", lock=True)
        if shift.status != "open":
            raise InvalidStateError("Shift is not open")
        if shift.user_id != ctx.user_id:
            raise PermissionDeniedError("Only the shift owner can close it")

        permission_service.require_permission(ctx.user_id, "cashier.close_shift", ctx.business_id)
        _require_cents("Actual cash", actual_cash_cents)

        summary = _close(shift, closed_by=ctx.user_id, actual_cash_cents=actual_cash_cents, notes=notes)

        audit_service.audit(
            ctx, "shift.closed", "cash_shift", shift.id,
            details=(
                f"Closed shift - Expected: {summary['expected_cash_cents']}, "
                f"Actual: {actual_cash_cents}, Difference: {summary['difference_cents']}"
            ),
            old_value={"status": "open"},
            new_value={
                "status": "closed",
                "actual_cash_cents": actual_cash_cents,
                "expected_cash_cents": summary["expected_cash_cents"],
                "difference_cents": summary["difference_cents"],
                "notes": notes,
            },
        )
        return summary

    return run_atomically(_op)


def force_close_shift(ctx: AuthContext, shift_id: int, reason: str, declared_cash_cents: int) -> dict:
    """
    Close someone else's abandoned shift. Requires cashier.view_reports.

    Same arithmetic as close_shift; the reason is kept in the shift notes.
    """
    def _op() -> dict:
        permission_service.require_permission(ctx.user_id, "cashier.view_reports", ctx.business_id)
        shift = get_owned(CashShift, shift_id, ctx.business_id, label="Shift", lock=True)
        if shift.status != "open":
            raise InvalidStateError("Shift is not open")
        if not (reason or "").strip():
            raise ValidationError("A reason is required to force-close a shift")
        _require_cents("Declared cash", declared_cash_cents)

        summary = _close(
            shift,
            closed_by=ctx.user_id,
            actual_cash_cents=declared_cash_cents,
            notes=f"Force closed by admin: {reason}",
        )

        audit_service.audit(
            ctx, "shift.force_closed", "cash_shift", shift.id,
            details=f"Force closed shift - Reason: {reason}, Declared cash: {declared_cash_cents}",
            old_value={"status": "open", "user_id": shift.user_id},
            new_value={
                "status": "closed",
                "closing_cash_cents": declared_cash_cents,
                "expected_cash_cents": summary["expected_cash_cents"],
                "difference_cents": summary["difference_cents"],
                "reason": reason,
            },
        )
        return summary

    return run_atomically(_op)


def reconcile_shift(ctx: AuthContext, shift_id: int, notes: str | None = None) -> CashShift:
    """
    Accept a closed shift's count as final. Requires cashier.view_reports.

    Idempotent: reconciling an already reconciled shift only refreshes
    reconciled_at/reconciled_by. Expected cash and difference are never
    touched. Open shifts cannot be reconciled.
    """
    def _op() -> CashShift:
        permission_service.require_permission(ctx.user_id, "cashier.view_reports", ctx.business_id)
        shift = get_owned(CashShift, shift_id, ctx.business_id, label="Shift", lock=True)
        if shift.status == "open":
            raise InvalidStateError("Shift must be closed before it can be reconciled")

        previous_status = shift.status
        shift.status = "reconciled"
        shift.reconciled_at = utcnow()
        shift.reconciled_by_user_id = ctx.user_id

        audit_service.audit(
            ctx, "shift.reconciled", "cash_shift", shift.id,
            details=f"Reconciled shift: {notes or 'No notes'}",
            old_value={"status": previous_status},
            new_value={"status": "reconciled", "reconciled_by": ctx.user_id, "notes": notes},
        )
        return shift

    return run_atomically(_op)


def transfer_shift(ctx: AuthContext, shift_id: int, to_user_id: int, reason: str) -> CashShift:
    """
    Hand an open shift to another cashier mid-shift. Requires users.update.

    The receiving user must be active, in the same business and must not
    already hold an open shift.
    """
    def _op() -> CashShift:
        shift = get_owned(CashShift, shift_id, ctx.business_id, label="Shift", lock=True)
        if shift.status != "open":
            raise InvalidStateError("Can only transfer open shifts")

        permission_service.require_permission(ctx.user_id, "users.update", ctx.business_id)

        target = get_owned(User, to_user_id, ctx.business_id, label="User")
        if not target.is_active:
            raise InvalidStateError("Cannot transfer a shift to an inactive user")
        if target.id == shift.user_id:
            raise ValidationError("Shift already belongs to this user")
        if get_open_shift_for_user(target.id):
            raise ShiftAlreadyOpenError("Target user already has an open shift")

        from_user_id = shift.user_id
        shift.user_id = target.id

        audit_service.audit(
            ctx, "shift.transferred", "cash_shift", shift.id,
            details=f"Transferred shift from {from_user_id} to {target.id}: {reason}",
            old_value={"user_id": from_user_id},
            new_value={"user_id": target.id, "reason": reason},
        )
        return shift

    return run_atomically(_op)


def open_cash_drawer(ctx: AuthContext, shift_id: int, reason: str) -> CashShift:
    """
    Record a no-sale drawer open on the caller's open shift. Requires cashier.open_drawer.

    Nothing changes on the shift itself; the audit row is the record.
    """
    def _op() -> CashShift:
        permission_service.require_permission(ctx.user_id, "cashier.open_drawer", ctx.business_id)
        shift = get_owned(CashShift, shift_id, ctx.business_id, label="Shift")
        if shift.status != "open":
            raise InvalidStateError("Shift is not open")
        if shift.user_id != ctx.user_id:
            raise PermissionDeniedError("Only the shift owner can open its drawer")

        audit_service.audit(
            ctx, "cash_drawer.opened", "cash_shift", shift.id,
            details=f"Drawer opened without sale: {reason}",
        )
        return shift

    return run_atomically(_op)


# =============================================================================
# SUMMARIES AND REPORTS
# =============================================================================

def calculate_shift_summary(shift_id: int) -> dict:
    """
    Derive a shift's takings from its payments.

    - cash_sales_cents: completed positive cash payments net of change
    - card_sales_cents / other_payments_cents: completed positive non-cash payments
    - refunds_cents: all negative payments booked on the shift (refunds and
      cancellation hand-backs)
    - cash_refunds_cents: the cash part of refunds_cents (leaves the drawer)
    - total_sales / total_revenue_cents: completed sales rung on the shift
    """
    payments = db.session.query(Payment).filter_by(shift_id=shift_id, status="completed").all()

    cash_sales = 0
    card_sales = 0
    other_payments = 0
    refunds = 0
    cash_refunds = 0

    for payment in payments:
        if payment.amount_cents < 0:
            refunds += -payment.amount_cents
            if payment.method == "cash":
                cash_refunds += -payment.amount_cents
        elif payment.method == "cash":
            cash_sales += payment.amount_cents - (payment.change_cents or 0)
        elif payment.method == "card":
            card_sales += payment.amount_cents
        else:
            other_payments += payment.amount_cents

    completed_sales = db.session.query(Sale).filter(
        Sale.shift_id == shift_id,
        Sale.payment_status == "completed",
        Sale.is_active.is_(True),
    ).all()

    return {
        "shift_id": shift_id,
        "cash_sales_cents": cash_sales,
        "card_sales_cents": card_sales,
        "other_payments_cents": other_payments,
        "refunds_cents": refunds,
        "cash_refunds_cents": cash_refunds,
        "total_sales": len(completed_sales),
        "total_revenue_cents": sum(s.total_cents for s in completed_sales),
    }


def get_current_shift(ctx: AuthContext) -> CashShift | None:
    """The caller's open shift, if any."""
    return get_open_shift_for_user(ctx.user_id)


def get_shift_history(
    ctx: AuthContext,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    user_id: int | None = None,
    limit: int = 50,
) -> list[CashShift]:
    """Newest-first shifts of the business. Requires cashier.view_reports."""
    permission_service.require_permission(ctx.user_id, "cashier.view_reports", ctx.business_id)

    query = db.session.query(CashShift).filter(CashShift.business_id == ctx.business_id)
    if user_id is not None:
        query = query.filter(CashShift.user_id == user_id)
    if start is not None:
        query = query.filter(CashShift.opened_at >= start)
    if end is not None:
        query = query.filter((CashShift.closed_at.is_(None)) | (CashShift.closed_at <= end))

    return query.order_by(CashShift.opened_at.desc(), CashShift.id.desc()).limit(limit).all()


def get_shift_report(ctx: AuthContext, shift_id: int) -> dict:
    """Shift, register, derived summary and completed sales. Requires cashier.view_reports."""
    permission_service.require_permission(ctx.user_id, "cashier.view_reports", ctx.business_id)
    shift = get_owned(CashShift, shift_id, ctx.business_id, label="Shift")

    summary = calculate_shift_summary(shift.id)
    if shift.status == "open":
        summary["expected_cash_cents"] = (
            shift.opening_cash_cents + summary["cash_sales_cents"] - summary["cash_refunds_cents"]
        )
    else:
        summary["expected_cash_cents"] = shift.expected_cash_cents
    summary["actual_cash_cents"] = shift.closing_cash_cents
    summary["difference_cents"] = shift.difference_cents
    summary["opening_cash_cents"] = shift.opening_cash_cents

    sales = db.session.query(Sale).filter(
        Sale.shift_id == shift.id,
        Sale.payment_status == "completed",
        Sale.is_active.is_(True),
    ).order_by(Sale.created_at, Sale.id).all()

    return {
        "shift": shift,
        "register": shift.register,
        "summary": summary,
        "sales": sales,
    }
