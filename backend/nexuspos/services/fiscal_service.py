# Overview: Service-layer operations for fiscal numbering; encapsulates business logic and database work.

"""
Fiscal Numbering Service

WHY: Every sale carries a sequential folio, unique per (business, series)
and strictly increasing in creation order. Display form is SERIES-FOLIO
with the folio zero-padded to 6 digits (VENTA-000001).

CONCURRENCY:
- allocate_fiscal_number issues folios from a FiscalSequence counter with
  an atomic UPDATE ... SET next_number = next_number + 1, so two terminals
  never receive the same folio
- The counter is seeded from the highest folio already on record the first
  time a series is used
- uq_sales_business_series_folio backs the counter at the database level
"""

from __future__ import annotations

import re

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..context import AuthContext
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import FiscalSequence, Sale
from . import permission_service


DEFAULT_SERIES = "VENTA"
FOLIO_WIDTH = 6

_SERIES_RE = re.compile(r"^[A-Z]+$")
_FISCAL_NUMBER_RE = re.compile(r"^([A-Z]+)-(\d+)$")


def format_folio(number: int) -> str:
    return str(number).zfill(FOLIO_WIDTH)


def _max_folio(business_id: int, series: str) -> int:
    """Highest numeric folio on record for (business, series); non-numeric folios are ignored."""
    folios = db.session.query(Sale.folio).filter_by(business_id=business_id, series=series).all()
    highest = 0
    for (folio,) in folios:
        if folio and folio.isdigit():
            highest = max(highest, int(folio))
    return highest


def get_next_folio(business_id: int, series: str = DEFAULT_SERIES) -> str:
    """
    Peek at the folio the next sale would get by scanning existing sales.

    O(n) in the number of sales and not reserved; use
    allocate_fiscal_number to actually issue one.
    """
    return format_folio(_max_folio(business_id, series) + 1)


def allocate_fiscal_number(business_id: int, series: str | None = None) -> tuple[str, str]:
    """
    Atomically reserve the next folio for (business, series).

    Returns (series, folio). Runs inside the caller's transaction: if the
    sale that uses the folio rolls back, so does the reservation, which
    keeps the sequence gap-free.
    """
    series = series or DEFAULT_SERIES
    if not _SERIES_RE.match(series):
        raise ValidationError("Series must be uppercase letters only")

    stmt = (
        update(FiscalSequence)
        .where(
            FiscalSequence.business_id == business_id,
            FiscalSequence.series == series,
        )
        .values(next_number=FiscalSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        number = _current_counter(business_id, series) - 1
        return series, format_folio(number)

    number = _max_folio(business_id, series) + 1
    try:
        with db.session.begin_nested():
            db.session.add(FiscalSequence(business_id=business_id, series=series, next_number=number + 1))
    except IntegrityError:
        # Another writer seeded the counter first; take the next number from it
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        number = _current_counter(business_id, series) - 1

    return series, format_folio(number)


def _current_counter(business_id: int, series: str) -> int:
    return db.session.query(FiscalSequence.next_number).filter_by(
        business_id=business_id,
        series=series,
    ).scalar()


def validate_fiscal_number(folio: str, series: str) -> bool:
    """Folio is 1-10 digits and series is non-empty."""
    if not folio or not series:
        return False
    if not folio.isdigit():
        return False
    return 1 <= len(folio) <= 10


def format_fiscal_number(series: str, folio: str) -> str:
    return f"{series}-{folio}"


def parse_fiscal_number(fiscal_number: str) -> tuple[str, str] | None:
    """'VENTA-000012' -> ('VENTA', '000012'); None if the text isn't in that form."""
    match = _FISCAL_NUMBER_RE.match(fiscal_number or "")
    if not match:
        return None
    return match.group(1), match.group(2)


def check_duplicate_fiscal_number(business_id: int, series: str, folio: str,
                                  exclude_sale_id: int | None = None) -> bool:
    existing = db.session.query(Sale).filter_by(business_id=business_id, series=series, folio=folio).first()
    if existing is None:
        return False
    return not (exclude_sale_id is not None and existing.id == exclude_sale_id)


def get_sale_by_fiscal_number(ctx: AuthContext, fiscal_number: str) -> Sale:
    """Look up a sale by its printed SERIES-FOLIO. Requires sales.read."""
    permission_service.require_permission(ctx.user_id, "sales.read", ctx.business_id)

    parsed = parse_fiscal_number(fiscal_number)
    if parsed is None:
        raise ValidationError(f"Invalid fiscal number: {fiscal_number}")
    series, folio = parsed

    sale = db.session.query(Sale).filter_by(business_id=ctx.business_id, series=series, folio=folio).first()
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale


def get_fiscal_summary(ctx: AuthContext) -> dict:
    """Completed-sale counts and last folio per series. Requires reports.sales."""
    permission_service.require_permission(ctx.user_id, "reports.sales", ctx.business_id)

    sales = db.session.query(Sale).filter_by(
        business_id=ctx.business_id,
        payment_status="completed",
        is_active=True,
    ).order_by(Sale.created_at, Sale.id).all()

    last_folio_by_series: dict[str, str] = {}
    for sale in sales:
        last_folio_by_series[sale.series] = sale.folio

    return {
        "total_sales": len(sales),
        "series_used": sorted(last_folio_by_series),
        "last_folio_by_series": last_folio_by_series,
        "first_sale_at": sales[0].created_at if sales else None,
        "last_sale_at": sales[-1].created_at if sales else None,
    }
