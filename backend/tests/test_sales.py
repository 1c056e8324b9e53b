# Overview: Pytest coverage for the sale engine: creation, payment, cancellation and refunds.

"""
Sale Engine Tests

Covers the full sale lifecycle:
- pending -> completed (payment, stock out, customer ledger)
- pending / completed -> cancelled (PIN step-up, compensating movements)
- completed -> refunded (partial and full refunds)
- price freeze on SaleItem
"""

import pytest

from nexuspos.errors import (
    InsufficientPaymentError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    PinRequiredError,
    ValidationError,
)
from nexuspos.extensions import db
from nexuspos.models import InventoryMovement, Payment, Sale, SaleItem
from nexuspos.services import customer_service, pricing_service, sales_service, shift_service, tax_service
from nexuspos.services.inventory_service import calculate_stock_from_movements

from conftest import ADMIN_PIN, CASHIER_PIN, OWNER_PIN


def _sell(ctx, shift, product, quantity=1, payments=None, **kwargs):
    sale = sales_service.create_sale(ctx, shift.id, [{"product_id": product.id, "quantity": quantity}], **kwargs)
    if payments is None:
        payments = [{"method": "cash", "amount_cents": sale.total_cents}]
    change = sales_service.process_payment(ctx, sale.id, payments)
    return sale, change


class TestCreateSale:
    """Pending sale creation and line pricing."""

    def test_totals_include_line_tax(self, cashier_ctx, cashier_shift, product):
        sale = sales_service.create_sale(
            cashier_ctx, cashier_shift.id, [{"product_id": product.id, "quantity": 2}],
        )

        assert sale.payment_status == "pending"
        assert sale.subtotal_cents == 10000
        assert sale.tax_cents == 1600
        assert sale.discount_cents == 0
        assert sale.total_cents == 11600

    def test_tax_is_charged_on_discounted_amount(self, cashier_ctx, cashier_shift, product):
        sale = sales_service.create_sale(
            cashier_ctx, cashier_shift.id,
            [{"product_id": product.id, "quantity": 1, "discount_cents": 1000}],
        )

        # (5000 - 1000) * 16% = 640
        assert sale.tax_cents == 640
        assert sale.total_cents == 5000 + 640 - 1000
        item = sale.items[0]
        assert item.total_cents == 4640

    def test_exempt_lines_carry_no_tax(self, cashier_ctx, cashier_shift, product, exempt_product):
        sale = sales_service.create_sale(
            cashier_ctx, cashier_shift.id,
            [
                {"product_id": product.id, "quantity": 1},
                {"product_id": exempt_product.id, "quantity": 2},
            ],
        )

        assert sale.subtotal_cents == 9000
        assert sale.tax_cents == 800
        assert sale.total_cents == 9800

    def test_no_stock_moves_before_payment(self, cashier_ctx, cashier_shift, product):
        sales_service.create_sale(cashier_ctx, cashier_shift.id, [{"product_id": product.id, "quantity": 3}])

        assert calculate_stock_from_movements(product.id) == 10

    def test_requires_open_shift(self, cashier_ctx, cashier_shift, product):
        shift_service.close_shift(cashier_ctx, cashier_shift.id, 10000)

        with pytest.raises(InvalidStateError):
            sales_service.create_sale(cashier_ctx, cashier_shift.id, [{"product_id": product.id, "quantity": 1}])

    def test_rejects_empty_and_malformed_items(self, cashier_ctx, cashier_shift, product):
        with pytest.raises(ValidationError):
            sales_service.create_sale(cashier_ctx, cashier_shift.id, [])

        with pytest.raises(ValidationError) as exc_info:
            sales_service.create_sale(
                cashier_ctx, cashier_shift.id,
                [{"product_id": product.id, "quantity": 0, "discount_cents": -5}],
            )
        assert len(exc_info.value.errors) == 2

    def test_discount_above_line_subtotal_rejected(self, cashier_ctx, cashier_shift, product):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                cashier_ctx, cashier_shift.id,
                [{"product_id": product.id, "quantity": 1, "discount_cents": 5001}],
            )

    def test_inactive_product_rejected(self, owner_ctx, cashier_ctx, cashier_shift, product):
        from nexuspos.services import products_service
        products_service.deactivate_product(owner_ctx, product.id)

        with pytest.raises(InvalidStateError):
            sales_service.create_sale(cashier_ctx, cashier_shift.id, [{"product_id": product.id, "quantity": 1}])

    def test_price_override_requires_modify_price(self, cashier_ctx, cashier_shift, product):
        with pytest.raises(PermissionDeniedError):
            sales_service.create_sale(
                cashier_ctx, cashier_shift.id,
                [{"product_id": product.id, "quantity": 1, "unit_price_cents": 4000}],
            )

        # Same price as the catalogue is not an override
        sale = sales_service.create_sale(
            cashier_ctx, cashier_shift.id,
            [{"product_id": product.id, "quantity": 1, "unit_price_cents": 5000}],
        )
        assert sale.total_cents == 5800

    def test_owner_can_override_price(self, owner_ctx, register, product):
        shift = shift_service.open_shift(owner_ctx, register.id, 0)
        sale = sales_service.create_sale(
            owner_ctx, shift.id, [{"product_id": product.id, "quantity": 1, "unit_price_cents": 4000}],
        )
        assert sale.items[0].price_at_sale_cents == 4000
        assert sale.total_cents == 4640

    def test_nothing_written_when_creation_fails(self, cashier_ctx, cashier_shift, product):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(
                cashier_ctx, cashier_shift.id,
                [{"product_id": product.id, "quantity": 1}, {"product_id": 999999, "quantity": 1}],
            )

        assert db.session.query(Sale).count() == 0
        assert db.session.query(SaleItem).count() == 0


class TestProcessPayment:

    def test_scenario_cash_sale_and_close(self, cashier_ctx, cashier_shift, product):
        """Open with 100, sell 50 + 16% IVA for 58 cash, count 158: no difference."""
        sale, change = _sell(cashier_ctx, cashier_shift, product,
                             payments=[{"method": "cash", "amount_cents": 5800}])
        assert change == 0
        assert sale.payment_status == "completed"

        summary = shift_service.close_shift(cashier_ctx, cashier_shift.id, 15800)

        assert summary["expected_cash_cents"] == 15800
        assert summary["difference_cents"] == 0

    def test_change_returned_from_cash(self, cashier_ctx, cashier_shift, product):
        sale, change = _sell(cashier_ctx, cashier_shift, product,
                             payments=[{"method": "cash", "amount_cents": 10000}])

        assert change == 4200
        payment = db.session.query(Payment).filter_by(sale_id=sale.id).one()
        assert payment.change_cents == 4200

    def test_insufficient_payment(self, cashier_ctx, cashier_shift, product):
        sale = sales_service.create_sale(cashier_ctx, cashier_shift.id, [{"product_id": product.id, "quantity": 1}])

        with pytest.raises(InsufficientPaymentError) as exc_info:
            sales_service.process_payment(cashier_ctx, sale.id, [{"method": "cash", "amount_cents": 5000}])

        assert exc_info.value.details["missing_cents"] == 800
        assert db.session.get(Sale, sale.id).payment_status == "pending"
        assert calculate_stock_from_movements(product.id) == 10

    def test_change_cannot_come_from_card(self, cashier_ctx, cashier_shift, product):
        sale = sales_service.create_sale(cashier_ctx, cashier_shift.id, [{"product_id": product.id, "quantity": 1}])

        with pytest.raises(ValidationError):
            sales_service.process_payment(cashier_ctx, sale.id, [{"method": "card", "amount_cents": 6000}])

    def test_split_tender(self, cashier_ctx, cashier_shift, product):
        sale, change = _sell(cashier_ctx, cashier_shift, product, payments=[
            {"method": "card", "amount_cents": 3000, "reference": "AUTH1"},
            {"method": "cash", "amount_cents": 3000},
        ])

        assert change == 200
        payments = db.session.query(Payment).filter_by(sale_id=sale.id).order_by(Payment.id).all()
        assert [(p.method, p.change_cents) for p in payments] == [("card", 0), ("cash", 200)]

    def test_stock_leaves_on_completion(self, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product, quantity=3)

        assert calculate_stock_from_movements(product.id) == 7
        movement = db.session.query(InventoryMovement).filter_by(sale_id=sale.id).one()
        assert movement.type == "salida"
        assert movement.quantity == -3

    def test_only_pending_sales_can_be_paid(self, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product)

        with pytest.raises(InvalidStateError):
            sales_service.process_payment(cashier_ctx, sale.id, [{"method": "cash", "amount_cents": 5800}])

    def test_customer_ledger_updated_once(self, owner_ctx, cashier_ctx, cashier_shift, product):
        customer = customer_service.create_customer(owner_ctx, name="Maria", phone="5559990000")

        _sell(cashier_ctx, cashier_shift, product, customer_id=customer.id)

        customer = customer_service.get_customer(owner_ctx, customer.id)
        assert customer.purchase_count == 1
        assert customer.total_purchases_cents == 5800
        assert customer.last_purchase_at is not None

    def test_price_freeze(self, owner_ctx, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product)

        pricing_service.update_product_price(owner_ctx, product.id, price_cents=9900)
        tax_service.update_product_tax(owner_ctx, product.id, "IVA", 8.0)

        item = db.session.query(SaleItem).filter_by(sale_id=sale.id).one()
        assert item.price_at_sale_cents == 5000
        assert item.tax_rate_at_sale == 16.0
        assert item.cost_at_sale_cents == 3000


class TestProcessCompleteSale:

    def test_uses_callers_open_shift(self, cashier_ctx, cashier_shift, product):
        result = sales_service.process_complete_sale(
            cashier_ctx,
            [{"product_id": product.id, "quantity": 1}],
            [{"method": "cash", "amount_cents": 6000}],
        )

        assert result["change_cents"] == 200
        assert result["sale"].shift_id == cashier_shift.id
        assert result["sale"].payment_status == "completed"

    def test_requires_open_shift(self, cashier_ctx, product):
        with pytest.raises(InvalidStateError):
            sales_service.process_complete_sale(
                cashier_ctx,
                [{"product_id": product.id, "quantity": 1}],
                [{"method": "cash", "amount_cents": 6000}],
            )

    def test_failed_payment_leaves_no_sale(self, cashier_ctx, cashier_shift, product):
        with pytest.raises(InsufficientPaymentError):
            sales_service.process_complete_sale(
                cashier_ctx,
                [{"product_id": product.id, "quantity": 1}],
                [{"method": "cash", "amount_cents": 100}],
            )

        assert db.session.query(Sale).count() == 0
        assert calculate_stock_from_movements(product.id) == 10


class TestCancelSale:

    def test_pending_sale_only_flips_status(self, cashier_ctx, cashier_shift, product):
        sale = sales_service.create_sale(cashier_ctx, cashier_shift.id, [{"product_id": product.id, "quantity": 1}])
        movements_before = db.session.query(InventoryMovement).count()

        cancelled = sales_service.cancel_sale(cashier_ctx, sale.id, reason="Customer left")

        assert cancelled.payment_status == "cancelled"
        assert cancelled.is_active is False
        assert db.session.query(InventoryMovement).count() == movements_before

    def test_scenario_cashier_cannot_cancel_completed_without_pin(self, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product)
        movements_before = db.session.query(InventoryMovement).count()

        with pytest.raises(PermissionDeniedError):
            sales_service.cancel_sale(cashier_ctx, sale.id)

        assert db.session.query(InventoryMovement).count() == movements_before
        assert db.session.get(Sale, sale.id).payment_status == "completed"

    def test_missing_or_wrong_pin(self, admin_ctx, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product)

        with pytest.raises(PinRequiredError):
            sales_service.cancel_sale(admin_ctx, sale.id)
        with pytest.raises(PinRequiredError):
            sales_service.cancel_sale(admin_ctx, sale.id, pin="0000")

    def test_cashier_pin_does_not_grant_cancel(self, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product)

        with pytest.raises(PermissionDeniedError):
            sales_service.cancel_sale(cashier_ctx, sale.id, pin=CASHIER_PIN)

    def test_scenario_cancel_restores_stock_with_compensating_movement(
        self, admin_ctx, cashier_ctx, cashier_shift, product
    ):
        sale, _ = _sell(cashier_ctx, cashier_shift, product, quantity=3)
        assert calculate_stock_from_movements(product.id) == 7

        sales_service.cancel_sale(admin_ctx, sale.id, pin=ADMIN_PIN, reason="Wrong item")

        assert calculate_stock_from_movements(product.id) == 10
        movements = db.session.query(InventoryMovement).filter_by(sale_id=sale.id).order_by(InventoryMovement.id).all()
        assert [(m.type, m.quantity) for m in movements] == [("salida", -3), ("ajuste", 3)]
        assert movements[1].reference == f"CANCEL-{sale.id}"

    def test_cancel_hands_back_the_payment(self, owner_ctx, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product)

        sales_service.cancel_sale(owner_ctx, sale.id, pin=OWNER_PIN)

        rows = db.session.query(Payment).filter_by(sale_id=sale.id).order_by(Payment.id).all()
        assert [(p.method, p.amount_cents, p.shift_id) for p in rows] == [
            ("cash", 5800, cashier_shift.id),
            ("cash", -5800, cashier_shift.id),
        ]
        summary = shift_service.close_shift(cashier_ctx, cashier_shift.id, 10000)
        assert summary["expected_cash_cents"] == 10000
        assert summary["total_sales"] == 0

    def test_cancel_reverses_each_tender_net_of_change(self, owner_ctx, cashier_ctx, cashier_shift, product):
        sale, change = _sell(
            cashier_ctx, cashier_shift, product,
            payments=[{"method": "card", "amount_cents": 3000}, {"method": "cash", "amount_cents": 5000}],
        )
        assert change == 2200

        sales_service.cancel_sale(owner_ctx, sale.id, pin=OWNER_PIN)

        reversals = db.session.query(Payment).filter(
            Payment.sale_id == sale.id, Payment.amount_cents < 0,
        ).order_by(Payment.id).all()
        assert [(p.method, p.amount_cents) for p in reversals] == [("cash", -2800), ("card", -3000)]

    def test_cancel_after_refund_on_another_drawer(self, owner_ctx, admin_ctx, cashier_ctx, cashier_shift, product):
        second_register = shift_service.create_register(owner_ctx, "POS-02")
        admin_shift = shift_service.open_shift(admin_ctx, second_register.id, 0)
        sale, _ = _sell(cashier_ctx, cashier_shift, product)

        sales_service.refund_sale(admin_ctx, sale.id, 1000, pin=ADMIN_PIN)
        sales_service.cancel_sale(admin_ctx, sale.id, pin=ADMIN_PIN)

        # The refund already paid out of POS-02 stays there
        admin_summary = shift_service.calculate_shift_summary(admin_shift.id)
        assert admin_summary["cash_refunds_cents"] == 1000

        # Only the part not yet refunded comes back out of the selling drawer
        cashier_summary = shift_service.calculate_shift_summary(cashier_shift.id)
        assert cashier_summary["cash_sales_cents"] == 5800
        assert cashier_summary["cash_refunds_cents"] == 4800

        closed = shift_service.close_shift(cashier_ctx, cashier_shift.id, 11000)
        assert closed["expected_cash_cents"] == 11000
        assert closed["difference_cents"] == 0

    def test_cancelled_sale_cannot_be_cancelled_again(self, owner_ctx, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product)
        sales_service.cancel_sale(owner_ctx, sale.id, pin=OWNER_PIN)

        with pytest.raises(InvalidStateError):
            sales_service.cancel_sale(owner_ctx, sale.id, pin=OWNER_PIN)


class TestRefundSale:

    def test_refund_requires_pin(self, owner_ctx, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product)

        with pytest.raises(PinRequiredError):
            sales_service.refund_sale(owner_ctx, sale.id, 5800)

    def test_cashier_cannot_refund(self, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product)

        with pytest.raises(PermissionDeniedError):
            sales_service.refund_sale(cashier_ctx, sale.id, 5800, pin=CASHIER_PIN)

    def test_pending_sale_cannot_be_refunded(self, owner_ctx, cashier_ctx, cashier_shift, product):
        sale = sales_service.create_sale(cashier_ctx, cashier_shift.id, [{"product_id": product.id, "quantity": 1}])

        with pytest.raises(InvalidStateError):
            sales_service.refund_sale(owner_ctx, sale.id, 100, pin=OWNER_PIN)

    def test_full_refund_restocks_and_flips_status(self, owner_ctx, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product, quantity=2)

        refunded = sales_service.refund_sale(owner_ctx, sale.id, sale.total_cents, pin=OWNER_PIN, reason="Defect")

        assert refunded.payment_status == "refunded"
        assert refunded.refunded_cents == 11600
        assert calculate_stock_from_movements(product.id) == 10
        returns = db.session.query(InventoryMovement).filter_by(sale_id=sale.id, type="devolucion").all()
        assert [m.quantity for m in returns] == [2]
        assert returns[0].reference == f"REFUND-{sale.id}"

    def test_refund_cannot_exceed_total(self, owner_ctx, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product)

        with pytest.raises(ValidationError):
            sales_service.refund_sale(owner_ctx, sale.id, 5801, pin=OWNER_PIN)

    def test_partial_refunds_accumulate(self, owner_ctx, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product, quantity=2)
        item_id = sale.items[0].id

        first = sales_service.refund_sale(
            owner_ctx, sale.id, 5800, pin=OWNER_PIN, items=[{"sale_item_id": item_id, "quantity": 1}],
        )
        assert first.payment_status == "completed"
        assert first.refunded_cents == 5800
        assert calculate_stock_from_movements(product.id) == 9

        with pytest.raises(ValidationError):
            sales_service.refund_sale(owner_ctx, sale.id, 5801, pin=OWNER_PIN)

        second = sales_service.refund_sale(owner_ctx, sale.id, 5800, pin=OWNER_PIN)
        assert second.payment_status == "refunded"
        # The remaining unit comes back exactly once
        assert calculate_stock_from_movements(product.id) == 10

    def test_partial_refund_without_items_moves_no_stock(self, owner_ctx, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product)

        sales_service.refund_sale(owner_ctx, sale.id, 1000, pin=OWNER_PIN)

        assert calculate_stock_from_movements(product.id) == 9

    def test_cannot_return_more_units_than_sold(self, owner_ctx, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product)

        with pytest.raises(ValidationError):
            sales_service.refund_sale(
                owner_ctx, sale.id, 1000, pin=OWNER_PIN,
                items=[{"sale_item_id": sale.items[0].id, "quantity": 2}],
            )

    def test_cash_refund_reduces_expected_cash(self, owner_ctx, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product)

        # Owner has no shift open, so the refund is booked on the sale's shift
        sales_service.refund_sale(owner_ctx, sale.id, 5800, pin=OWNER_PIN)

        summary = shift_service.close_shift(cashier_ctx, cashier_shift.id, 10000)
        assert summary["cash_refunds_cents"] == 5800
        assert summary["expected_cash_cents"] == 10000
        assert summary["difference_cents"] == 0

    def test_card_refund_leaves_drawer_alone(self, owner_ctx, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product)

        sales_service.refund_sale(owner_ctx, sale.id, 5800, pin=OWNER_PIN, method="card")

        summary = shift_service.calculate_shift_summary(cashier_shift.id)
        assert summary["refunds_cents"] == 5800
        assert summary["cash_refunds_cents"] == 0

    def test_refund_payment_is_negative(self, owner_ctx, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product)

        sales_service.refund_sale(owner_ctx, sale.id, 800, pin=OWNER_PIN)

        amounts = sorted(p.amount_cents for p in db.session.query(Payment).filter_by(sale_id=sale.id))
        assert amounts == [-800, 5800]


class TestSaleReports:

    def test_sales_report_counts_completed_only(self, owner_ctx, cashier_ctx, cashier_shift, product):
        _sell(cashier_ctx, cashier_shift, product)
        _sell(cashier_ctx, cashier_shift, product, quantity=2)
        sales_service.create_sale(cashier_ctx, cashier_shift.id, [{"product_id": product.id, "quantity": 1}])

        report = sales_service.get_sales_report(owner_ctx)

        assert report["total_sales"] == 2
        assert report["total_revenue_cents"] == 5800 + 11600
        assert report["total_tax_cents"] == 800 + 1600
        assert report["average_sale_cents"] == (5800 + 11600) // 2

    def test_cashier_cannot_read_sales_report(self, cashier_ctx):
        with pytest.raises(PermissionDeniedError):
            sales_service.get_sales_report(cashier_ctx)

    def test_tax_summary_splits_exempt_and_taxable(
        self, owner_ctx, cashier_ctx, cashier_shift, product, exempt_product
    ):
        sale = sales_service.create_sale(
            cashier_ctx, cashier_shift.id,
            [{"product_id": product.id, "quantity": 1}, {"product_id": exempt_product.id, "quantity": 1}],
        )
        sales_service.process_payment(cashier_ctx, sale.id, [{"method": "cash", "amount_cents": sale.total_cents}])

        summary = sales_service.get_tax_summary(owner_ctx)

        assert summary["total_tax_collected_cents"] == 800
        assert summary["tax_by_type"] == {"IVA": 800, "EXENTO": 0}
        assert summary["taxable_sales_cents"] == 5000
        assert summary["exempt_sales_cents"] == 2000

    def test_sale_summary_profit(self, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product, quantity=2)

        summary = sales_service.calculate_sale_summary(sale)

        assert summary["item_count"] == 2
        assert summary["cost_cents"] == 6000
        assert summary["profit_cents"] == 4000

    def test_sale_with_items(self, cashier_ctx, cashier_shift, product):
        sale, _ = _sell(cashier_ctx, cashier_shift, product)

        data = sales_service.get_sale_with_items(cashier_ctx, sale.id)

        assert data["fiscal_number"] == "VENTA-000001"
        assert len(data["items"]) == 1
        assert len(data["payments"]) == 1

    def test_recent_sales_newest_first(self, cashier_ctx, cashier_shift, product):
        first, _ = _sell(cashier_ctx, cashier_shift, product)
        second, _ = _sell(cashier_ctx, cashier_shift, product)

        recent = sales_service.get_recent_sales(cashier_ctx, limit=5)

        assert [s.id for s in recent][:2] == [second.id, first.id]
