"""
Cash box ledger tests.

Verifies:
- Single open box system-wide
- expected = opening + income - expenses - reversals
- difference = closing - expected, sign preserved, never an error
- Closed boxes are immutable
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from backoffice.errors import CashBoxAlreadyOpen, CashBoxClosed, CashBoxNotOpen, NotFound, ValidationError
from backoffice.models import CashBox, CashMovement
from backoffice.services import cash_box_service

from conftest import ADMIN_ID, CASHIER_ID, completed_sale, stock


class TestOpenClose:

    def test_open(self, db_session):
        box = cash_box_service.open_cash_box(ADMIN_ID, "100.00")
        assert box.is_open()
        assert box.opening_amount == Decimal("100.00")
        assert cash_box_service.find_open_box().id == box.id

    def test_second_open_fails_and_creates_nothing(self, db_session, open_box):
        with pytest.raises(CashBoxAlreadyOpen):
            cash_box_service.open_cash_box(CASHIER_ID, "50.00")
        assert db_session.query(CashBox).count() == 1

    def test_concurrent_open_hits_unique_slot(self, db_session, open_box, monkeypatch):
        # Another request opened a box after this one checked for it
        monkeypatch.setattr(cash_box_service, "find_open_box", lambda: None)

        with pytest.raises(CashBoxAlreadyOpen):
            cash_box_service.open_cash_box(CASHIER_ID, "5.00")

        monkeypatch.undo()
        assert db_session.query(CashBox).count() == 1
        assert cash_box_service.find_open_box().id == open_box.id

    def test_negative_opening(self, db_session):
        with pytest.raises(ValidationError):
            cash_box_service.open_cash_box(ADMIN_ID, "-1.00")

    def test_close_defaults_to_expected(self, db_session, open_box):
        cash_box_service.register_income(open_box.id, "25.50", "Change fund", ADMIN_ID)

        box = cash_box_service.close_cash_box(open_box.id, CASHIER_ID)

        assert not box.is_open()
        assert box.closing_amount == Decimal("125.50")
        assert box.closed_by == CASHIER_ID
        assert cash_box_service.calculate_difference(box.id) == Decimal("0.00")
        assert cash_box_service.find_open_box() is None

    def test_new_box_after_close(self, db_session, open_box):
        cash_box_service.close_cash_box(open_box.id, ADMIN_ID)
        again = cash_box_service.open_cash_box(ADMIN_ID, "0")
        assert again.id != open_box.id

    def test_close_twice(self, db_session, open_box):
        cash_box_service.close_cash_box(open_box.id, ADMIN_ID)
        with pytest.raises(CashBoxClosed):
            cash_box_service.close_cash_box(open_box.id, ADMIN_ID)

    def test_negative_closing(self, db_session, open_box):
        with pytest.raises(ValidationError):
            cash_box_service.close_cash_box(open_box.id, ADMIN_ID, "-5")
        assert cash_box_service.get_cash_box(open_box.id).is_open()

    def test_require_open_box(self, db_session):
        with pytest.raises(CashBoxNotOpen):
            cash_box_service.require_open_box()


class TestMovements:

    def test_expected_closing_formula(self, db_session, open_box):
        cash_box_service.register_income(open_box.id, "40.00", "Other income", ADMIN_ID)
        cash_box_service.register_expense(open_box.id, "15.25", "Supplies", ADMIN_ID)

        assert cash_box_service.calculate_expected_closing(open_box.id) == Decimal("124.75")

    @pytest.mark.parametrize("counted,difference", [("130.00", "5.25"), ("120.00", "-4.75")])
    def test_difference_keeps_sign(self, db_session, open_box, counted, difference):
        cash_box_service.register_income(open_box.id, "40.00", "Other income", ADMIN_ID)
        cash_box_service.register_expense(open_box.id, "15.25", "Supplies", ADMIN_ID)

        cash_box_service.close_cash_box(open_box.id, ADMIN_ID, counted)

        assert cash_box_service.calculate_difference(open_box.id) == Decimal(difference)
        summary = cash_box_service.get_cash_box_summary(open_box.id)
        assert summary["difference"] == difference
        assert summary["expected_closing"] == "124.75"

    def test_difference_is_none_while_open(self, db_session, open_box):
        assert cash_box_service.calculate_difference(open_box.id) is None

    def test_closed_box_rejects_movements(self, db_session, open_box):
        cash_box_service.close_cash_box(open_box.id, ADMIN_ID)
        with pytest.raises(CashBoxClosed):
            cash_box_service.register_expense(open_box.id, "1.00", "Late", ADMIN_ID)
        assert db_session.query(CashMovement).count() == 0

    @pytest.mark.parametrize("amount", ["0", "-2.00"])
    def test_amount_must_be_positive(self, db_session, open_box, amount):
        with pytest.raises(ValidationError):
            cash_box_service.register_income(open_box.id, amount, "Nothing", ADMIN_ID)

    def test_reversal_requires_sale(self, db_session, open_box):
        with pytest.raises(ValidationError):
            cash_box_service.register_reversal(open_box.id, "1.00", "Refund", ADMIN_ID, None)

    def test_unknown_box(self, db_session):
        with pytest.raises(NotFound):
            cash_box_service.register_income(424242, "1.00", "x", ADMIN_ID)

    def test_list_movements_filters(self, db_session, open_box, product, no_tax):
        stock(product, 5)
        sale = completed_sale(product)
        cash_box_service.register_expense(open_box.id, "3.00", "Coffee", CASHIER_ID)

        with_sale = cash_box_service.list_movements(open_box.id, has_sale=True)
        assert [m.sale_id for m in with_sale] == [sale.id]

        by_cashier = cash_box_service.list_movements(open_box.id, user_id=CASHIER_ID)
        assert [m.type for m in by_cashier] == [CashMovement.TYPE_EXPENSE]

        assert cash_box_service.sale_income_total(sale.id) == Decimal("10.00")


class TestReporting:

    def test_list_and_stats(self, db_session, clock):
        first = cash_box_service.open_cash_box(ADMIN_ID, "50.00")
        cash_box_service.register_income(first.id, "10.00", "x", ADMIN_ID)
        cash_box_service.close_cash_box(first.id, ADMIN_ID)

        clock.advance(timedelta(days=1))
        second = cash_box_service.open_cash_box(CASHIER_ID, "20.00")
        cash_box_service.register_expense(second.id, "4.00", "y", CASHIER_ID)

        assert [b.id for b in cash_box_service.list_cash_boxes()] == [second.id, first.id]
        assert [b.id for b in cash_box_service.list_cash_boxes(status="open")] == [second.id]
        assert [b.id for b in cash_box_service.list_cash_boxes(opened_by=ADMIN_ID)] == [first.id]
        assert [b.id for b in cash_box_service.list_cash_boxes(date_from=date(2025, 1, 16))] == [second.id]

        stats = cash_box_service.get_cash_box_stats()
        assert stats["total_cash_boxes"] == 2
        assert stats["open_cash_boxes"] == 1
        assert stats["total_income"] == "10.00"
        assert stats["total_expenses"] == "4.00"
        assert stats["net_amount"] == "6.00"
