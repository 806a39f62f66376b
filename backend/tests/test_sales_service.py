"""
Sale ledger tests.

Verifies:
- Pending sale editing keeps totals in sync (tax rounded to cents)
- Availability is pre-checked in base units
- Confirmation consumes stock and registers income atomically
- Cancellation rules (invoiced sales must be annulled instead)
"""

from decimal import Decimal

import pytest

from backoffice.errors import (
    AlreadyAnnulled,
    CannotCancelInvoiced,
    CashBoxNotOpen,
    InactiveProduct,
    InsufficientStock,
    InvalidQuantity,
    NotFound,
    StateConflict,
    ValidationError,
)
from backoffice.models import CashMovement, Sale, SaleItem, StockMovement
from backoffice.services import cash_box_service, fiscal_service, inventory_service, products_service, sales_service

from conftest import ADMIN_ID, completed_sale, presentation_of, stock


# =============================================================================
# PENDING SALE EDITING
# =============================================================================


class TestPendingSale:

    def test_create_defaults(self, db_session):
        sale = sales_service.create_sale(ADMIN_ID)
        assert sale.status == Sale.STATUS_PENDING
        assert sale.cashier_id == ADMIN_ID
        assert sale.total == Decimal("0.00")

    def test_add_item_snapshots_price_and_updates_totals(self, db_session, product):
        stock(product, 50)
        sale = sales_service.create_sale(ADMIN_ID)

        item = sales_service.add_item(sale.id, product.id, presentation_of(product, "Box x10").id, 2)

        assert item.unit_price == Decimal("90.00")
        assert item.total == Decimal("180.00")
        sale = sales_service.get_sale(sale.id)
        assert sale.subtotal == Decimal("180.00")
        assert sale.tax == Decimal("21.60")
        assert sale.total == Decimal("201.60")

    def test_tax_rounds_half_up(self, db_session, other_product):
        stock(other_product, 50)
        sale = sales_service.create_sale(ADMIN_ID)
        # 5.00 * 0.125 = 0.625 -> 0.63
        sales_service.add_item(sale.id, other_product.id, presentation_of(other_product).id, 1)
        sale = sales_service.recalculate_totals(sale.id, tax_rate="0.125")
        assert sale.tax == Decimal("0.63")
        assert sale.total == Decimal("5.63")

    def test_price_change_does_not_touch_existing_items(self, db_session, product):
        stock(product, 50)
        sale = sales_service.create_sale(ADMIN_ID)
        unit = presentation_of(product)
        item = sales_service.add_item(sale.id, product.id, unit.id, 1)

        unit.price = Decimal("99.00")
        db_session.commit()
        item = sales_service.update_item(item.id, 3)

        assert item.unit_price == Decimal("10.00")
        assert item.total == Decimal("30.00")

    def test_availability_checked_in_base_units(self, db_session, product):
        stock(product, 15)
        sale = sales_service.create_sale(ADMIN_ID)

        with pytest.raises(InsufficientStock) as exc_info:
            sales_service.add_item(sale.id, product.id, presentation_of(product, "Box x10").id, 2)

        assert exc_info.value.required == 20
        assert exc_info.value.available == 15
        assert db_session.query(SaleItem).count() == 0

    def test_inactive_product_rejected(self, db_session, product):
        stock(product, 5)
        products_service.set_product_active(product.id, False)
        sale = sales_service.create_sale(ADMIN_ID)
        with pytest.raises(InactiveProduct):
            sales_service.add_item(sale.id, product.id, presentation_of(product).id, 1)

    def test_presentation_must_belong_to_product(self, db_session, product, other_product):
        stock(product, 5)
        sale = sales_service.create_sale(ADMIN_ID)
        with pytest.raises(NotFound):
            sales_service.add_item(sale.id, product.id, presentation_of(other_product).id, 1)

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_quantity_must_be_positive(self, db_session, product, quantity):
        stock(product, 5)
        sale = sales_service.create_sale(ADMIN_ID)
        with pytest.raises(InvalidQuantity):
            sales_service.add_item(sale.id, product.id, presentation_of(product).id, quantity)

    def test_remove_item_recalculates(self, db_session, product, no_tax):
        stock(product, 5)
        sale = sales_service.create_sale(ADMIN_ID)
        first = sales_service.add_item(sale.id, product.id, presentation_of(product).id, 1)
        sales_service.add_item(sale.id, product.id, presentation_of(product).id, 2)

        sale = sales_service.remove_item(first.id)

        assert sale.total == Decimal("20.00")
        assert sales_service.get_sale_summary(sale.id)["items_count"] == 1

    def test_completed_sale_is_not_editable(self, db_session, product, open_box):
        stock(product, 5)
        sale = completed_sale(product)
        item = db_session.query(SaleItem).filter_by(sale_id=sale.id).first()

        with pytest.raises(StateConflict):
            sales_service.add_item(sale.id, product.id, presentation_of(product).id, 1)
        with pytest.raises(StateConflict):
            sales_service.update_item(item.id, 2)
        with pytest.raises(StateConflict):
            sales_service.remove_item(item.id)
        with pytest.raises(StateConflict):
            sales_service.recalculate_totals(sale.id)


# =============================================================================
# CONFIRMATION
# =============================================================================


class TestConfirmSale:

    def test_consumes_stock_and_registers_income(self, db_session, product, open_box):
        stock(product, 30)
        sale = sales_service.create_sale(ADMIN_ID)
        sales_service.add_item(sale.id, product.id, presentation_of(product, "Box x10").id, 2)

        sale = sales_service.confirm_sale(sale.id)

        assert sale.status == Sale.STATUS_COMPLETED
        assert sale.completed_at is not None
        assert inventory_service.get_available_stock(product.id) == 10

        outs = inventory_service.list_movements(reference=("sale", sale.id))
        assert sum(m.quantity for m in outs if m.type == StockMovement.TYPE_OUT) == 20

        income = cash_box_service.list_movements(open_box.id, movement_type=CashMovement.TYPE_INCOME)
        assert len(income) == 1
        assert income[0].amount == sale.total
        assert income[0].sale_id == sale.id
        assert income[0].description == f"Sale #{sale.id}"

    def test_requires_open_box(self, db_session, product):
        stock(product, 5)
        sale = sales_service.create_sale(ADMIN_ID)
        sales_service.add_item(sale.id, product.id, presentation_of(product).id, 1)

        with pytest.raises(CashBoxNotOpen):
            sales_service.confirm_sale(sale.id)

        assert sales_service.get_sale(sale.id).status == Sale.STATUS_PENDING
        assert inventory_service.get_available_stock(product.id) == 5

    def test_requires_items(self, db_session, open_box):
        sale = sales_service.create_sale(ADMIN_ID)
        with pytest.raises(ValidationError):
            sales_service.confirm_sale(sale.id)

    def test_confirming_twice(self, db_session, product, open_box):
        stock(product, 5)
        sale = completed_sale(product)
        with pytest.raises(StateConflict):
            sales_service.confirm_sale(sale.id)

    def test_short_second_item_leaves_first_unconsumed(self, db_session, product, other_product, open_box):
        stock(product, 10)
        stock(other_product, 5)
        sale = sales_service.create_sale(ADMIN_ID)
        sales_service.add_item(sale.id, product.id, presentation_of(product).id, 4)
        sales_service.add_item(sale.id, other_product.id, presentation_of(other_product).id, 5)

        # Stock leaves between adding the item and confirming
        batch = inventory_service.get_batches_fifo(other_product.id)[0]
        inventory_service.adjust_stock(other_product.id, batch.id, -3, ADMIN_ID, "Breakage")

        with pytest.raises(InsufficientStock):
            sales_service.confirm_sale(sale.id)

        assert inventory_service.get_available_stock(product.id) == 10
        assert inventory_service.list_movements(reference=("sale", sale.id)) == []
        assert sales_service.get_sale(sale.id).status == Sale.STATUS_PENDING
        assert cash_box_service.list_movements(open_box.id) == []


# =============================================================================
# CANCELLATION
# =============================================================================


class TestCancelSale:

    def test_cancel_pending(self, db_session):
        sale = sales_service.create_sale(ADMIN_ID)
        sale = sales_service.cancel_sale(sale.id)
        assert sale.status == Sale.STATUS_ANNULLED
        assert sale.annulled_at is not None

    def test_cancel_completed_returns_stock_and_cash(self, db_session, product, open_box, no_tax):
        stock(product, 10)
        sale = completed_sale(product, quantity=3)

        sales_service.cancel_sale(sale.id, user_id=ADMIN_ID)

        assert inventory_service.get_available_stock(product.id) == 10
        reversals = cash_box_service.list_movements(open_box.id, movement_type=CashMovement.TYPE_REVERSAL)
        assert [r.amount for r in reversals] == [Decimal("30.00")]
        assert cash_box_service.calculate_expected_closing(open_box.id) == Decimal("100.00")

    def test_cancel_twice(self, db_session):
        sale = sales_service.create_sale(ADMIN_ID)
        sales_service.cancel_sale(sale.id)
        with pytest.raises(AlreadyAnnulled):
            sales_service.cancel_sale(sale.id)

    def test_invoiced_sale_cannot_be_cancelled(self, db_session, product, open_box):
        stock(product, 10)
        sale = completed_sale(product)
        fiscal_service.register_fiscal_document(sale.id)

        with pytest.raises(CannotCancelInvoiced):
            sales_service.cancel_sale(sale.id)

        assert sales_service.get_sale(sale.id).status == Sale.STATUS_COMPLETED
        assert inventory_service.get_available_stock(product.id) == 9


class TestSaleQueries:

    def test_pending_sales_newest_first(self, db_session):
        older = sales_service.create_sale(ADMIN_ID)
        newer = sales_service.create_sale(ADMIN_ID)
        done = sales_service.create_sale(ADMIN_ID)
        sales_service.cancel_sale(done.id)

        assert [s.id for s in sales_service.get_pending_sales()] == [newer.id, older.id]

    def test_summary(self, db_session, product):
        stock(product, 10)
        sale = sales_service.create_sale(ADMIN_ID)
        sales_service.add_item(sale.id, product.id, presentation_of(product, "Box x10").id, 1)

        summary = sales_service.get_sale_summary(sale.id)

        assert summary["items"][0]["base_units"] == 10
        assert summary["items"][0]["presentation"] == "Box x10"
        assert summary["has_fiscal_document"] is False
