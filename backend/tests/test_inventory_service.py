"""
Stock ledger tests.

Verifies:
- Batch upsert on receive, with an in movement per receipt
- FIFO-by-expiration consumption (nulls last, creation order on ties)
- All-or-nothing consumption
- Reversal restores the exact per-batch quantities, once
- Movements reconcile with quantity_available for every batch
"""

from datetime import date, timedelta

import pytest

from backoffice.errors import InactiveProduct, InsufficientStock, InvalidQuantity, NotFound, NothingToRevert, ValidationError
from backoffice.models import StockBatch, StockMovement
from backoffice.services import inventory_service, products_service

from conftest import ADMIN_ID, stock


def _batch(db_session, batch_id):
    return db_session.get(StockBatch, batch_id)


def _assert_reconciled(db_session, product_id):
    for batch in db_session.query(StockBatch).filter_by(product_id=product_id):
        assert batch.quantity_available == inventory_service.get_batch_balance(batch.id)


# =============================================================================
# RECEIVING
# =============================================================================


class TestAddStock:

    def test_creates_batch_with_initial_equal_available(self, db_session, product):
        batch = stock(product, 25, "L-001", date(2025, 6, 30))

        assert batch.quantity_initial == 25
        assert batch.quantity_available == 25
        assert batch.expiration_date == date(2025, 6, 30)

        movements = inventory_service.list_movements(batch_id=batch.id)
        assert len(movements) == 1
        assert movements[0].type == StockMovement.TYPE_IN
        assert movements[0].reference_type == "stock_entry"
        assert movements[0].reference_id == batch.id

    def test_existing_batch_is_topped_up(self, db_session, product):
        first = stock(product, 10, "L-001", date(2025, 6, 30))
        again = stock(product, 5, "L-001", date(2026, 1, 1))

        assert again.id == first.id
        assert again.quantity_available == 15
        assert again.quantity_initial == 10
        # Expiration of an existing batch is kept
        assert again.expiration_date == date(2025, 6, 30)
        assert len(inventory_service.list_movements(batch_id=first.id)) == 2
        _assert_reconciled(db_session, product.id)

    def test_rejects_inactive_product(self, db_session, product):
        products_service.set_product_active(product.id, False)
        with pytest.raises(InactiveProduct):
            stock(product, 5)
        assert db_session.query(StockBatch).count() == 0

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_rejects_non_positive_quantity(self, db_session, product, quantity):
        with pytest.raises(InvalidQuantity):
            stock(product, quantity)

    def test_rejects_missing_product(self, db_session):
        with pytest.raises(NotFound):
            inventory_service.add_stock(999999, "L-1", None, 5, ADMIN_ID)

    def test_requires_batch_number(self, db_session, product):
        with pytest.raises(ValidationError):
            inventory_service.add_stock(product.id, "  ", None, 5, ADMIN_ID)


# =============================================================================
# FIFO CONSUMPTION
# =============================================================================


class TestConsumeFifo:

    def test_earliest_expiration_first_across_batches(self, db_session, product):
        # Received out of expiration order on purpose
        b = stock(product, 10, "B", date(2025, 6, 1))
        a = stock(product, 10, "A", date(2025, 1, 1))

        consumed = inventory_service.consume_fifo(product.id, 15, reference=("sale", 1), user_id=ADMIN_ID)

        assert [(c.batch_number, c.quantity) for c in consumed] == [("A", 10), ("B", 5)]
        assert _batch(db_session, a.id).quantity_available == 0
        assert _batch(db_session, b.id).quantity_available == 5

        outs = inventory_service.list_movements(reference=("sale", 1))
        assert len(outs) == 2
        assert all(m.type == StockMovement.TYPE_OUT for m in outs)
        _assert_reconciled(db_session, product.id)

    def test_batches_without_expiration_go_last_in_creation_order(self, db_session, product, clock):
        no_exp_old = stock(product, 3, "N1", None)
        clock.advance(timedelta(minutes=1))
        no_exp_new = stock(product, 3, "N2", None)
        clock.advance(timedelta(minutes=1))
        dated = stock(product, 3, "D1", date(2030, 1, 1))

        order = [b.id for b in inventory_service.get_batches_fifo(product.id)]
        assert order == [dated.id, no_exp_old.id, no_exp_new.id]

        consumed = inventory_service.consume_fifo(product.id, 5, reference=("sale", 7))
        assert [c.batch_id for c in consumed] == [dated.id, no_exp_old.id]

    def test_over_request_changes_nothing(self, db_session, product):
        a = stock(product, 4, "A", date(2025, 1, 1))
        b = stock(product, 4, "B", date(2025, 2, 1))

        with pytest.raises(InsufficientStock) as exc_info:
            inventory_service.consume_fifo(product.id, 9, reference=("sale", 2))

        assert exc_info.value.required == 9
        assert exc_info.value.available == 8
        assert _batch(db_session, a.id).quantity_available == 4
        assert _batch(db_session, b.id).quantity_available == 4
        assert inventory_service.list_movements(reference=("sale", 2)) == []

    def test_rejects_zero(self, db_session, product):
        stock(product, 4)
        with pytest.raises(InvalidQuantity):
            inventory_service.consume_fifo(product.id, 0, reference=("sale", 3))

    def test_available_stock_sums_batches(self, db_session, product):
        stock(product, 4, "A")
        stock(product, 6, "B")
        assert inventory_service.get_available_stock(product.id) == 10
        assert inventory_service.has_sufficient_stock(product.id, 10)
        assert not inventory_service.has_sufficient_stock(product.id, 11)


# =============================================================================
# REVERSAL
# =============================================================================


class TestRevertByReference:

    def test_restores_exact_per_batch_quantities(self, db_session, product):
        a = stock(product, 10, "A", date(2025, 1, 1))
        b = stock(product, 10, "B", date(2025, 6, 1))
        inventory_service.consume_fifo(product.id, 15, reference=("sale", 11))

        reverted = inventory_service.revert_by_reference("sale", 11, ADMIN_ID)

        assert reverted == 2
        assert _batch(db_session, a.id).quantity_available == 10
        assert _batch(db_session, b.id).quantity_available == 10

        reversals = [
            m for m in inventory_service.list_movements(reference=("sale", 11))
            if m.type == StockMovement.TYPE_REVERSAL
        ]
        assert len(reversals) == 2
        assert all(m.reverses_movement_id is not None for m in reversals)
        _assert_reconciled(db_session, product.id)

    def test_second_revert_fails_without_crediting(self, db_session, product):
        a = stock(product, 10, "A")
        inventory_service.consume_fifo(product.id, 6, reference=("sale", 12))
        inventory_service.revert_by_reference("sale", 12, ADMIN_ID)

        with pytest.raises(NothingToRevert):
            inventory_service.revert_by_reference("sale", 12, ADMIN_ID)

        assert _batch(db_session, a.id).quantity_available == 10

    def test_unknown_reference(self, db_session, product):
        with pytest.raises(NothingToRevert):
            inventory_service.revert_by_reference("sale", 404, ADMIN_ID)


# =============================================================================
# ADJUSTMENTS
# =============================================================================


class TestAdjustStock:

    def test_decrease_reconciles(self, db_session, product):
        batch = stock(product, 10, "A")

        movement = inventory_service.adjust_stock(product.id, batch.id, -3, ADMIN_ID, "Damaged")

        assert movement.type == StockMovement.TYPE_ADJUSTMENT
        assert movement.quantity == 3
        assert movement.direction == -1
        assert _batch(db_session, batch.id).quantity_available == 7
        _assert_reconciled(db_session, product.id)

    def test_increase(self, db_session, product):
        batch = stock(product, 10, "A")
        inventory_service.adjust_stock(product.id, batch.id, 5, ADMIN_ID, "Count correction")
        assert _batch(db_session, batch.id).quantity_available == 15
        _assert_reconciled(db_session, product.id)

    def test_decrease_beyond_available(self, db_session, product):
        batch = stock(product, 2, "A")
        with pytest.raises(InsufficientStock):
            inventory_service.adjust_stock(product.id, batch.id, -3, ADMIN_ID, "Lost")
        assert _batch(db_session, batch.id).quantity_available == 2

    def test_zero_and_blank_reason(self, db_session, product):
        batch = stock(product, 2, "A")
        with pytest.raises(InvalidQuantity):
            inventory_service.adjust_stock(product.id, batch.id, 0, ADMIN_ID, "x")
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(product.id, batch.id, 1, ADMIN_ID, "  ")

    def test_batch_of_another_product(self, db_session, product, other_product):
        batch = stock(other_product, 2, "A")
        with pytest.raises(NotFound):
            inventory_service.adjust_stock(product.id, batch.id, 1, ADMIN_ID, "x")
