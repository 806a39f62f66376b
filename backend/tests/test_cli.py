"""CLI command tests (flask products / stock / cashbox)."""

from decimal import Decimal

import pytest

from backoffice.services import cash_box_service, inventory_service, products_service

from conftest import ADMIN_ID, stock


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def test_init_db(runner, db_session):
    result = runner.invoke(args=["system", "init-db"])
    assert result.exit_code == 0
    assert "PASS" in result.output


def test_product_create_and_list(runner, db_session):
    result = runner.invoke(args=["products", "create", "--name", "Loratadine 10mg", "--barcode", "7401000000009"])
    assert result.exit_code == 0, result.output

    product = products_service.list_products()[0]
    result = runner.invoke(args=["products", "add-presentation", str(product.id), "--name", "Unit", "--price", "3.50"])
    assert result.exit_code == 0, result.output
    assert products_service.get_product(product.id).presentations[0].price == Decimal("3.50")

    result = runner.invoke(args=["products", "list"])
    assert "Loratadine 10mg" in result.output


def test_stock_add_and_batches(runner, db_session, product):
    result = runner.invoke(args=[
        "stock", "add", str(product.id),
        "--batch", "L-77", "--quantity", "12", "--expires", "2025-09-30", "--user-id", str(ADMIN_ID),
    ])
    assert result.exit_code == 0, result.output
    assert inventory_service.get_available_stock(product.id) == 12

    result = runner.invoke(args=["stock", "batches", str(product.id)])
    assert "L-77" in result.output
    assert "Total available: 12" in result.output


def test_stock_add_bad_date(runner, db_session, product):
    result = runner.invoke(args=[
        "stock", "add", str(product.id),
        "--batch", "L-77", "--quantity", "12", "--expires", "30/09/2025", "--user-id", "1",
    ])
    assert result.exit_code != 0
    assert inventory_service.get_available_stock(product.id) == 0


def test_stock_adjust_beyond_available(runner, db_session, product):
    batch = stock(product, 2)
    result = runner.invoke(args=[
        "stock", "adjust", str(product.id),
        "--batch-id", str(batch.id), "--quantity=-5", "--reason", "Lost", "--user-id", "1",
    ])
    assert result.exit_code == 1
    assert "Not enough stock in the batch" in result.output


def test_cashbox_open_status_close(runner, db_session):
    result = runner.invoke(args=["cashbox", "open", "--amount", "100.00", "--user-id", "1"])
    assert result.exit_code == 0, result.output

    again = runner.invoke(args=["cashbox", "open", "--amount", "5", "--user-id", "1"])
    assert again.exit_code == 1
    assert "already open" in again.output

    status = runner.invoke(args=["cashbox", "status"])
    assert "Expected:  100.00" in status.output

    closed = runner.invoke(args=["cashbox", "close", "--amount", "101.00", "--user-id", "1"])
    assert closed.exit_code == 0, closed.output
    assert "difference 1.00" in closed.output
    assert cash_box_service.find_open_box() is None


def test_cashbox_close_without_open_box(runner, db_session):
    result = runner.invoke(args=["cashbox", "close", "--user-id", "1"])
    assert result.exit_code == 1
    assert "No cash box is open." in result.output
