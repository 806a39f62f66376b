# Overview: Flask CLI command groups for bootstrap, inspection, and till operations.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (no-op for tables that exist). Use `flask db upgrade` in production.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask products create --name "Paracetamol 500mg" --barcode 7401234567890
# - python -m flask products add-presentation 1 --name "Box x10" --factor 10 --price 25.00
# - python -m flask products list [--active-only]
#
# Stock:
# - python -m flask stock add 1 --batch L-2025-01 --quantity 100 --expires 2025-06-30 --user-id 1
# - python -m flask stock batches 1
#   Batches with stock left, in FIFO consumption order.
# - python -m flask stock adjust 1 --batch-id 3 --quantity -2 --reason "Damaged" --user-id 1
#
# Cash box:
# - python -m flask cashbox status
# - python -m flask cashbox open --amount 100.00 --user-id 1
# - python -m flask cashbox close [--amount 148.50] --user-id 1

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import BackOfficeError
from .services import cash_box_service, inventory_service, products_service
from .time_utils import parse_iso_date


def _fail(exc: BackOfficeError):
    raise click.ClickException(exc.message)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('products')
def products_group():
    """Catalog commands."""


@products_group.command('create')
@click.option('--name', prompt=True)
@click.option('--barcode', default=None)
@click.option('--description', default=None)
@with_appcontext
def create_product_cli(name, barcode, description):
    try:
        product = products_service.create_product(name, barcode=barcode, description=description)
    except BackOfficeError as e:
        _fail(e)
    click.echo(f"PASS Created product: {product.name} (ID: {product.id})")


@products_group.command('add-presentation')
@click.argument('product_id', type=int)
@click.option('--name', required=True)
@click.option('--factor', type=int, default=1, show_default=True)
@click.option('--price', required=True)
@with_appcontext
def add_presentation_cli(product_id, name, factor, price):
    try:
        presentation = products_service.add_presentation(product_id, name, factor, price)
    except BackOfficeError as e:
        _fail(e)
    click.echo(
        f"PASS Added presentation {presentation.name} x{presentation.factor} "
        f"at {presentation.price} (ID: {presentation.id})"
    )


@products_group.command('list')
@click.option('--active-only', is_flag=True)
@with_appcontext
def list_products_cli(active_only):
    products = products_service.list_products(active_only=active_only)
    if not products:
        click.echo("No products found.")
        return

    click.echo(f"\n{'ID':<6} {'Name':<32} {'Barcode':<16} {'Stock':>8} {'Active':<6}")
    click.echo("-" * 72)
    for p in products:
        stock = inventory_service.get_available_stock(p.id)
        click.echo(f"{p.id:<6} {p.name[:32]:<32} {(p.barcode or '-'):<16} {stock:>8} {'yes' if p.is_active else 'no':<6}")


@click.group('stock')
def stock_group():
    """Batch stock commands."""


@stock_group.command('add')
@click.argument('product_id', type=int)
@click.option('--batch', 'batch_number', required=True)
@click.option('--quantity', type=int, required=True)
@click.option('--expires', default=None, help='Expiration date (YYYY-MM-DD)')
@click.option('--location', default=None)
@click.option('--user-id', type=int, required=True)
@with_appcontext
def add_stock_cli(product_id, batch_number, quantity, expires, location, user_id):
    try:
        expiration_date = parse_iso_date(expires)
    except ValueError:
        raise click.BadParameter("use YYYY-MM-DD", param_hint="--expires")

    try:
        batch = inventory_service.add_stock(
            product_id, batch_number, expiration_date, quantity, user_id, location=location
        )
    except BackOfficeError as e:
        _fail(e)
    click.echo(f"PASS Batch {batch.batch_number} now holds {batch.quantity_available} units (ID: {batch.id})")


@stock_group.command('batches')
@click.argument('product_id', type=int)
@with_appcontext
def list_batches_cli(product_id):
    """Batches with stock left, in FIFO order."""
    batches = inventory_service.get_batches_fifo(product_id)
    if not batches:
        click.echo("No stock.")
        return

    click.echo(f"\n{'ID':<6} {'Batch':<20} {'Expires':<12} {'Available':>10}")
    click.echo("-" * 52)
    for b in batches:
        expires = b.expiration_date.isoformat() if b.expiration_date else "-"
        click.echo(f"{b.id:<6} {b.batch_number:<20} {expires:<12} {b.quantity_available:>10}")
    click.echo(f"\nTotal available: {inventory_service.get_available_stock(product_id)}")


@stock_group.command('adjust')
@click.argument('product_id', type=int)
@click.option('--batch-id', type=int, required=True)
@click.option('--quantity', type=int, required=True, help='Negative to decrease')
@click.option('--reason', required=True)
@click.option('--user-id', type=int, required=True)
@with_appcontext
def adjust_stock_cli(product_id, batch_id, quantity, reason, user_id):
    try:
        inventory_service.adjust_stock(product_id, batch_id, quantity, user_id, reason)
    except BackOfficeError as e:
        _fail(e)
    click.echo(f"PASS Adjusted batch {batch_id} by {quantity:+d}")


@click.group('cashbox')
def cashbox_group():
    """Cash box commands."""


@cashbox_group.command('status')
@with_appcontext
def cashbox_status_cli():
    box = cash_box_service.find_open_box()
    if box is None:
        click.echo("No cash box is open.")
        return

    summary = cash_box_service.get_cash_box_summary(box.id)
    totals = summary["totals"]
    click.echo(f"Cash box #{box.id} open since {summary['cash_box']['opened_at']}")
    click.echo(f"  Opening:   {summary['cash_box']['opening_amount']}")
    click.echo(f"  Income:    {totals['income']}")
    click.echo(f"  Expenses:  {totals['expenses']}")
    click.echo(f"  Reversals: {totals['reversals']}")
    click.echo(f"  Expected:  {summary['expected_closing']}")


@cashbox_group.command('open')
@click.option('--amount', required=True)
@click.option('--user-id', type=int, required=True)
@with_appcontext
def cashbox_open_cli(amount, user_id):
    try:
        box = cash_box_service.open_cash_box(user_id, amount)
    except BackOfficeError as e:
        _fail(e)
    click.echo(f"PASS Opened cash box #{box.id} with {box.opening_amount}")


@cashbox_group.command('close')
@click.option('--amount', default=None, help='Counted cash; defaults to the expected amount')
@click.option('--user-id', type=int, required=True)
@with_appcontext
def cashbox_close_cli(amount, user_id):
    box = cash_box_service.find_open_box()
    if box is None:
        raise click.ClickException("No cash box is open.")

    try:
        cash_box_service.close_cash_box(box.id, user_id, amount)
    except BackOfficeError as e:
        _fail(e)

    summary = cash_box_service.get_cash_box_summary(box.id)
    click.echo(
        f"PASS Closed cash box #{box.id}: expected {summary['expected_closing']}, "
        f"counted {summary['cash_box']['closing_amount']}, difference {summary['difference']}"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(cashbox_group)
