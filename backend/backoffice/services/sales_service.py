"""
Sales Service - pending sale building, confirmation and cancellation

WHY: A sale is a document with a lifecycle. Items are edited freely while
pending; confirming it is the bridge to the stock and cash ledgers.

STATE MACHINE:
    pending -> completed -> annulled
    pending -> annulled            (cancel, never invoiced)

Confirmation is one transaction: stock for every item is consumed FIFO,
the sale is completed and the income lands in the open cash box. If any
item is short, nothing is consumed.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from flask import current_app

from ..extensions import db
from ..models import FiscalDocument, Product, Sale, SaleItem
from ..errors import (
    AlreadyAnnulled,
    CannotCancelInvoiced,
    InactiveProduct,
    InsufficientStock,
    InvalidQuantity,
    NotFound,
    StateConflict,
    ValidationError,
)
from ..money import ZERO, to_money
from backoffice.time_utils import utcnow
from . import cash_box_service, inventory_service
from .concurrency import atomic, lock_for_update, run_with_retry
from .products_service import get_presentation

SALE_REFERENCE = "sale"


def _load_sale(sale_id: int, *, lock: bool = False) -> Sale:
    query = db.session.query(Sale).filter_by(id=sale_id)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if sale is None:
        raise NotFound(f"Sale {sale_id} not found")
    return sale


def _load_item(item_id: int) -> SaleItem:
    item = db.session.get(SaleItem, item_id)
    if item is None:
        raise NotFound(f"Sale item {item_id} not found")
    return item


def _require_pending(sale: Sale, action: str) -> None:
    if not sale.is_pending():
        raise StateConflict(
            f"Cannot {action} a sale that is {sale.status}",
            details={"sale_id": sale.id, "status": sale.status},
        )


def _require_quantity(quantity) -> int:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise InvalidQuantity("Quantity must be greater than zero")
    return quantity


def _check_availability(product: Product, base_units: int) -> None:
    available = inventory_service.get_available_stock(product.id)
    if available >= base_units:
        return
    if available == 0:
        message = f"'{product.name}' is out of stock. Add stock before selling this product."
    else:
        message = (
            f"Insufficient stock of '{product.name}'. "
            f"Available: {available} units, requested: {base_units} units."
        )
    raise InsufficientStock(product.id, base_units, available, message=message)


def fiscal_document_for(sale_id: int) -> FiscalDocument | None:
    return db.session.query(FiscalDocument).filter_by(sale_id=sale_id).first()


def default_tax_rate() -> Decimal:
    return Decimal(str(current_app.config.get("DEFAULT_TAX_RATE", "0.12")))


def _apply_totals(sale: Sale, tax_rate: Decimal | None = None) -> Sale:
    rate = default_tax_rate() if tax_rate is None else Decimal(str(tax_rate))
    items = db.session.query(SaleItem).filter_by(sale_id=sale.id).all()

    subtotal = to_money(sum((to_money(item.total) for item in items), ZERO))
    tax = to_money(subtotal * rate)

    sale.subtotal = subtotal
    sale.tax = tax
    sale.total = to_money(subtotal + tax)
    return sale


# =============================================================================
# PENDING SALE EDITING
# =============================================================================

def create_sale(
    user_id: int,
    cashier_id: int | None = None,
    customer_name: str = "",
    customer_nit: str | None = None,
) -> Sale:
    """Create a pending sale with zero totals. cashier_id defaults to user_id."""
    with atomic():
        sale = Sale(
            user_id=user_id,
            cashier_id=cashier_id if cashier_id is not None else user_id,
            customer_name=customer_name or "",
            customer_nit=customer_nit,
            status=Sale.STATUS_PENDING,
            subtotal=ZERO,
            tax=ZERO,
            total=ZERO,
            created_at=utcnow(),
        )
        db.session.add(sale)
    return sale


def add_item(sale_id: int, product_id: int, presentation_id: int, quantity: int) -> SaleItem:
    """
    Add a line to a pending sale.

    Stock is only pre-checked here (in base units); it is consumed on
    confirmation. A failed check leaves the sale untouched.
    """
    def _op():
        with atomic():
            sale = _load_sale(sale_id, lock=True)
            _require_pending(sale, "add items to")

            product = db.session.get(Product, product_id)
            if product is None:
                raise NotFound(f"Product {product_id} not found")
            if not product.is_active:
                raise InactiveProduct(f"Product '{product.name}' is inactive")

            presentation = get_presentation(product_id, presentation_id)
            _require_quantity(quantity)

            _check_availability(product, presentation.to_base_units(quantity))

            unit_price = to_money(presentation.price)
            item = SaleItem(
                sale_id=sale.id,
                product_id=product_id,
                presentation_id=presentation.id,
                quantity=quantity,
                unit_price=unit_price,
                total=to_money(unit_price * quantity),
                created_at=utcnow(),
            )
            db.session.add(item)
            db.session.flush()

            _apply_totals(sale)
        return item

    return run_with_retry(_op)


def update_item(item_id: int, quantity: int) -> SaleItem:
    """Change a line's quantity; the unit price snapshot is kept."""
    def _op():
        with atomic():
            item = _load_item(item_id)
            sale = _load_sale(item.sale_id, lock=True)
            _require_pending(sale, "modify items of")
            _require_quantity(quantity)

            _check_availability(item.product, item.presentation.to_base_units(quantity))

            item.quantity = quantity
            item.total = to_money(to_money(item.unit_price) * quantity)
            db.session.flush()

            _apply_totals(sale)
        return item

    return run_with_retry(_op)


def remove_item(item_id: int) -> Sale:
    def _op():
        with atomic():
            item = _load_item(item_id)
            sale = _load_sale(item.sale_id, lock=True)
            _require_pending(sale, "remove items from")

            db.session.delete(item)
            db.session.flush()

            _apply_totals(sale)
        return sale

    return run_with_retry(_op)


def recalculate_totals(sale_id: int, tax_rate=None) -> Sale:
    """
    subtotal = sum(item.total); tax = subtotal * rate (rounded to cents);
    total = subtotal + tax. Rate defaults to DEFAULT_TAX_RATE.
    """
    if tax_rate is not None:
        try:
            tax_rate = Decimal(str(tax_rate))
        except InvalidOperation:
            raise ValidationError("Tax rate must be a decimal number")
        if not tax_rate.is_finite() or tax_rate < 0:
            raise ValidationError("Tax rate cannot be negative")

    with atomic():
        sale = _load_sale(sale_id, lock=True)
        _require_pending(sale, "recalculate totals of")
        _apply_totals(sale, tax_rate)
    return sale


# =============================================================================
# CONFIRM / CANCEL
# =============================================================================

def confirm_sale(sale_id: int) -> Sale:
    """
    Confirm a pending sale.

    Consumes stock FIFO for every item (reference ("sale", id)), completes
    the sale and registers the total as income in the open cash box, all
    in one transaction.

    Raises:
        CashBoxNotOpen: no cash box is open
        StateConflict: sale is not pending
        ValidationError: sale has no items
        InsufficientStock: any item is short (no item's stock is consumed)
    """
    def _op():
        with atomic():
            sale = _load_sale(sale_id, lock=True)

            box = cash_box_service.require_open_box()

            _require_pending(sale, "confirm")

            items = db.session.query(SaleItem).filter_by(sale_id=sale.id).order_by(SaleItem.id).all()
            if not items:
                raise ValidationError("Cannot confirm a sale without items")

            for item in items:
                inventory_service.consume_fifo(
                    item.product_id,
                    item.base_units_quantity(),
                    reference=(SALE_REFERENCE, sale.id),
                    user_id=sale.user_id,
                    commit=False,
                )

            sale.status = Sale.STATUS_COMPLETED
            sale.completed_at = utcnow()

            if sale.total > 0:
                cash_box_service.register_income(
                    box.id,
                    sale.total,
                    f"Sale #{sale.id}",
                    sale.user_id,
                    sale_id=sale.id,
                    commit=False,
                )
        return sale

    return run_with_retry(_op)


def cancel_sale(sale_id: int, user_id: int | None = None) -> Sale:
    """
    Cancel a sale that was never invoiced.

    A completed sale gets its stock back. If income was registered for it
    and a cash box is open, a matching reversal is registered too, so
    cancel and annulment leave the cash ledger the same way.

    Raises:
        AlreadyAnnulled: sale is already annulled
        CannotCancelInvoiced: sale has a fiscal document (use annulment)
    """
    def _op():
        with atomic():
            sale = _load_sale(sale_id, lock=True)
            actor_id = user_id if user_id is not None else sale.user_id

            if sale.is_annulled():
                raise AlreadyAnnulled(f"Sale #{sale.id} is already annulled")

            if fiscal_document_for(sale.id) is not None:
                raise CannotCancelInvoiced(
                    f"Sale #{sale.id} has been invoiced. Use the annulment process instead."
                )

            if sale.is_completed():
                inventory_service.revert_by_reference(
                    SALE_REFERENCE, sale.id, actor_id, commit=False
                )

                refundable = cash_box_service.sale_income_total(sale.id)
                box = cash_box_service.find_open_box()
                if refundable > 0 and box is not None:
                    cash_box_service.register_reversal(
                        box.id,
                        refundable,
                        f"Cancellation of sale #{sale.id}",
                        actor_id,
                        sale_id=sale.id,
                        commit=False,
                    )

            sale.status = Sale.STATUS_ANNULLED
            sale.annulled_at = utcnow()
        return sale

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    return _load_sale(sale_id)


def get_sale_summary(sale_id: int) -> dict:
    sale = _load_sale(sale_id)
    items = db.session.query(SaleItem).filter_by(sale_id=sale.id).order_by(SaleItem.id).all()

    return {
        **sale.to_dict(),
        "items_count": len(items),
        "items": [
            {
                **item.to_dict(),
                "product": item.product.name,
                "presentation": item.presentation.name,
                "base_units": item.base_units_quantity(),
            }
            for item in items
        ],
        "has_fiscal_document": fiscal_document_for(sale.id) is not None,
    }


def get_pending_sales() -> list[Sale]:
    """Pending sales, newest first."""
    return (
        db.session.query(Sale)
        .filter(Sale.status == Sale.STATUS_PENDING)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .all()
    )
