# Overview: Stock ledger; batches per product, FIFO consumption and reversal.

# backend/backoffice/services/inventory_service.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from sqlalchemy import case, func
from sqlalchemy.orm import aliased

from ..extensions import db
from ..models import Product, StockBatch, StockMovement
from ..errors import InactiveProduct, InsufficientStock, InvalidQuantity, NotFound, NothingToRevert, ValidationError
from backoffice.time_utils import utcnow
from .concurrency import atomic, lock_for_update
"""
Stock Ledger Invariants (authoritative)

Batches:
- A batch is identified by (product_id, batch_number) and never deleted.
- quantity_available >= 0 at all times; it MAY exceed quantity_initial.

Movements:
- Every change to quantity_available appends exactly one StockMovement
  in the same DB transaction.
- quantity is stored positive, direction carries the sign, so for each
  batch: quantity_available == SUM(direction * quantity).

FIFO-by-expiration:
- Consumption order: expiration_date ASC with NULLs last, then created_at,
  then id. Earliest-expiring stock leaves first.
- Consumption is all-or-nothing: if the product's batches together cannot
  cover the request, nothing is decremented.
- Batches touched by a consumption are row-locked for the duration.

Reversal:
- A reversal re-credits the batch of one specific out movement and links
  to it (reverses_movement_id, unique). An out movement can be reversed
  at most once; re-reverting a reference finds nothing and fails.
"""


@dataclass(frozen=True)
class ConsumedBatch:
    batch_id: int
    batch_number: str
    quantity: int
    expiration_date: date | None

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "batch_number": self.batch_number,
            "quantity": self.quantity,
            "expiration_date": self.expiration_date.isoformat() if self.expiration_date else None,
        }


def _require_positive_int(quantity, message: str) -> int:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise InvalidQuantity(message)
    return quantity


def _ensure_product(product_id: int, *, require_active: bool = False) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFound(f"Product {product_id} not found")
    if require_active and not product.is_active:
        raise InactiveProduct(f"Product '{product.name}' is inactive and cannot receive stock")
    return product


def _fifo_order():
    # NULLS LAST spelled portably (SQLite < 3.30 has no NULLS LAST)
    return (
        case((StockBatch.expiration_date.is_(None), 1), else_=0),
        StockBatch.expiration_date.asc(),
        StockBatch.created_at.asc(),
        StockBatch.id.asc(),
    )


def _append_movement(
    *,
    batch: StockBatch,
    movement_type: str,
    quantity: int,
    direction: int,
    user_id: int | None,
    reference_type: str | None,
    reference_id: int | None,
    notes: str | None,
    reverses_movement_id: int | None = None,
) -> StockMovement:
    movement = StockMovement(
        product_id=batch.product_id,
        stock_batch_id=batch.id,
        user_id=user_id,
        type=movement_type,
        quantity=quantity,
        direction=direction,
        reference_type=reference_type,
        reference_id=reference_id,
        reverses_movement_id=reverses_movement_id,
        notes=notes,
        created_at=utcnow(),
    )
    db.session.add(movement)
    return movement


def add_stock(
    product_id: int,
    batch_number: str,
    expiration_date: date | None,
    quantity: int,
    user_id: int | None,
    location: str | None = None,
    *,
    commit: bool = True,
) -> StockBatch:
    """
    Receive stock into a batch.

    Upserts by (product_id, batch_number): an existing batch has its
    available quantity incremented (its expiration/location are kept),
    otherwise a batch is created with initial == available == quantity.

    Raises:
        NotFound: product missing
        InactiveProduct: product is inactive
        InvalidQuantity: quantity <= 0
    """
    batch_number = (batch_number or "").strip()
    if not batch_number:
        raise ValidationError("batch_number is required")

    with atomic(commit=commit):
        _ensure_product(product_id, require_active=True)
        _require_positive_int(quantity, "Quantity must be greater than zero")

        batch = lock_for_update(
            db.session.query(StockBatch).filter_by(product_id=product_id, batch_number=batch_number)
        ).first()

        if batch is not None:
            batch.quantity_available += quantity
        else:
            batch = StockBatch(
                product_id=product_id,
                batch_number=batch_number,
                expiration_date=expiration_date,
                location=location,
                quantity_initial=quantity,
                quantity_available=quantity,
                created_at=utcnow(),
            )
            db.session.add(batch)
            db.session.flush()

        _append_movement(
            batch=batch,
            movement_type=StockMovement.TYPE_IN,
            quantity=quantity,
            direction=1,
            user_id=user_id,
            reference_type="stock_entry",
            reference_id=batch.id,
            notes=f"Stock entry - batch {batch_number}",
        )

    return batch


def consume_fifo(
    product_id: int,
    quantity: int,
    reference: tuple[str, int],
    user_id: int | None = None,
    *,
    commit: bool = True,
) -> list[ConsumedBatch]:
    """
    Consume stock FIFO-by-expiration.

    One out movement is written per batch touched (not per unit), all
    tagged with the shared reference, e.g. ("sale", 42).

    Raises:
        InvalidQuantity: quantity <= 0
        InsufficientStock: the product's batches together hold less than
            quantity; no batch is modified in that case
    """
    reference_type, reference_id = reference

    with atomic(commit=commit):
        _ensure_product(product_id)
        _require_positive_int(quantity, "Quantity to consume must be greater than zero")

        batches = lock_for_update(
            db.session.query(StockBatch)
            .filter(StockBatch.product_id == product_id, StockBatch.quantity_available > 0)
            .order_by(*_fifo_order())
        ).all()

        total_available = sum(b.quantity_available for b in batches)
        if total_available < quantity:
            raise InsufficientStock(product_id, quantity, total_available)

        remaining = quantity
        consumed: list[ConsumedBatch] = []

        for batch in batches:
            if remaining <= 0:
                break

            take = min(remaining, batch.quantity_available)
            batch.quantity_available -= take

            _append_movement(
                batch=batch,
                movement_type=StockMovement.TYPE_OUT,
                quantity=take,
                direction=-1,
                user_id=user_id,
                reference_type=reference_type,
                reference_id=reference_id,
                notes=f"FIFO consumption - {reference_type} #{reference_id}",
            )

            consumed.append(ConsumedBatch(
                batch_id=batch.id,
                batch_number=batch.batch_number,
                quantity=take,
                expiration_date=batch.expiration_date,
            ))
            remaining -= take

    return consumed


def revert_by_reference(
    reference_type: str,
    reference_id: int,
    user_id: int | None,
    *,
    commit: bool = True,
) -> int:
    """
    Undo every not-yet-reverted out movement of a reference.

    Each original out movement gets its own reversal movement on the same
    batch, so multi-batch consumptions are restored batch by batch.

    Returns:
        Number of movements reversed

    Raises:
        NothingToRevert: no unreverted out movement exists for the reference
            (never consumed, or already reverted)
    """
    with atomic(commit=commit):
        reversal = aliased(StockMovement)
        movements = (
            db.session.query(StockMovement)
            .outerjoin(reversal, reversal.reverses_movement_id == StockMovement.id)
            .filter(
                StockMovement.reference_type == reference_type,
                StockMovement.reference_id == reference_id,
                StockMovement.type == StockMovement.TYPE_OUT,
                reversal.id.is_(None),
            )
            .order_by(StockMovement.id.asc())
            .all()
        )

        if not movements:
            raise NothingToRevert(
                f"No stock movements to revert for {reference_type} #{reference_id}",
                details={"reference_type": reference_type, "reference_id": reference_id},
            )

        batch_ids = sorted({m.stock_batch_id for m in movements})
        batches = {
            b.id: b
            for b in lock_for_update(
                db.session.query(StockBatch).filter(StockBatch.id.in_(batch_ids)).order_by(StockBatch.id)
            ).all()
        }

        for movement in movements:
            batch = batches[movement.stock_batch_id]
            batch.quantity_available += movement.quantity

            _append_movement(
                batch=batch,
                movement_type=StockMovement.TYPE_REVERSAL,
                quantity=movement.quantity,
                direction=1,
                user_id=user_id,
                reference_type=reference_type,
                reference_id=reference_id,
                reverses_movement_id=movement.id,
                notes=f"Reversal of {reference_type} #{reference_id} - movement #{movement.id}",
            )

    return len(movements)


def adjust_stock(
    product_id: int,
    batch_id: int,
    quantity: int,
    user_id: int | None,
    reason: str,
    *,
    commit: bool = True,
) -> StockMovement:
    """
    Manual inventory correction on one batch.

    Positive quantity increases, negative decreases. The movement stores
    the absolute quantity; its direction records which way it went.

    Raises:
        InvalidQuantity: quantity == 0
        InsufficientStock: decrease larger than the batch's available stock
        NotFound: batch missing or not a batch of the product
    """
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity == 0:
        raise InvalidQuantity("Adjustment quantity cannot be zero")

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("An adjustment reason is required")

    with atomic(commit=commit):
        batch = lock_for_update(
            db.session.query(StockBatch).filter_by(id=batch_id, product_id=product_id)
        ).first()
        if batch is None:
            raise NotFound(f"Batch {batch_id} not found for product {product_id}")

        if quantity < 0 and batch.quantity_available < abs(quantity):
            raise InsufficientStock(
                product_id,
                abs(quantity),
                batch.quantity_available,
                message="Not enough stock in the batch for this negative adjustment",
            )

        batch.quantity_available += quantity

        movement = _append_movement(
            batch=batch,
            movement_type=StockMovement.TYPE_ADJUSTMENT,
            quantity=abs(quantity),
            direction=1 if quantity > 0 else -1,
            user_id=user_id,
            reference_type="adjustment",
            reference_id=None,
            notes=f"Inventory adjustment: {reason}",
        )

    return movement


def get_available_stock(product_id: int) -> int:
    """Sum of quantity_available across every batch of the product."""
    q = db.session.query(
        func.coalesce(func.sum(StockBatch.quantity_available), 0)
    ).filter(StockBatch.product_id == product_id)
    return int(q.scalar() or 0)


def has_sufficient_stock(product_id: int, quantity: int) -> bool:
    return get_available_stock(product_id) >= quantity


def get_batches_fifo(product_id: int) -> list[StockBatch]:
    """Batches with stock left, in the order consume_fifo would drain them."""
    return (
        db.session.query(StockBatch)
        .filter(StockBatch.product_id == product_id, StockBatch.quantity_available > 0)
        .order_by(*_fifo_order())
        .all()
    )


def get_batch_balance(batch_id: int) -> int:
    """Signed movement sum of a batch; equals quantity_available when consistent."""
    q = db.session.query(
        func.coalesce(func.sum(StockMovement.direction * StockMovement.quantity), 0)
    ).filter(StockMovement.stock_batch_id == batch_id)
    return int(q.scalar() or 0)


def list_movements(
    product_id: int | None = None,
    batch_id: int | None = None,
    reference: tuple[str, int] | None = None,
) -> list[StockMovement]:
    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if batch_id is not None:
        q = q.filter(StockMovement.stock_batch_id == batch_id)
    if reference is not None:
        q = q.filter(
            StockMovement.reference_type == reference[0],
            StockMovement.reference_id == reference[1],
        )
    return q.order_by(StockMovement.id.asc()).all()
