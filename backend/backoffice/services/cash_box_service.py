"""
Cash Box Service - till sessions and cash accountability

WHY: Every sale's money lands in a cash box; closing a box compares the
counted cash with what the movements say should be there.

DESIGN PRINCIPLES:
- One open box system-wide (checked at open time and backed by the
  unique open_slot column)
- The open box is looked up on every call, never cached
- Movements are append-only; a closed box accepts none
- expected = opening + income - expenses - reversals
- difference = closing - expected (surplus > 0, shortage < 0), never an error
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CashBox, CashMovement
from ..errors import CashBoxAlreadyOpen, CashBoxClosed, CashBoxNotOpen, NotFound, ValidationError
from ..money import ZERO, to_money
from backoffice.time_utils import utcnow
from .concurrency import atomic, lock_for_update


def _coerce_amount(amount, field: str = "amount") -> Decimal:
    try:
        return to_money(amount)
    except ValueError:
        raise ValidationError(f"{field} must be a decimal amount")


# =============================================================================
# OPEN / CLOSE
# =============================================================================

def find_open_box() -> CashBox | None:
    """The currently open cash box, if any. Always hits the database."""
    return (
        db.session.query(CashBox)
        .filter(CashBox.closed_at.is_(None))
        .order_by(CashBox.opened_at.desc(), CashBox.id.desc())
        .first()
    )


def require_open_box() -> CashBox:
    box = find_open_box()
    if box is None:
        raise CashBoxNotOpen("A cash box must be opened before this operation")
    return box


def open_cash_box(user_id: int, opening_amount) -> CashBox:
    """
    Open the cash box.

    Raises:
        CashBoxAlreadyOpen: another box is open (also when a concurrent open
            wins the race and the unique open_slot rejects this insert)
        ValidationError: negative opening amount
    """
    opening = _coerce_amount(opening_amount, "opening_amount")
    if opening < 0:
        raise ValidationError("Opening amount cannot be negative")

    try:
        with atomic():
            existing = find_open_box()
            if existing is not None:
                raise CashBoxAlreadyOpen(
                    f"Cash box #{existing.id} is already open. Close it before opening a new one.",
                    details={"cash_box_id": existing.id},
                )

            box = CashBox(
                opened_by=user_id,
                opening_amount=opening,
                open_slot=1,
                opened_at=utcnow(),
            )
            db.session.add(box)
    except IntegrityError:
        raise CashBoxAlreadyOpen("Another cash box was opened concurrently")

    return box


def close_cash_box(box_id: int, user_id: int, closing_amount=None) -> CashBox:
    """
    Close a cash box.

    closing_amount defaults to the expected closing. A counted amount that
    differs from expected is accepted; the gap shows up as difference.

    IMMUTABLE: Once closed, the box cannot be reopened or modified.
    """
    with atomic():
        box = lock_for_update(db.session.query(CashBox).filter_by(id=box_id)).first()
        if box is None:
            raise NotFound(f"Cash box {box_id} not found")

        if not box.is_open():
            raise CashBoxClosed(f"Cash box #{box_id} is already closed")

        if closing_amount is None:
            final_amount = calculate_expected_closing(box_id)
        else:
            final_amount = _coerce_amount(closing_amount, "closing_amount")

        if final_amount < 0:
            raise ValidationError("Closing amount cannot be negative")

        box.closing_amount = final_amount
        box.closed_by = user_id
        box.closed_at = utcnow()
        box.open_slot = None

    return box


# =============================================================================
# MOVEMENTS
# =============================================================================

def _register_movement(
    movement_type: str,
    box_id: int,
    amount,
    description: str,
    user_id: int,
    sale_id: int | None,
    commit: bool,
) -> CashMovement:
    amount = _coerce_amount(amount)

    with atomic(commit=commit):
        # Re-read under lock: the box may have been closed since the caller found it
        box = lock_for_update(db.session.query(CashBox).filter_by(id=box_id)).first()
        if box is None:
            raise NotFound(f"Cash box {box_id} not found")

        if not box.is_open():
            raise CashBoxClosed(f"Cannot register movements on closed cash box #{box_id}")

        if amount <= 0:
            raise ValidationError("Amount must be greater than zero")

        movement = CashMovement(
            cash_box_id=box_id,
            sale_id=sale_id,
            user_id=user_id,
            type=movement_type,
            amount=amount,
            description=description,
            created_at=utcnow(),
        )
        db.session.add(movement)

    return movement


def register_income(
    box_id: int,
    amount,
    description: str,
    user_id: int,
    sale_id: int | None = None,
    *,
    commit: bool = True,
) -> CashMovement:
    return _register_movement(CashMovement.TYPE_INCOME, box_id, amount, description, user_id, sale_id, commit)


def register_expense(
    box_id: int,
    amount,
    description: str,
    user_id: int,
    *,
    commit: bool = True,
) -> CashMovement:
    return _register_movement(CashMovement.TYPE_EXPENSE, box_id, amount, description, user_id, None, commit)


def register_reversal(
    box_id: int,
    amount,
    description: str,
    user_id: int,
    sale_id: int,
    *,
    commit: bool = True,
) -> CashMovement:
    """Money handed back for an annulled or cancelled sale."""
    if sale_id is None:
        raise ValidationError("A reversal must reference the originating sale")
    return _register_movement(CashMovement.TYPE_REVERSAL, box_id, amount, description, user_id, sale_id, commit)


# =============================================================================
# BALANCES
# =============================================================================

def _movement_totals(box_id: int) -> dict[str, Decimal]:
    rows = (
        db.session.query(CashMovement.type, func.coalesce(func.sum(CashMovement.amount), 0))
        .filter(CashMovement.cash_box_id == box_id)
        .group_by(CashMovement.type)
        .all()
    )
    totals = {
        CashMovement.TYPE_INCOME: ZERO,
        CashMovement.TYPE_EXPENSE: ZERO,
        CashMovement.TYPE_REVERSAL: ZERO,
    }
    for movement_type, amount in rows:
        totals[movement_type] = to_money(amount)
    return totals


def calculate_expected_closing(box_id: int) -> Decimal:
    """opening + income - expenses - reversals"""
    box = db.session.get(CashBox, box_id)
    if box is None:
        raise NotFound(f"Cash box {box_id} not found")

    totals = _movement_totals(box_id)
    return to_money(
        to_money(box.opening_amount)
        + totals[CashMovement.TYPE_INCOME]
        - totals[CashMovement.TYPE_EXPENSE]
        - totals[CashMovement.TYPE_REVERSAL]
    )


def calculate_difference(box_id: int) -> Decimal | None:
    """closing - expected for a closed box (positive = surplus); None while open."""
    box = db.session.get(CashBox, box_id)
    if box is None:
        raise NotFound(f"Cash box {box_id} not found")
    if box.is_open() or box.closing_amount is None:
        return None
    return to_money(to_money(box.closing_amount) - calculate_expected_closing(box_id))


def sale_income_total(sale_id: int) -> Decimal:
    """Income registered for a sale, net of reversals already issued for it."""
    rows = (
        db.session.query(CashMovement.type, func.coalesce(func.sum(CashMovement.amount), 0))
        .filter(CashMovement.sale_id == sale_id)
        .group_by(CashMovement.type)
        .all()
    )
    by_type = {movement_type: to_money(amount) for movement_type, amount in rows}
    return to_money(
        by_type.get(CashMovement.TYPE_INCOME, ZERO) - by_type.get(CashMovement.TYPE_REVERSAL, ZERO)
    )


# =============================================================================
# REPORTING
# =============================================================================

def get_cash_box(box_id: int) -> CashBox:
    box = db.session.get(CashBox, box_id)
    if box is None:
        raise NotFound(f"Cash box {box_id} not found")
    return box


def get_cash_box_summary(box_id: int) -> dict:
    """
    Box details with movement totals, expected closing and difference.
    """
    box = get_cash_box(box_id)
    totals = _movement_totals(box_id)
    expected = calculate_expected_closing(box_id)
    difference = calculate_difference(box_id)

    income = totals[CashMovement.TYPE_INCOME]
    expenses = totals[CashMovement.TYPE_EXPENSE]
    reversals = totals[CashMovement.TYPE_REVERSAL]

    movements_count = db.session.query(func.count(CashMovement.id)).filter(
        CashMovement.cash_box_id == box_id
    ).scalar()

    return {
        "cash_box": box.to_dict(),
        "expected_closing": str(expected),
        "difference": str(difference) if difference is not None else None,
        "totals": {
            "income": str(income),
            "expenses": str(expenses),
            "reversals": str(reversals),
            "net": str(to_money(income - expenses - reversals)),
        },
        "movements_count": int(movements_count or 0),
    }


def list_movements(
    box_id: int,
    movement_type: str | None = None,
    user_id: int | None = None,
    has_sale: bool | None = None,
) -> list[CashMovement]:
    """Movements of a box, newest first."""
    q = db.session.query(CashMovement).filter(CashMovement.cash_box_id == box_id)
    if movement_type is not None:
        q = q.filter(CashMovement.type == movement_type)
    if user_id is not None:
        q = q.filter(CashMovement.user_id == user_id)
    if has_sale is True:
        q = q.filter(CashMovement.sale_id.isnot(None))
    elif has_sale is False:
        q = q.filter(CashMovement.sale_id.is_(None))
    return q.order_by(CashMovement.created_at.desc(), CashMovement.id.desc()).all()


def _day_bounds(date_from: date | None, date_to: date | None) -> tuple[datetime | None, datetime | None]:
    start = datetime.combine(date_from, time.min) if date_from else None
    end = datetime.combine(date_to, time.max) if date_to else None
    return start, end


def list_cash_boxes(
    status: str | None = None,
    opened_by: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[CashBox]:
    """Boxes, newest first. status is "open" or "closed"; dates are inclusive."""
    q = db.session.query(CashBox)
    if status == "open":
        q = q.filter(CashBox.closed_at.is_(None))
    elif status == "closed":
        q = q.filter(CashBox.closed_at.isnot(None))
    if opened_by is not None:
        q = q.filter(CashBox.opened_by == opened_by)

    start, end = _day_bounds(date_from, date_to)
    if start is not None:
        q = q.filter(CashBox.opened_at >= start)
    if end is not None:
        q = q.filter(CashBox.opened_at <= end)

    return q.order_by(CashBox.opened_at.desc(), CashBox.id.desc()).all()


def get_cash_box_stats(date_from: date | None = None, date_to: date | None = None) -> dict:
    """Aggregate counts and movement totals over boxes opened in the range."""
    boxes = list_cash_boxes(date_from=date_from, date_to=date_to)

    income = expenses = reversals = ZERO
    for box in boxes:
        totals = _movement_totals(box.id)
        income += totals[CashMovement.TYPE_INCOME]
        expenses += totals[CashMovement.TYPE_EXPENSE]
        reversals += totals[CashMovement.TYPE_REVERSAL]

    open_count = sum(1 for box in boxes if box.is_open())

    return {
        "total_cash_boxes": len(boxes),
        "open_cash_boxes": open_count,
        "closed_cash_boxes": len(boxes) - open_count,
        "total_income": str(to_money(income)),
        "total_expenses": str(to_money(expenses)),
        "total_reversals": str(to_money(reversals)),
        "net_amount": str(to_money(income - expenses - reversals)),
    }
