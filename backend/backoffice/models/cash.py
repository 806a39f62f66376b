from __future__ import annotations

from ..extensions import db
from ..money import money_str
from backoffice.time_utils import to_utc_z

class CashBox(db.Model):
    """
    Till session bounded by an open and a close event.

    SINGLE OPEN BOX: open_slot is 1 while the box is open and NULL once it
    is closed. The UNIQUE constraint lets any number of closed boxes exist
    (NULLs are distinct) but only one open one, even under concurrent opens.

    IMMUTABLE: Once closed, a box accepts no movements and is never reopened.
    """
    __tablename__ = "cash_boxes"
    __table_args__ = (
        db.UniqueConstraint("open_slot", name="uq_cash_boxes_single_open"),
        db.CheckConstraint("opening_amount >= 0", name="ck_cash_boxes_opening_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    opened_by = db.Column(db.Integer, nullable=False, index=True)
    closed_by = db.Column(db.Integer, nullable=True)

    opening_amount = db.Column(db.Numeric(12, 2), nullable=False)
    closing_amount = db.Column(db.Numeric(12, 2), nullable=True)  # Set once, at close

    open_slot = db.Column(db.SmallInteger, nullable=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    movements = db.relationship("CashMovement", backref="cash_box", lazy=True, order_by="CashMovement.id")

    def is_open(self) -> bool:
        return self.closed_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": "open" if self.is_open() else "closed",
            "opened_by": self.opened_by,
            "closed_by": self.closed_by,
            "opening_amount": money_str(self.opening_amount),
            "closing_amount": money_str(self.closing_amount) if self.closing_amount is not None else None,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
        }

class CashMovement(db.Model):
    """
    Cash ledger entry of a box.

    TYPES:
    - income: money in (sales, other income)
    - expense: money out
    - reversal: money returned for an annulled/cancelled sale

    amount is always positive; the type carries the sign.
    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "cash_movements"
    __table_args__ = (
        db.Index("ix_cash_movements_box_type", "cash_box_id", "type"),
        db.CheckConstraint("amount > 0", name="ck_cash_movements_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    TYPE_INCOME = "income"
    TYPE_EXPENSE = "expense"
    TYPE_REVERSAL = "reversal"

    id = db.Column(db.Integer, primary_key=True)
    cash_box_id = db.Column(db.Integer, db.ForeignKey("cash_boxes.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, nullable=False)

    type = db.Column(db.String(16), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    description = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cash_box_id": self.cash_box_id,
            "sale_id": self.sale_id,
            "user_id": self.user_id,
            "type": self.type,
            "amount": money_str(self.amount),
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }
