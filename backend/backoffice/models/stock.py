from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z

class StockBatch(db.Model):
    """
    A received lot of one product.

    WHY: Consumption is FIFO by expiration date, so stock must be tracked
    per batch rather than as a single product counter.

    LIFECYCLE: created on the first stock-in for (product, batch_number),
    incremented on later stock-ins for the same pair, mutated by
    consumption, reversal and adjustment. Never deleted.

    quantity_available may legitimately exceed quantity_initial
    (reversals and positive adjustments).
    """
    __tablename__ = "stock_batches"
    __table_args__ = (
        db.UniqueConstraint("product_id", "batch_number", name="uq_stock_batches_product_batch"),
        # FIFO scan: product, then expiration
        db.Index("ix_stock_batches_product_expiration", "product_id", "expiration_date"),
        db.CheckConstraint("quantity_available >= 0", name="ck_stock_batches_available_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    batch_number = db.Column(db.String(64), nullable=False)
    expiration_date = db.Column(db.Date, nullable=True)
    location = db.Column(db.String(128), nullable=True)

    quantity_initial = db.Column(db.Integer, nullable=False, default=0)
    quantity_available = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("stock_batches", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "batch_number": self.batch_number,
            "expiration_date": self.expiration_date.isoformat() if self.expiration_date else None,
            "location": self.location,
            "quantity_initial": self.quantity_initial,
            "quantity_available": self.quantity_available,
            "created_at": to_utc_z(self.created_at),
        }

class StockMovement(db.Model):
    """
    Append-only stock ledger.

    TYPES:
    - in: stock entry (direction +1)
    - out: FIFO consumption (direction -1)
    - reversal: undoes one out movement (direction +1)
    - adjustment: manual correction (direction +1 or -1)

    quantity is always positive; direction carries the sign, so for every
    batch quantity_available == SUM(direction * quantity).

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        db.Index("ix_stock_movements_batch_created", "stock_batch_id", "created_at"),
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    TYPE_IN = "in"
    TYPE_OUT = "out"
    TYPE_REVERSAL = "reversal"
    TYPE_ADJUSTMENT = "adjustment"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    stock_batch_id = db.Column(db.Integer, db.ForeignKey("stock_batches.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    direction = db.Column(db.SmallInteger, nullable=False)

    # What caused the movement, e.g. ("sale", 42)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    # Set on reversal rows: the out movement being undone
    reverses_movement_id = db.Column(
        db.Integer, db.ForeignKey("stock_movements.id"), nullable=True, unique=True
    )

    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    batch = db.relationship("StockBatch", backref=db.backref("movements", lazy=True))

    @property
    def signed_quantity(self) -> int:
        return self.direction * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "stock_batch_id": self.stock_batch_id,
            "user_id": self.user_id,
            "type": self.type,
            "quantity": self.quantity,
            "signed_quantity": self.signed_quantity,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "reverses_movement_id": self.reverses_movement_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
