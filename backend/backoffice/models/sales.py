from __future__ import annotations

from ..extensions import db
from ..money import money_str
from backoffice.time_utils import to_utc_z

class Sale(db.Model):
    """
    Sale document.

    LIFECYCLE:
    - pending: items may be added, changed or removed; totals follow items
    - completed: stock consumed, income registered in the open cash box
    - annulled: cancelled (pending/completed, no invoice) or annulled
      through the fiscal annulment process (completed, invoiced)

    No transition leaves completed/annulled except completed -> annulled.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    STATUS_PENDING = "pending"
    STATUS_COMPLETED = "completed"
    STATUS_ANNULLED = "annulled"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, nullable=False, index=True)
    cashier_id = db.Column(db.Integer, nullable=True)

    customer_name = db.Column(db.String(255), nullable=False, default="")
    customer_nit = db.Column(db.String(32), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    annulled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    items = db.relationship("SaleItem", backref="sale", lazy=True, order_by="SaleItem.id")
    fiscal_document = db.relationship("FiscalDocument", backref="sale", uselist=False, lazy=True)

    def is_pending(self) -> bool:
        return self.status == self.STATUS_PENDING

    def is_completed(self) -> bool:
        return self.status == self.STATUS_COMPLETED

    def is_annulled(self) -> bool:
        return self.status == self.STATUS_ANNULLED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "cashier_id": self.cashier_id,
            "customer_name": self.customer_name,
            "customer_nit": self.customer_nit,
            "status": self.status,
            "subtotal": money_str(self.subtotal),
            "tax": money_str(self.tax),
            "total": money_str(self.total),
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "annulled_at": to_utc_z(self.annulled_at) if self.annulled_at else None,
        }

class SaleItem(db.Model):
    """Line item; quantity is in presentation units, unit_price is a snapshot."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    presentation_id = db.Column(db.Integer, db.ForeignKey("product_presentations.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")
    presentation = db.relationship("ProductPresentation")

    def base_units_quantity(self) -> int:
        return self.presentation.to_base_units(self.quantity)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "presentation_id": self.presentation_id,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "total": money_str(self.total),
        }
