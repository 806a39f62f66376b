from __future__ import annotations

from ..extensions import db
from ..money import money_str
from backoffice.time_utils import to_utc_z

class Product(db.Model):
    """
    Product master data.

    Stock is tracked in base units (the smallest sellable unit).
    Presentations convert to base units through their factor.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    barcode = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} active={self.is_active}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

class ProductPresentation(db.Model):
    """
    Sellable packaging of a product (unit, six-pack, box of 24...).

    factor: base units per presentation (>= 1)
    price: price of one presentation, 2-decimal fixed point
    """
    __tablename__ = "product_presentations"
    __table_args__ = (
        db.CheckConstraint("factor >= 1", name="ck_presentations_factor_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    name = db.Column(db.String(128), nullable=False)
    factor = db.Column(db.Integer, nullable=False, default=1)
    price = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("presentations", lazy=True))

    def to_base_units(self, quantity: int) -> int:
        return quantity * self.factor

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "factor": self.factor,
            "price": money_str(self.price),
        }
