# backend/backoffice/services/products_service.py
"""
Catalog service: products and their sellable presentations.

Stock is always counted in base units; a presentation's factor converts
presentation quantities to base units.
"""
from __future__ import annotations

from ..extensions import db
from ..models import Product, ProductPresentation
from ..errors import NotFound, ValidationError
from ..money import to_money
from .concurrency import atomic


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = query.with_for_update()
    product = query.first()
    if product is None:
        raise NotFound(f"Product {product_id} not found")
    return product


def list_products(active_only: bool = False) -> list[Product]:
    query = db.session.query(Product)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def create_product(
    name: str,
    barcode: str | None = None,
    description: str | None = None,
    active: bool = True,
) -> Product:
    """Create a product. Barcodes are optional but unique when present."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Product name is required")

    barcode = (barcode or "").strip() or None

    with atomic():
        if barcode is not None:
            existing = db.session.query(Product).filter_by(barcode=barcode).first()
            if existing:
                raise ValidationError(f"Barcode '{barcode}' already belongs to product {existing.id}")

        product = Product(
            name=name,
            barcode=barcode,
            description=description,
            is_active=active,
        )
        db.session.add(product)

    return product


def set_product_active(product_id: int, active: bool) -> Product:
    """Activate/deactivate a product. Inactive products cannot receive stock or be sold."""
    with atomic():
        product = get_product(product_id, lock=True)
        product.is_active = bool(active)
    return product


def add_presentation(product_id: int, name: str, factor: int, price) -> ProductPresentation:
    """
    Add a sellable presentation to a product.

    Args:
        product_id: Product the presentation belongs to
        name: Display name ("Unit", "Box x24")
        factor: Base units per presentation (>= 1)
        price: Price of one presentation (>= 0, 2 decimals)
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Presentation name is required")

    if not isinstance(factor, int) or isinstance(factor, bool) or factor < 1:
        raise ValidationError("Presentation factor must be an integer >= 1")

    try:
        price = to_money(price)
    except ValueError as exc:
        raise ValidationError(str(exc))
    if price < 0:
        raise ValidationError("Presentation price cannot be negative")

    with atomic():
        get_product(product_id)
        presentation = ProductPresentation(
            product_id=product_id,
            name=name,
            factor=factor,
            price=price,
        )
        db.session.add(presentation)

    return presentation


def get_presentation(product_id: int, presentation_id: int) -> ProductPresentation:
    """Presentation lookup that also proves it belongs to the product."""
    presentation = db.session.query(ProductPresentation).filter_by(
        id=presentation_id,
        product_id=product_id,
    ).first()
    if presentation is None:
        raise NotFound(f"Presentation {presentation_id} not found for product {product_id}")
    return presentation
