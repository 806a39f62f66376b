"""
Fiscal Service - electronic invoice (FEL) issuance and status changes

WHY: A completed sale can be invoiced once. The invoice is signed by an
external certifier; only a signed document is ever stored.

ISSUANCE ORDER:
1. Read the sale and build the invoice payload (read-only)
2. End that transaction, then call the certifier with no row locks held
3. Re-check the sale under lock and insert the authorized document

A certifier failure or timeout aborts before step 3, so no document row
exists for a failed signing.
"""

from __future__ import annotations

from datetime import date, datetime, time

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import FiscalDocument, Sale, SaleItem
from ..errors import ExternalServiceFailure, NotFound, StateConflict, ValidationError
from ..money import money_str, to_money
from backoffice.time_utils import utcnow
from .certifier import CertifiedDocument, CertifierError
from .concurrency import atomic, lock_for_update

GENERIC_CONSUMER = {
    "nit": "CF",
    "name": "Consumidor Final",
    "address": "Ciudad",
    "email": None,
}

SIGNER_FIELDS = ("uuid", "serie", "number", "signed_document", "pdf_ref")


def get_certifier():
    return current_app.extensions["certifier"]


def _load_sale(sale_id: int, *, lock: bool = False) -> Sale:
    query = db.session.query(Sale).filter_by(id=sale_id)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if sale is None:
        raise NotFound(f"Sale {sale_id} not found")
    return sale


def _load_document(document_id: int, *, lock: bool = False) -> FiscalDocument:
    query = db.session.query(FiscalDocument).filter_by(id=document_id)
    if lock:
        query = lock_for_update(query)
    document = query.first()
    if document is None:
        raise NotFound(f"Fiscal document {document_id} not found")
    return document


def _require_invoiceable(sale: Sale) -> None:
    if not sale.is_completed():
        raise StateConflict("Only completed sales can be invoiced", details={"status": sale.status})
    if get_fiscal_document_by_sale(sale.id) is not None:
        raise StateConflict(f"Sale #{sale.id} already has a fiscal document")


# =============================================================================
# PAYLOAD
# =============================================================================

def _seller_data() -> dict:
    cfg = current_app.config
    return {
        "nit": cfg["FEL_SELLER_NIT"],
        "name": cfg["FEL_SELLER_NAME"],
        "trade_name": cfg["FEL_SELLER_TRADE_NAME"],
        "address": cfg["FEL_SELLER_ADDRESS"],
        "postal_code": cfg["FEL_SELLER_POSTAL_CODE"],
        "department": cfg["FEL_SELLER_DEPARTMENT"],
        "municipality": cfg["FEL_SELLER_MUNICIPALITY"],
        "email": cfg["FEL_SELLER_EMAIL"],
    }


def _invoice_items(items: list[SaleItem]) -> list[dict]:
    return [
        {
            "line_number": index,
            "type": "B",  # B = goods, S = services
            "quantity": item.quantity,
            "unit": "UND",
            "description": f"{item.product.name} - {item.presentation.name}",
            "unit_price": money_str(item.unit_price),
            "discount": "0.00",
            "total": money_str(item.total),
        }
        for index, item in enumerate(items, start=1)
    ]


def generate_invoice_data(sale_id: int) -> dict:
    """
    Build the payload sent to the certifier.

    Seller data comes from configuration; the buyer is the generic final
    consumer ("CF").
    """
    sale = _load_sale(sale_id)
    _require_invoiceable(sale)

    items = db.session.query(SaleItem).filter_by(sale_id=sale.id).order_by(SaleItem.id).all()
    if not items:
        raise ValidationError(f"Sale #{sale.id} has no items to invoice")

    now = utcnow()
    return {
        "seller": _seller_data(),
        "buyer": dict(GENERIC_CONSUMER),
        "invoice": {
            "type": "FACT",
            "currency": current_app.config.get("CURRENCY", "GTQ"),
            "date": now.strftime("%Y-%m-%d"),
            "time": now.strftime("%H:%M:%S"),
        },
        "items": _invoice_items(items),
        "totals": {
            "subtotal": money_str(sale.subtotal),
            "tax": money_str(sale.tax),
            "total": money_str(sale.total),
        },
        "sale_id": sale.id,
        "sale_reference": f"SALE-{sale.id}",
    }


def validate_invoice_data(payload: dict) -> bool:
    for field in ("seller", "buyer", "invoice", "items", "totals"):
        if field not in payload:
            raise ValidationError(f"Missing required invoice field: {field}")

    if not payload["items"]:
        raise ValidationError("The invoice must have at least one item")

    try:
        total = to_money(payload["totals"].get("total"))
    except (ValueError, AttributeError):
        raise ValidationError("The invoice total is not a valid amount")
    if total <= 0:
        raise ValidationError("The invoice total must be greater than zero")

    return True


# =============================================================================
# ISSUANCE
# =============================================================================

def register_fiscal_document(
    sale_id: int,
    additional_signer_data: dict | None = None,
    *,
    certifier=None,
) -> FiscalDocument:
    """
    Certify a completed sale and store its authorized fiscal document.

    Args:
        sale_id: Completed, not yet invoiced sale
        additional_signer_data: Values overriding the certifier's answer
            (uuid, serie, number, signed_document, pdf_ref), e.g. when the
            document was certified out of band
        certifier: Overrides the app's configured certifier

    Raises:
        StateConflict: sale not completed or already invoiced
        ExternalServiceFailure: certifier failed or timed out (nothing stored)
    """
    certifier = certifier or get_certifier()

    payload = generate_invoice_data(sale_id)
    validate_invoice_data(payload)

    # End the read-only transaction: no locks are held during the network call
    db.session.rollback()

    try:
        signed: CertifiedDocument = certifier.sign(payload)
    except CertifierError as exc:
        current_app.logger.warning("Certifier failed for sale #%s: %s", sale_id, exc)
        raise ExternalServiceFailure(
            f"The certifier could not sign the invoice: {exc}",
            details={"sale_id": sale_id, "error_code": exc.error_code},
        ) from exc

    fields = {
        "uuid": signed.uuid,
        "serie": signed.serie,
        "number": signed.number,
        "signed_document": signed.signed_document,
        "pdf_ref": signed.pdf_ref,
    }
    for key, value in (additional_signer_data or {}).items():
        if key in SIGNER_FIELDS:
            fields[key] = value

    try:
        with atomic():
            sale = _load_sale(sale_id, lock=True)
            _require_invoiceable(sale)

            document = FiscalDocument(
                sale_id=sale.id,
                status=FiscalDocument.STATUS_AUTHORIZED,
                created_at=utcnow(),
                **fields,
            )
            db.session.add(document)
    except IntegrityError:
        raise StateConflict(f"Sale #{sale_id} already has a fiscal document")
    except StateConflict:
        current_app.logger.warning(
            "Sale #%s changed while being certified; signed document %s was not stored",
            sale_id,
            fields["uuid"],
        )
        raise

    current_app.logger.info("Fiscal document %s-%s authorized for sale #%s", fields["serie"], fields["number"], sale_id)
    return document


def mark_as_annulled(document_id: int, *, commit: bool = True) -> FiscalDocument:
    """Only authorized documents can be annulled."""
    with atomic(commit=commit):
        document = _load_document(document_id, lock=True)
        if document.is_annulled():
            raise StateConflict(f"Fiscal document #{document_id} is already annulled")
        if not document.is_authorized():
            raise StateConflict(
                f"Only authorized documents can be annulled (#{document_id} is {document.status})"
            )
        document.status = FiscalDocument.STATUS_ANNULLED
    return document


def mark_as_rejected(document_id: int, reason: str | None = None) -> FiscalDocument:
    with atomic():
        document = _load_document(document_id, lock=True)
        if document.is_annulled():
            raise StateConflict("An annulled fiscal document cannot be rejected")
        if document.is_rejected():
            raise StateConflict(f"Fiscal document #{document_id} is already rejected")

        document.status = FiscalDocument.STATUS_REJECTED
        document.rejection_reason = reason

    if reason:
        current_app.logger.warning("Fiscal document #%s rejected: %s", document_id, reason)
    return document


# =============================================================================
# QUERIES
# =============================================================================

def get_fiscal_document_by_sale(sale_id: int) -> FiscalDocument | None:
    return db.session.query(FiscalDocument).filter_by(sale_id=sale_id).first()


def get_fiscal_document_details(document_id: int) -> dict:
    document = _load_document(document_id)
    sale = db.session.get(Sale, document.sale_id)
    items_count = db.session.query(func.count(SaleItem.id)).filter(SaleItem.sale_id == sale.id).scalar()

    return {
        **document.to_dict(),
        "sale": {
            "id": sale.id,
            "status": sale.status,
            "total": money_str(sale.total),
            "user_id": sale.user_id,
            "items_count": int(items_count or 0),
        },
        "has_pdf": bool(document.pdf_ref),
        "has_xml": bool(document.signed_document),
    }


def _filtered_documents(date_from: date | None, date_to: date | None):
    q = db.session.query(FiscalDocument)
    if date_from is not None:
        q = q.filter(FiscalDocument.created_at >= datetime.combine(date_from, time.min))
    if date_to is not None:
        q = q.filter(FiscalDocument.created_at <= datetime.combine(date_to, time.max))
    return q


def list_fiscal_documents(
    status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    uuid: str | None = None,
) -> list[FiscalDocument]:
    q = _filtered_documents(date_from, date_to)
    if status is not None:
        q = q.filter(FiscalDocument.status == status)
    if uuid:
        q = q.filter(FiscalDocument.uuid.like(f"%{uuid}%"))
    return q.order_by(FiscalDocument.created_at.desc(), FiscalDocument.id.desc()).all()


def get_fiscal_document_stats(date_from: date | None = None, date_to: date | None = None) -> dict:
    rows = (
        _filtered_documents(date_from, date_to)
        .with_entities(FiscalDocument.status, func.count(FiscalDocument.id))
        .group_by(FiscalDocument.status)
        .all()
    )
    by_status = {status: count for status, count in rows}
    total = sum(by_status.values())
    authorized = by_status.get(FiscalDocument.STATUS_AUTHORIZED, 0)

    return {
        "total": total,
        "authorized": authorized,
        "annulled": by_status.get(FiscalDocument.STATUS_ANNULLED, 0),
        "rejected": by_status.get(FiscalDocument.STATUS_REJECTED, 0),
        "success_rate": round(authorized / total * 100, 2) if total else 0,
    }
