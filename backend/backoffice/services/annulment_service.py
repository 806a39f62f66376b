"""
Annulment Service - reversing an invoiced sale across every ledger

WHY: An invoiced sale cannot simply be cancelled; the fiscal document has
to be annulled and every effect of the sale undone together.

SEQUENCE:
1. Preconditions: sale completed, authorized document, no prior annulment
2. Annulment row created as pending and committed (the attempt is kept)
3. Stock reverted -> document annulled -> sale annulled -> cash reversal
4. Approved on success; rejected with the failure reason otherwise

ANNULMENT_MODE decides how step 3 commits:
- atomic (default): one transaction, all or nothing
- compensating: every step commits on its own; a failure part-way leaves
  the earlier steps in place and the annulment rejected
"""

from __future__ import annotations

from datetime import date, datetime, time

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import Annulment, FiscalDocument, Sale
from ..errors import (
    AlreadyAnnulled,
    AlreadyHasAnnulment,
    BackOfficeError,
    DocumentNotAuthorized,
    MustBeCompletedFirst,
    NoFiscalDocument,
    NotFound,
    ValidationError,
)
from ..money import money_str
from backoffice.time_utils import utcnow
from . import cash_box_service, fiscal_service, inventory_service
from .concurrency import atomic, lock_for_update
from .sales_service import SALE_REFERENCE

MODE_ATOMIC = "atomic"
MODE_COMPENSATING = "compensating"

REASON_MAX_LENGTH = 255


def annulment_mode() -> str:
    mode = current_app.config.get("ANNULMENT_MODE", MODE_ATOMIC)
    if mode not in (MODE_ATOMIC, MODE_COMPENSATING):
        raise ValueError(f"Unknown ANNULMENT_MODE {mode!r}")
    return mode


def _load_sale(sale_id: int, *, lock: bool = False) -> Sale:
    query = db.session.query(Sale).filter_by(id=sale_id)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if sale is None:
        raise NotFound(f"Sale {sale_id} not found")
    return sale


def _check_annullable(sale: Sale) -> FiscalDocument:
    """Raise the first failing precondition; return the document to annul."""
    if sale.is_annulled():
        raise AlreadyAnnulled(f"Sale #{sale.id} is already annulled")
    if not sale.is_completed():
        raise MustBeCompletedFirst(
            f"Sale #{sale.id} is {sale.status}; only completed sales can be annulled"
        )

    document = fiscal_service.get_fiscal_document_by_sale(sale.id)
    if document is None:
        raise NoFiscalDocument(
            f"Sale #{sale.id} has no fiscal document. Cancel it instead of annulling."
        )

    existing = db.session.query(Annulment).filter_by(fiscal_document_id=document.id).first()
    if existing is not None:
        raise AlreadyHasAnnulment(
            f"Fiscal document #{document.id} already has an annulment ({existing.status})",
            details={"annulment_id": existing.id, "status": existing.status},
        )

    if not document.is_authorized():
        raise DocumentNotAuthorized(
            f"Fiscal document #{document.id} is {document.status}; only authorized documents can be annulled"
        )

    return document


# =============================================================================
# SAGA
# =============================================================================

def _create_pending(document: FiscalDocument, user_id: int, reason: str) -> Annulment:
    try:
        with atomic():
            annulment = Annulment(
                fiscal_document_id=document.id,
                user_id=user_id,
                reason=reason,
                status=Annulment.STATUS_PENDING,
                created_at=utcnow(),
            )
            db.session.add(annulment)
    except IntegrityError:
        raise AlreadyHasAnnulment(f"Fiscal document #{document.id} already has an annulment")
    return annulment


def _annul_sale_row(sale_id: int, *, commit: bool) -> Sale:
    with atomic(commit=commit):
        sale = _load_sale(sale_id, lock=True)
        if sale.is_annulled():
            raise AlreadyAnnulled(f"Sale #{sale.id} is already annulled")
        if not sale.is_completed():
            raise MustBeCompletedFirst(f"Sale #{sale.id} is {sale.status}")
        sale.status = Sale.STATUS_ANNULLED
        sale.annulled_at = utcnow()
    return sale


def _reverse_effects(sale_id: int, document_id: int, user_id: int, *, commit: bool) -> None:
    inventory_service.revert_by_reference(SALE_REFERENCE, sale_id, user_id, commit=commit)
    fiscal_service.mark_as_annulled(document_id, commit=commit)
    sale = _annul_sale_row(sale_id, commit=commit)

    box = cash_box_service.find_open_box()
    if box is not None and sale.total > 0:
        cash_box_service.register_reversal(
            box.id,
            sale.total,
            f"Annulment of sale #{sale_id}",
            user_id,
            sale_id=sale_id,
            commit=commit,
        )


def _approve(annulment_id: int, *, commit: bool) -> Annulment:
    with atomic(commit=commit):
        annulment = db.session.get(Annulment, annulment_id)
        annulment.status = Annulment.STATUS_APPROVED
        annulment.resolved_at = utcnow()
    return annulment


def _reject(annulment_id: int, exc: Exception) -> None:
    with atomic():
        annulment = db.session.get(Annulment, annulment_id)
        annulment.status = Annulment.STATUS_REJECTED
        annulment.failure_reason = str(exc)[:255] or exc.__class__.__name__
        annulment.resolved_at = utcnow()


def annul_sale(sale_id: int, user_id: int, reason: str) -> Annulment:
    """
    Annul an invoiced, completed sale.

    Raises:
        NotFound: sale missing
        AlreadyAnnulled / MustBeCompletedFirst: sale state
        NoFiscalDocument / AlreadyHasAnnulment / DocumentNotAuthorized
        ValidationError: blank or over-long reason
        Any error from the reversal steps, after the annulment is rejected
    """
    sale = _load_sale(sale_id)
    document = _check_annullable(sale)

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("An annulment reason is required")
    if len(reason) > REASON_MAX_LENGTH:
        raise ValidationError(f"The annulment reason cannot exceed {REASON_MAX_LENGTH} characters")

    mode = annulment_mode()
    annulment = _create_pending(document, user_id, reason)
    annulment_id = annulment.id
    document_id = document.id

    try:
        if mode == MODE_ATOMIC:
            with atomic():
                _reverse_effects(sale_id, document_id, user_id, commit=False)
                annulment = _approve(annulment_id, commit=False)
        else:
            _reverse_effects(sale_id, document_id, user_id, commit=True)
            annulment = _approve(annulment_id, commit=True)
    except Exception as exc:
        db.session.rollback()
        current_app.logger.warning(
            "Annulment #%s of sale #%s failed (%s mode): %s", annulment_id, sale_id, mode, exc
        )
        _reject(annulment_id, exc)
        raise

    current_app.logger.info("Sale #%s annulled by user %s (annulment #%s)", sale_id, user_id, annulment_id)
    return annulment


def can_annul_sale(sale_id: int) -> dict:
    """{"can_annul": bool, "reason": str | None}; never raises."""
    try:
        _check_annullable(_load_sale(sale_id))
    except BackOfficeError as exc:
        return {"can_annul": False, "reason": exc.message}
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Annulment check failed for sale #%s", sale_id)
        return {"can_annul": False, "reason": "The annulment check could not be completed"}
    return {"can_annul": True, "reason": None}


# =============================================================================
# QUERIES
# =============================================================================

def get_annulment(annulment_id: int) -> Annulment:
    annulment = db.session.get(Annulment, annulment_id)
    if annulment is None:
        raise NotFound(f"Annulment {annulment_id} not found")
    return annulment


def get_annulment_details(annulment_id: int) -> dict:
    annulment = get_annulment(annulment_id)
    document = db.session.get(FiscalDocument, annulment.fiscal_document_id)
    sale = db.session.get(Sale, document.sale_id)

    return {
        **annulment.to_dict(),
        "fiscal_document": {
            "id": document.id,
            "uuid": document.uuid,
            "serie": document.serie,
            "number": document.number,
            "status": document.status,
        },
        "sale": {
            "id": sale.id,
            "status": sale.status,
            "total": money_str(sale.total),
            "user_id": sale.user_id,
        },
    }


def list_annulments(
    status: str | None = None,
    user_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[Annulment]:
    """Annulments, newest first; dates are inclusive."""
    q = db.session.query(Annulment)
    if status is not None:
        q = q.filter(Annulment.status == status)
    if user_id is not None:
        q = q.filter(Annulment.user_id == user_id)
    if date_from is not None:
        q = q.filter(Annulment.created_at >= datetime.combine(date_from, time.min))
    if date_to is not None:
        q = q.filter(Annulment.created_at <= datetime.combine(date_to, time.max))
    return q.order_by(Annulment.created_at.desc(), Annulment.id.desc()).all()


def get_pending_annulments() -> list[Annulment]:
    return list_annulments(status=Annulment.STATUS_PENDING)


def get_annulment_stats(date_from: date | None = None, date_to: date | None = None) -> dict:
    q = db.session.query(Annulment.status, func.count(Annulment.id))
    if date_from is not None:
        q = q.filter(Annulment.created_at >= datetime.combine(date_from, time.min))
    if date_to is not None:
        q = q.filter(Annulment.created_at <= datetime.combine(date_to, time.max))
    by_status = dict(q.group_by(Annulment.status).all())

    total = sum(by_status.values())
    approved = by_status.get(Annulment.STATUS_APPROVED, 0)
    return {
        "total": total,
        "pending": by_status.get(Annulment.STATUS_PENDING, 0),
        "approved": approved,
        "rejected": by_status.get(Annulment.STATUS_REJECTED, 0),
        "approval_rate": round(approved / total * 100, 2) if total else 0,
    }
