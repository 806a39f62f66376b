from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z

class FiscalDocument(db.Model):
    """
    Electronically signed invoice (FEL) issued for a completed sale.

    One per sale (sale_id is unique). Only written after the certifier
    signed it, so a row always holds the certifier's identifiers.

    LIFECYCLE:
    - pending: reserved for asynchronous certification
    - authorized: signed and valid
    - annulled: reversed through an annulment
    - rejected: refused by the tax authority after the fact
    """
    __tablename__ = "fiscal_documents"
    __table_args__ = (
        db.Index("ix_fiscal_documents_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    STATUS_PENDING = "pending"
    STATUS_AUTHORIZED = "authorized"
    STATUS_ANNULLED = "annulled"
    STATUS_REJECTED = "rejected"

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, unique=True)

    uuid = db.Column(db.String(64), nullable=False, index=True)
    serie = db.Column(db.String(32), nullable=False)
    number = db.Column(db.String(32), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)

    signed_document = db.Column(db.Text, nullable=True)
    pdf_ref = db.Column(db.String(255), nullable=True)
    rejection_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    annulment = db.relationship("Annulment", backref="fiscal_document", uselist=False, lazy=True)

    def is_authorized(self) -> bool:
        return self.status == self.STATUS_AUTHORIZED

    def is_annulled(self) -> bool:
        return self.status == self.STATUS_ANNULLED

    def is_rejected(self) -> bool:
        return self.status == self.STATUS_REJECTED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "uuid": self.uuid,
            "serie": self.serie,
            "number": self.number,
            "status": self.status,
            "pdf_ref": self.pdf_ref,
            "has_signed_document": bool(self.signed_document),
            "rejection_reason": self.rejection_reason,
            "created_at": to_utc_z(self.created_at),
        }

class Annulment(db.Model):
    """
    Annulment of a fiscal document and its sale.

    At most one per document (fiscal_document_id is unique); a rejected
    attempt keeps its row, so that document cannot be annulled again.
    """
    __tablename__ = "annulments"
    __table_args__ = {"sqlite_autoincrement": True}

    STATUS_PENDING = "pending"
    STATUS_APPROVED = "approved"
    STATUS_REJECTED = "rejected"

    id = db.Column(db.Integer, primary_key=True)
    fiscal_document_id = db.Column(db.Integer, db.ForeignKey("fiscal_documents.id"), nullable=False, unique=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)

    reason = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)
    failure_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "fiscal_document_id": self.fiscal_document_id,
            "user_id": self.user_id,
            "reason": self.reason,
            "status": self.status,
            "failure_reason": self.failure_reason,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
        }
