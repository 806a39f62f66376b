# Overview: Flask API routes for fiscal documents (FEL); parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import BackOfficeError
from ..services import fiscal_service
from ..decorators import require_actor, require_capability
from .common import date_arg, error_response, internal_error, json_body


fiscal_bp = Blueprint("fiscal", __name__, url_prefix="/api/fiscal-documents")


@fiscal_bp.post("/sales/<int:sale_id>")
@require_actor
@require_capability("ISSUE_INVOICE")
def issue_invoice_route(sale_id: int):
    """
    Certify a completed sale and store its fiscal document.

    Request body (optional): {"signer_data": {"uuid": "...", "serie": "...", ...}}
    Returns 502 when the certifier fails; nothing is stored in that case.
    """
    try:
        data = json_body()
        document = fiscal_service.register_fiscal_document(sale_id, data.get("signer_data"))
        return jsonify({"fiscal_document": document.to_dict()}), 201

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to issue fiscal document")
        return internal_error()


@fiscal_bp.get("/sales/<int:sale_id>")
@require_actor
def document_for_sale_route(sale_id: int):
    document = fiscal_service.get_fiscal_document_by_sale(sale_id)
    if document is None:
        return jsonify({"error": f"Sale #{sale_id} has no fiscal document"}), 404
    return jsonify({"fiscal_document": document.to_dict()}), 200


@fiscal_bp.get("/<int:document_id>")
@require_actor
def get_document_route(document_id: int):
    try:
        return jsonify({"fiscal_document": fiscal_service.get_fiscal_document_details(document_id)}), 200
    except BackOfficeError as e:
        return error_response(e)


@fiscal_bp.post("/<int:document_id>/reject")
@require_actor
@require_capability("MANAGE_FISCAL_DOCUMENTS")
def reject_document_route(document_id: int):
    """Request body (optional): {"reason": "Rejected by the tax authority"}"""
    try:
        data = json_body()
        document = fiscal_service.mark_as_rejected(document_id, data.get("reason"))
        return jsonify({"fiscal_document": document.to_dict()}), 200

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reject fiscal document")
        return internal_error()


@fiscal_bp.get("/")
@fiscal_bp.get("")
@require_actor
@require_capability("VIEW_REPORTS")
def list_documents_route():
    try:
        documents = fiscal_service.list_fiscal_documents(
            status=request.args.get("status"),
            date_from=date_arg("date_from"),
            date_to=date_arg("date_to"),
            uuid=request.args.get("uuid"),
        )
        return jsonify({"fiscal_documents": [d.to_dict() for d in documents]}), 200
    except BackOfficeError as e:
        return error_response(e)


@fiscal_bp.get("/stats")
@require_actor
@require_capability("VIEW_REPORTS")
def stats_route():
    try:
        stats = fiscal_service.get_fiscal_document_stats(date_arg("date_from"), date_arg("date_to"))
        return jsonify({"stats": stats}), 200
    except BackOfficeError as e:
        return error_response(e)
