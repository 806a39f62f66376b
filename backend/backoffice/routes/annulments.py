# Overview: Flask API routes for annulling invoiced sales; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import BackOfficeError
from ..services import annulment_service
from ..decorators import require_actor, require_capability
from .common import bad_request, date_arg, error_response, internal_error, json_body


annulments_bp = Blueprint("annulments", __name__, url_prefix="/api/annulments")


@annulments_bp.post("/sales/<int:sale_id>")
@require_actor
@require_capability("ANNUL_SALE")
def annul_sale_route(sale_id: int):
    """
    Annul an invoiced sale: stock back, document and sale annulled, cash
    reversal on the open box.

    Request body: {"reason": "Customer returned the goods"}
    """
    try:
        data = json_body()
        if not (data.get("reason") or "").strip():
            return bad_request("reason required")

        annulment = annulment_service.annul_sale(sale_id, g.actor_id, data["reason"])
        return jsonify({"annulment": annulment.to_dict()}), 201

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to annul sale")
        return internal_error()


@annulments_bp.get("/sales/<int:sale_id>/check")
@require_actor
def can_annul_route(sale_id: int):
    return jsonify(annulment_service.can_annul_sale(sale_id)), 200


@annulments_bp.get("/pending")
@require_actor
@require_capability("VIEW_REPORTS")
def pending_route():
    annulments = annulment_service.get_pending_annulments()
    return jsonify({"annulments": [a.to_dict() for a in annulments]}), 200


@annulments_bp.get("/stats")
@require_actor
@require_capability("VIEW_REPORTS")
def stats_route():
    try:
        stats = annulment_service.get_annulment_stats(date_arg("date_from"), date_arg("date_to"))
        return jsonify({"stats": stats}), 200
    except BackOfficeError as e:
        return error_response(e)


@annulments_bp.get("/<int:annulment_id>")
@require_actor
def get_annulment_route(annulment_id: int):
    try:
        return jsonify({"annulment": annulment_service.get_annulment_details(annulment_id)}), 200
    except BackOfficeError as e:
        return error_response(e)


@annulments_bp.get("/")
@annulments_bp.get("")
@require_actor
@require_capability("VIEW_REPORTS")
def list_annulments_route():
    try:
        annulments = annulment_service.list_annulments(
            status=request.args.get("status"),
            user_id=request.args.get("user_id", type=int),
            date_from=date_arg("date_from"),
            date_to=date_arg("date_to"),
        )
        return jsonify({"annulments": [a.to_dict() for a in annulments]}), 200
    except BackOfficeError as e:
        return error_response(e)
