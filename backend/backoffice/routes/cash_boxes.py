# Overview: Flask API routes for cash box sessions and movements; parses input and returns JSON responses.

"""
Cash Box API Routes

WHY: Till accountability. One box is open at a time; every confirmed sale
lands in it, and closing compares counted cash with the expected amount.

DESIGN:
- Open -> close lifecycle (immutable once closed)
- Manual income/expense movements on the open box
- Reversals are only written by cancellations and annulments
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import BackOfficeError
from ..services import cash_box_service
from ..decorators import require_actor, require_capability
from .common import bad_request, date_arg, error_response, internal_error, json_body


cash_boxes_bp = Blueprint("cash_boxes", __name__, url_prefix="/api/cash-boxes")


@cash_boxes_bp.get("/current")
@require_actor
def current_box_route():
    """The open box with its summary, or {"cash_box": null}."""
    box = cash_box_service.find_open_box()
    if box is None:
        return jsonify({"cash_box": None}), 200
    return jsonify(cash_box_service.get_cash_box_summary(box.id)), 200


@cash_boxes_bp.post("/open")
@require_actor
@require_capability("MANAGE_CASH_BOX")
def open_box_route():
    """
    Open the cash box.

    Request body: {"opening_amount": "100.00"}
    """
    try:
        data = json_body()
        if data.get("opening_amount") is None:
            return bad_request("opening_amount required")

        box = cash_box_service.open_cash_box(g.actor_id, data["opening_amount"])
        return jsonify({"cash_box": box.to_dict()}), 201

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to open cash box")
        return internal_error()


@cash_boxes_bp.post("/<int:box_id>/close")
@require_actor
@require_capability("MANAGE_CASH_BOX")
def close_box_route(box_id: int):
    """
    Close a cash box.

    Request body (optional): {"closing_amount": "148.50"}
    Without closing_amount the box closes at the expected amount.
    """
    try:
        data = json_body()
        cash_box_service.close_cash_box(box_id, g.actor_id, data.get("closing_amount"))
        return jsonify(cash_box_service.get_cash_box_summary(box_id)), 200

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to close cash box")
        return internal_error()


def _register(box_id: int, register, label: str):
    try:
        data = json_body()
        if data.get("amount") is None:
            return bad_request("amount required")

        movement = register(box_id, data["amount"], data.get("description") or label, g.actor_id)
        return jsonify({"movement": movement.to_dict()}), 201

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register cash %s", label.lower())
        return internal_error()


@cash_boxes_bp.post("/<int:box_id>/income")
@require_actor
@require_capability("MANAGE_CASH_BOX")
def register_income_route(box_id: int):
    """Request body: {"amount": "20.00", "description": "Change fund"}"""
    return _register(box_id, cash_box_service.register_income, "Income")


@cash_boxes_bp.post("/<int:box_id>/expenses")
@require_actor
@require_capability("MANAGE_CASH_BOX")
def register_expense_route(box_id: int):
    """Request body: {"amount": "12.00", "description": "Cleaning supplies"}"""
    return _register(box_id, cash_box_service.register_expense, "Expense")


@cash_boxes_bp.get("/<int:box_id>")
@require_actor
def get_box_route(box_id: int):
    try:
        return jsonify(cash_box_service.get_cash_box_summary(box_id)), 200
    except BackOfficeError as e:
        return error_response(e)


@cash_boxes_bp.get("/<int:box_id>/movements")
@require_actor
def list_movements_route(box_id: int):
    has_sale = request.args.get("has_sale")
    try:
        cash_box_service.get_cash_box(box_id)
        movements = cash_box_service.list_movements(
            box_id,
            movement_type=request.args.get("type"),
            user_id=request.args.get("user_id", type=int),
            has_sale=None if has_sale is None else has_sale.lower() in ("1", "true", "yes"),
        )
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except BackOfficeError as e:
        return error_response(e)


@cash_boxes_bp.get("/")
@cash_boxes_bp.get("")
@require_actor
@require_capability("VIEW_REPORTS")
def list_boxes_route():
    try:
        boxes = cash_box_service.list_cash_boxes(
            status=request.args.get("status"),
            opened_by=request.args.get("opened_by", type=int),
            date_from=date_arg("date_from"),
            date_to=date_arg("date_to"),
        )
        return jsonify({"cash_boxes": [b.to_dict() for b in boxes]}), 200
    except BackOfficeError as e:
        return error_response(e)


@cash_boxes_bp.get("/stats")
@require_actor
@require_capability("VIEW_REPORTS")
def stats_route():
    try:
        stats = cash_box_service.get_cash_box_stats(date_arg("date_from"), date_arg("date_to"))
        return jsonify({"stats": stats}), 200
    except BackOfficeError as e:
        return error_response(e)
