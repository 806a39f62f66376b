# Overview: Flask API routes for batch stock; parses input and returns JSON responses.

"""
Inventory API Routes

Stock is received into batches, consumed FIFO by sales and corrected by
manual adjustments. Quantities are always in base units.
"""

from flask import Blueprint, jsonify, request, g, current_app

from ..errors import BackOfficeError, ValidationError
from ..services import inventory_service
from ..decorators import require_actor, require_capability
from ..time_utils import parse_iso_date
from .common import bad_request, error_response, internal_error, json_body


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/receive")
@require_actor
@require_capability("MANAGE_STOCK")
def receive_stock_route():
    """
    Receive stock into a batch (created, or topped up if it exists).

    Request body:
    {
        "product_id": 1,
        "batch_number": "L-2025-01",
        "quantity": 100,
        "expiration_date": "2025-06-30",  (optional)
        "location": "Shelf A3"            (optional)
    }
    """
    try:
        data = json_body()
        product_id = data.get("product_id")
        quantity = data.get("quantity")
        if product_id is None or quantity is None:
            return bad_request("product_id and quantity required")

        try:
            expiration_date = parse_iso_date(data.get("expiration_date"))
        except ValueError:
            raise ValidationError("expiration_date must be a date (YYYY-MM-DD)")

        batch = inventory_service.add_stock(
            product_id=product_id,
            batch_number=data.get("batch_number"),
            expiration_date=expiration_date,
            quantity=quantity,
            user_id=g.actor_id,
            location=data.get("location"),
        )
        return jsonify({"batch": batch.to_dict()}), 201

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return internal_error()


@inventory_bp.post("/adjust")
@require_actor
@require_capability("MANAGE_STOCK")
def adjust_stock_route():
    """
    Manual correction on one batch; negative quantity decreases.

    Request body: {"product_id": 1, "batch_id": 3, "quantity": -2, "reason": "Damaged"}
    """
    try:
        data = json_body()
        if data.get("product_id") is None or data.get("batch_id") is None or data.get("quantity") is None:
            return bad_request("product_id, batch_id and quantity required")

        movement = inventory_service.adjust_stock(
            product_id=data["product_id"],
            batch_id=data["batch_id"],
            quantity=data["quantity"],
            user_id=g.actor_id,
            reason=data.get("reason"),
        )
        return jsonify({"movement": movement.to_dict()}), 201

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return internal_error()


@inventory_bp.get("/<int:product_id>")
@require_actor
def product_stock_route(product_id: int):
    """Available quantity plus batches in FIFO consumption order."""
    batches = inventory_service.get_batches_fifo(product_id)
    return jsonify({
        "product_id": product_id,
        "available": inventory_service.get_available_stock(product_id),
        "batches": [b.to_dict() for b in batches],
    }), 200


@inventory_bp.get("/movements")
@require_actor
def list_movements_route():
    reference_type = request.args.get("reference_type")
    reference_id = request.args.get("reference_id", type=int)
    reference = (reference_type, reference_id) if reference_type and reference_id is not None else None

    movements = inventory_service.list_movements(
        product_id=request.args.get("product_id", type=int),
        batch_id=request.args.get("batch_id", type=int),
        reference=reference,
    )
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200
