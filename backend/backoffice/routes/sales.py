# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes with capability enforcement"""

from flask import Blueprint, jsonify, g, current_app

from ..errors import BackOfficeError
from ..services import sales_service
from ..decorators import require_actor, require_capability
from .common import bad_request, error_response, internal_error, json_body


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/")
@sales_bp.post("")
@require_actor
@require_capability("CREATE_SALE")
def create_sale_route():
    """
    Create a pending sale owned by the acting user.

    Request body (all optional):
    {"cashier_id": 2, "customer_name": "Ana", "customer_nit": "1234567-8"}
    """
    try:
        data = json_body()
        sale = sales_service.create_sale(
            g.actor_id,
            cashier_id=data.get("cashier_id"),
            customer_name=data.get("customer_name") or "",
            customer_nit=data.get("customer_nit"),
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return internal_error()


@sales_bp.get("/pending")
@require_actor
def pending_sales_route():
    sales = sales_service.get_pending_sales()
    return jsonify({"sales": [s.to_dict() for s in sales]}), 200


@sales_bp.get("/<int:sale_id>")
@require_actor
def get_sale_route(sale_id: int):
    try:
        return jsonify({"sale": sales_service.get_sale_summary(sale_id)}), 200
    except BackOfficeError as e:
        return error_response(e)


@sales_bp.post("/<int:sale_id>/items")
@require_actor
@require_capability("CREATE_SALE")
def add_item_route(sale_id: int):
    """
    Add item to a pending sale.

    Request body: {"product_id": 1, "presentation_id": 2, "quantity": 3}
    """
    try:
        data = json_body()
        product_id = data.get("product_id")
        presentation_id = data.get("presentation_id")
        quantity = data.get("quantity")

        if product_id is None or presentation_id is None or quantity is None:
            return bad_request("product_id, presentation_id and quantity required")

        item = sales_service.add_item(sale_id, product_id, presentation_id, quantity)
        return jsonify({"item": item.to_dict(), "sale": item.sale.to_dict()}), 201

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add sale item")
        return internal_error()


@sales_bp.patch("/items/<int:item_id>")
@require_actor
@require_capability("CREATE_SALE")
def update_item_route(item_id: int):
    try:
        data = json_body()
        if data.get("quantity") is None:
            return bad_request("quantity required")

        item = sales_service.update_item(item_id, data["quantity"])
        return jsonify({"item": item.to_dict(), "sale": item.sale.to_dict()}), 200

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update sale item")
        return internal_error()


@sales_bp.delete("/items/<int:item_id>")
@require_actor
@require_capability("CREATE_SALE")
def remove_item_route(item_id: int):
    try:
        sale = sales_service.remove_item(item_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove sale item")
        return internal_error()


@sales_bp.post("/<int:sale_id>/confirm")
@require_actor
@require_capability("CONFIRM_SALE")
def confirm_sale_route(sale_id: int):
    """
    Confirm a pending sale: consumes stock FIFO and registers the income
    in the open cash box.
    """
    try:
        sale = sales_service.confirm_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to confirm sale")
        return internal_error()


@sales_bp.post("/<int:sale_id>/cancel")
@require_actor
@require_capability("CANCEL_SALE")
def cancel_sale_route(sale_id: int):
    """Cancel a sale that has not been invoiced."""
    try:
        sale = sales_service.cancel_sale(sale_id, user_id=g.actor_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return internal_error()


@sales_bp.post("/<int:sale_id>/recalculate")
@require_actor
@require_capability("CREATE_SALE")
def recalculate_route(sale_id: int):
    try:
        data = json_body()
        sale = sales_service.recalculate_totals(sale_id, tax_rate=data.get("tax_rate"))
        return jsonify({"sale": sale.to_dict()}), 200

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to recalculate sale totals")
        return internal_error()
