# Overview: Flask API routes for the product catalog; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request, current_app

from ..errors import BackOfficeError
from ..services import products_service
from ..decorators import require_actor, require_capability
from .common import bad_request, error_response, internal_error, json_body


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/")
@products_bp.get("")
@require_actor
def list_products_route():
    active_only = request.args.get("active_only", "false").lower() in ("1", "true", "yes")
    products = products_service.list_products(active_only=active_only)
    return jsonify({
        "products": [
            {**p.to_dict(), "presentations": [pr.to_dict() for pr in p.presentations]}
            for p in products
        ]
    }), 200


@products_bp.post("/")
@products_bp.post("")
@require_actor
@require_capability("MANAGE_STOCK")
def create_product_route():
    """
    Create a product.

    Request body:
    {
        "name": "Paracetamol 500mg",
        "barcode": "7401234567890",  (optional)
        "description": "...",        (optional)
        "active": true               (optional)
    }
    """
    try:
        data = json_body()
        product = products_service.create_product(
            name=data.get("name"),
            barcode=data.get("barcode"),
            description=data.get("description"),
            active=bool(data.get("active", True)),
        )
        return jsonify({"product": product.to_dict()}), 201

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return internal_error()


@products_bp.post("/<int:product_id>/presentations")
@require_actor
@require_capability("MANAGE_STOCK")
def add_presentation_route(product_id: int):
    try:
        data = json_body()
        if "factor" not in data or "price" not in data:
            return bad_request("factor and price required")

        presentation = products_service.add_presentation(
            product_id,
            name=data.get("name"),
            factor=data.get("factor"),
            price=data.get("price"),
        )
        return jsonify({"presentation": presentation.to_dict()}), 201

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add presentation")
        return internal_error()


@products_bp.patch("/<int:product_id>/active")
@require_actor
@require_capability("MANAGE_STOCK")
def set_active_route(product_id: int):
    try:
        data = json_body()
        if "active" not in data:
            return bad_request("active required")

        product = products_service.set_product_active(product_id, bool(data["active"]))
        return jsonify({"product": product.to_dict()}), 200

    except BackOfficeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return internal_error()
