# Overview: Flask API route for cart price previews.

from decimal import Decimal

from flask import Blueprint, request, jsonify, current_app

from ..errors import InvalidOrder
from ..services import catalog_service
from ..services.cart_service import calculate_totals

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _priced_line(raw, index: int) -> dict:
    """Fill unit_price from the cached product when only product_id is given."""
    if not isinstance(raw, dict):
        raise InvalidOrder(f"Line {index + 1} must be an object")
    if raw.get("unit_price") not in (None, ""):
        return raw
    product_id = raw.get("product_id")
    valid_id = isinstance(product_id, int) and not isinstance(product_id, bool)
    product = catalog_service.get_product(product_id) if valid_id else None
    if product is None or product.price_cents is None:
        raise InvalidOrder(f"Line {index + 1}: no price available", details={"product_id": product_id})
    return {"unit_price": Decimal(product.price_cents) / 100, "quantity": raw.get("quantity")}


@cart_bp.post("/totals")
def cart_totals_route():
    """
    Price a cart without committing anything.

    Body:
    - items: [{"unit_price": "10.00", "quantity": 3}] or [{"product_id": 1, "quantity": 3}]
    - discount: amount (optional)
    """
    data = request.get_json(silent=True) or {}
    items = data.get("items")
    if not isinstance(items, list):
        return jsonify({"error": "items must be a list"}), 400

    try:
        lines = [_priced_line(raw, i) for i, raw in enumerate(items)]
        totals = calculate_totals(
            lines,
            discount=data.get("discount", 0),
            tax_rate=current_app.config.get("POS_TAX_RATE"),
        )
    except InvalidOrder as e:
        return jsonify({"error": str(e), "details": e.details}), 400

    return jsonify({"totals": totals.to_dict()})
