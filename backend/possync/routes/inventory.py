# Overview: Flask API routes for stock adjustments; parses input and returns JSON responses.

# backend/possync/routes/inventory.py
"""
Stock adjustment routes.

Every quantity change goes through the stock adjustment ledger, which
writes the cache and the audit record together. After the local commit the
new quantity is pushed upstream best-effort; a failed push is reported in
the response but never undoes the adjustment.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PosError, http_status
from ..models.inventory import ADJUST_SET
from ..services import catalog_service, catalog_sync_service, stock_service
from ..validation import ValidationError, parse_int
from ..decorators import require_actor

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/products")


def _adjust(product_id: int, kind: str, quantity, notes):
    adjustment = stock_service.adjust_stock(
        product_id,
        kind,
        quantity,
        actor=g.actor_name,
        notes=notes,
    )
    upstream_synced = catalog_sync_service.push_stock(product_id)
    product = catalog_service.get_product(product_id)
    return jsonify({
        "adjustment": adjustment.to_dict(),
        "product": product.to_dict() if product else None,
        "upstream_synced": upstream_synced,
    }), 201


@inventory_bp.post("/<int:product_id>/stock-adjustments")
@require_actor
def create_adjustment_route(product_id: int):
    """
    Record a stock adjustment.

    Body:
    - type: "add" | "subtract" | "set"
    - quantity: positive integer (target quantity for "set")
    - notes: str (optional)
    """
    data = request.get_json(silent=True) or {}

    try:
        kind = data.get("type") or data.get("adjustment_type")
        if not kind:
            return jsonify({"error": "type required"}), 400
        if data.get("quantity") is None:
            return jsonify({"error": "quantity required"}), 400
        quantity = parse_int(data.get("quantity"), "quantity")
        return _adjust(product_id, kind, quantity, data.get("notes"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PosError as e:
        return jsonify({"error": str(e), "details": e.details}), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock for product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.put("/<int:product_id>/stock")
@require_actor
def set_stock_route(product_id: int):
    """Set an absolute stock quantity (a "set" adjustment)."""
    data = request.get_json(silent=True) or {}

    try:
        if data.get("quantity") is None:
            return jsonify({"error": "quantity required"}), 400
        quantity = parse_int(data.get("quantity"), "quantity")
        return _adjust(product_id, ADJUST_SET, quantity, data.get("notes"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PosError as e:
        return jsonify({"error": str(e), "details": e.details}), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to set stock for product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:product_id>/stock-adjustments")
def list_adjustments_route(product_id: int):
    """
    Adjustment history for a product, newest first.

    Query params:
    - limit: int (optional, default 50, max 500)
    """
    limit = request.args.get("limit", default=50, type=int)
    limit = max(1, min(limit, 500))

    adjustments = stock_service.list_adjustments_for_product(product_id, limit=limit)
    return jsonify({
        "product_id": product_id,
        "adjustments": [a.to_dict() for a in adjustments],
        "count": len(adjustments),
    })
