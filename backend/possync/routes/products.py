# Overview: Flask API routes for cached products; parses input and returns JSON responses.

# backend/possync/routes/products.py
"""
Product routes over the local catalog cache.

Reads are served from the cache and fall back to the upstream platform on a
miss (see catalog_sync_service). When that fallback is needed and fails the
response says so with upstream_available=false instead of erroring.

Writes (price edits, manual status override, removal, full sync) require a
register user identity.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PosError, http_status
from ..models import CachedProduct
from ..services import catalog_service, catalog_sync_service
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product_patch,
    parse_amount_cents,
    validate_payload,
)
from ..decorators import require_actor

PRODUCT_PATCH_POLICY = ModelValidationPolicy(
    writable_fields=set(catalog_service.PRODUCT_PATCHABLE_FIELDS),
)

# Decimal price inputs accepted alongside the *_cents fields
PRICE_ALIASES = {"regular_price": "regular_price_cents", "sale_price": "sale_price_cents"}

MAX_PER_PAGE = 100

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _page_args() -> tuple[int, int]:
    per_page = request.args.get("per_page", default=20, type=int)
    page = request.args.get("page", default=1, type=int)
    per_page = max(1, min(per_page, MAX_PER_PAGE))
    page = max(1, page)
    return per_page, page


@products_bp.get("")
def list_products_route():
    """
    List cached products.

    Query params:
    - search: str (optional) - case-insensitive match on name or SKU
    - page: int (optional) - page number (1-indexed, default 1)
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    search = (request.args.get("search") or "").strip() or None
    per_page, page = _page_args()

    try:
        products, upstream_available = catalog_sync_service.list_or_fetch_products(
            search=search, per_page=per_page, page=page,
        )
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "products": [p.to_dict() for p in products],
        "count": len(products),
        "page": page,
        "per_page": per_page,
        "upstream_available": upstream_available,
    })


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    product = catalog_sync_service.lookup_product(product_id)
    if product is None:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"product": product.to_dict()})


@products_bp.get("/barcode/<path:code>")
def get_product_by_barcode_route(code: str):
    """Exact SKU match, as read by a barcode scanner."""
    product = catalog_sync_service.lookup_product_by_sku(code)
    if product is None:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"product": product.to_dict()})


@products_bp.patch("/<int:product_id>")
@require_actor
def patch_product_route(product_id: int):
    """
    Edit prices or override stock status of a cached product.

    Stock quantity is rejected here: use the stock adjustment endpoints.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        if "stock_quantity" in payload:
            raise ValidationError("stock_quantity can only be changed through a stock adjustment")
        payload = dict(payload)
        for alias, field in PRICE_ALIASES.items():
            if alias in payload:
                raw = payload.pop(alias)
                payload[field] = None if raw in (None, "") else parse_amount_cents(raw, alias)
        patch = validate_payload(
            model=CachedProduct, payload=payload, policy=PRODUCT_PATCH_POLICY, partial=True,
        )
        enforce_rules_product_patch(patch)
        product = catalog_service.patch_product(product_id, patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500

    if product is None:
        return jsonify({"error": "Product not found"}), 404

    current_app.logger.info("Product %s edited by %s: %s", product_id, g.actor_name, sorted(patch))
    return jsonify({"product": product.to_dict()})


@products_bp.delete("/<int:product_id>")
@require_actor
def delete_product_route(product_id: int):
    """Remove a product from the local cache (upstream is not touched)."""
    try:
        removed = catalog_service.remove_product(product_id)
    except Exception:
        current_app.logger.exception("Failed to remove product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500

    if not removed:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"deleted": True, "id": product_id})


@products_bp.post("/sync")
@require_actor
def sync_products_route():
    """Replace the product cache with the full upstream catalog."""
    try:
        count = catalog_sync_service.sync_products()
    except PosError as e:
        return jsonify({"error": str(e), "details": e.details}), http_status(e)
    except Exception:
        current_app.logger.exception("Product sync failed")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "success": True,
        "message": f"Synced {count} products",
        "count": count,
    })
