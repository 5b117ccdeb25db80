# Overview: Flask API routes for cached customers; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import PosError, http_status
from ..services import catalog_service, catalog_sync_service
from ..decorators import require_actor

MAX_PER_PAGE = 100

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
def list_customers_route():
    """
    List cached customers, fetching from upstream when the cache has none.

    Query params:
    - search: str (optional) - matches email, first, last or display name
    - page: int (optional, default 1)
    - per_page: int (optional, default 20, max 100)
    """
    search = (request.args.get("search") or "").strip() or None
    per_page = max(1, min(request.args.get("per_page", default=20, type=int), MAX_PER_PAGE))
    page = max(1, request.args.get("page", default=1, type=int))

    try:
        customers, upstream_available = catalog_sync_service.list_or_fetch_customers(
            search=search, per_page=per_page, page=page,
        )
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "customers": [c.to_dict() for c in customers],
        "count": len(customers),
        "page": page,
        "per_page": per_page,
        "upstream_available": upstream_available,
    })


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    customer = catalog_service.get_customer(customer_id)
    if customer is None:
        return jsonify({"error": "Customer not found"}), 404
    return jsonify({"customer": customer.to_dict()})


@customers_bp.post("")
@require_actor
def create_customer_route():
    """
    Create a customer on the upstream platform and cache it.

    Body: email, first_name, last_name (required); phone, billing, shipping
    """
    data = request.get_json(silent=True) or {}

    email = (data.get("email") or "").strip()
    first_name = (data.get("first_name") or "").strip()
    last_name = (data.get("last_name") or "").strip()
    if not all([email, first_name, last_name]):
        return jsonify({"error": "email, first_name and last_name required"}), 400
    if "@" not in email:
        return jsonify({"error": "email is not valid"}), 400
    for block in ("billing", "shipping"):
        if data.get(block) is not None and not isinstance(data.get(block), dict):
            return jsonify({"error": f"{block} must be an object"}), 400

    try:
        customer = catalog_sync_service.create_customer(
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=(data.get("phone") or "").strip() or None,
            billing=data.get("billing"),
            shipping=data.get("shipping"),
        )
    except PosError as e:
        return jsonify({"error": str(e), "details": e.details}), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"customer": customer.to_dict()}), 201


@customers_bp.post("/sync")
@require_actor
def sync_customers_route():
    try:
        count = catalog_sync_service.sync_customers()
    except PosError as e:
        return jsonify({"error": str(e), "details": e.details}), http_status(e)
    except Exception:
        current_app.logger.exception("Customer sync failed")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "success": True,
        "message": f"Synced {count} customers",
        "count": count,
    })
