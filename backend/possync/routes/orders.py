# Overview: Flask API routes for the local order ledger and its sync; parses input and returns JSON responses.

# backend/possync/routes/orders.py
"""
Order routes.

POST /api/orders commits the sale locally first. Only after that commit is
an immediate upstream push attempted (SYNC_ON_CHECKOUT); whatever happens
upstream, a committed sale answers 201. Orders left unsynced are pushed by
POST /api/orders/sync or the `flask sync worker` loop.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PosError, http_status
from ..services import order_service, sync_service
from ..decorators import require_actor

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_actor
def create_order_route():
    """
    Commit a sale.

    Body:
    - items: [{"product_id": 1, "quantity": 2, "unit_price": "10.00"?, "name"?, "sku"?}]
    - payment_method: "cash" | "card" | "digital" | "split"
    - amount_paid: cash tendered (optional; defaults to the total)
    - discount: amount (optional)
    - customer_id, customer_name, customer_email (optional)

    The cashier is the request's user identity.
    """
    data = request.get_json(silent=True) or {}

    try:
        order = order_service.create_order(
            items=data.get("items") or [],
            payment_method=data.get("payment_method"),
            cashier_id=g.actor_id,
            cashier_name=g.actor_name,
            customer_id=data.get("customer_id"),
            customer_name=data.get("customer_name"),
            customer_email=data.get("customer_email"),
            discount=data.get("discount", 0),
            amount_paid=data.get("amount_paid"),
        )
    except PosError as e:
        return jsonify({"error": str(e), "details": e.details}), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500

    order_id = order.id
    result = sync_service.sync_after_checkout(order_id)
    order = order_service.get_order(order_id)

    return jsonify({
        "order": order.to_dict(),
        "sync": result.to_dict() if result else None,
    }), 201


@orders_bp.get("")
def list_orders_route():
    """
    Recent orders, newest first.

    Query params:
    - limit: int (optional, default 50, max 500)
    - unsynced: "1" to list only orders still waiting for upstream (oldest first)
    """
    limit = max(1, min(request.args.get("limit", default=50, type=int), 500))
    if request.args.get("unsynced") in ("1", "true"):
        orders = order_service.list_unsynced_orders(limit=limit)
    else:
        orders = order_service.list_recent_orders(limit=limit)
    return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)})


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    order = order_service.get_order(order_id)
    if order is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify({"order": order.to_dict()})


@orders_bp.post("/<int:order_id>/receipt-printed")
@require_actor
def receipt_printed_route(order_id: int):
    try:
        order = order_service.mark_receipt_printed(order_id)
    except PosError as e:
        return jsonify({"error": str(e), "details": e.details}), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to mark receipt printed for order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"order": order.to_dict()})


@orders_bp.post("/sync")
@require_actor
def sync_orders_route():
    """Push every unsynced order upstream (one reconciliation pass)."""
    try:
        results = sync_service.reconcile_all()
    except PosError as e:
        return jsonify({"error": str(e), "details": e.details}), http_status(e)
    except Exception:
        current_app.logger.exception("Order reconciliation failed")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "results": [r.to_dict() for r in results],
        "synced": sum(1 for r in results if r.status == sync_service.RESULT_SYNCED),
        "failed": sum(1 for r in results if r.status == sync_service.RESULT_FAILED),
    })


@orders_bp.get("/upstream")
def upstream_orders_route():
    """Recent orders as recorded on the upstream platform."""
    per_page = max(1, min(request.args.get("per_page", default=50, type=int), 100))
    try:
        summaries = sync_service.list_upstream_orders(per_page=per_page)
    except PosError as e:
        return jsonify({"error": str(e), "details": e.details}), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to fetch upstream orders")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"orders": [s.to_dict() for s in summaries], "count": len(summaries)})
