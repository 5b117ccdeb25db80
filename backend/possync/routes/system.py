# backend/possync/routes/system.py
"""
System health endpoint.

Reports local database health and whether the upstream platform is
configured. Upstream reachability is not probed here (see
POST /api/settings/test-connection); a register keeps selling while the
upstream is down, so that is not "unhealthy".
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import CachedProduct, PosOrder
from ..models.orders import SYNC_UNSYNCED
from ..services.settings_service import is_upstream_configured
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(CachedProduct).count()
        order_count = db.session.query(PosOrder).count()
        unsynced_count = db.session.query(PosOrder).filter(PosOrder.sync_status == SYNC_UNSYNCED).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "cached_products": product_count,
                "orders": order_count,
                "unsynced_orders": unsynced_count,
            }
        }
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: database healthy (upstream may still be unconfigured -> "degraded")
    - 503: database unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    upstream_configured = is_upstream_configured()

    if database_health["status"] == "unhealthy":
        overall_status = "unhealthy"
        http_status = 503
    elif not upstream_configured:
        overall_status = "degraded"
        http_status = 200
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "upstream": {"configured": upstream_configured},
        }
    }

    return response, http_status
