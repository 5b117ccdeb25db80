# Overview: Service-layer operations for dashboard reporting over the local ledger.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import CachedCustomer, CachedProduct, PosOrder
from ..models.orders import SYNC_UNSYNCED
from ..money import format_cents
from ..time_utils import to_utc_z, utc_day_window, utcnow

COMPLETED = "completed"


def dashboard_stats(now: datetime | None = None) -> dict:
    """
    Headline numbers for the register dashboard.

    "Today" is the UTC calendar day. Only completed orders count towards
    sales. Low stock means a tracked quantity under LOW_STOCK_THRESHOLD.
    """
    now = now or utcnow()
    day_start, day_end = utc_day_window(now)
    threshold = int(current_app.config.get("LOW_STOCK_THRESHOLD", 10))

    todays_orders, todays_sales_cents = db.session.query(
        func.count(PosOrder.id),
        func.coalesce(func.sum(PosOrder.total_cents), 0),
    ).filter(
        PosOrder.status == COMPLETED,
        PosOrder.created_at >= day_start,
        PosOrder.created_at < day_end,
    ).one()

    total_orders = db.session.query(func.count(PosOrder.id)).filter(PosOrder.status == COMPLETED).scalar()
    unsynced_orders = (
        db.session.query(func.count(PosOrder.id))
        .filter(PosOrder.sync_status == SYNC_UNSYNCED)
        .scalar()
    )
    total_products = db.session.query(func.count(CachedProduct.id)).scalar()
    total_customers = db.session.query(func.count(CachedCustomer.id)).scalar()
    low_stock = (
        db.session.query(func.count(CachedProduct.id))
        .filter(
            CachedProduct.stock_quantity.isnot(None),
            CachedProduct.stock_quantity < threshold,
        )
        .scalar()
    )

    return {
        "todays_sales": format_cents(int(todays_sales_cents or 0)),
        "todays_sales_cents": int(todays_sales_cents or 0),
        "todays_orders": int(todays_orders or 0),
        "total_orders": int(total_orders or 0),
        "total_products": int(total_products or 0),
        "total_customers": int(total_customers or 0),
        "low_stock_products": int(low_stock or 0),
        "unsynced_orders": int(unsynced_orders or 0),
        "low_stock_threshold": threshold,
        "as_of": to_utc_z(now),
    }
