# Overview: Service-layer operations for pushing local orders upstream.

"""
Order Reconciliation Invariants (authoritative)

State machine:  UNSYNCED --push success--> SYNCED (terminal)

- push_one never raises for upstream failures. It records the failure on
  the order (attempts, last error) and returns a failed SyncResult; the
  order stays UNSYNCED and is retried by the next reconciliation pass.
- No DB transaction is open and no key lock is held while the upstream
  request is in flight.
- Before POSTing, upstream orders created since SYNC_LOOKBACK_HOURS before
  the sale are paged and matched on the _pos_order_id tag (order search does
  not index meta data). A hit is adopted instead of creating a duplicate,
  which covers "POST succeeded but the response was lost".
- The same order is never pushed twice at once, even from two processes
  (server and sync worker): the push holds the order's database claim, and a
  second push returns "in_progress" without contacting upstream.
- reconcile_all works on a snapshot of unsynced ids taken at start; orders
  created during the pass wait for the next one.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..errors import NotFoundError, UpstreamError
from ..extensions import db
from ..models import PosOrder
from .catalog_sync_service import upstream_session
from .order_service import (
    claim_for_sync,
    get_order,
    list_unsynced_orders,
    mark_synced,
    new_claim_token,
    record_sync_failure,
    release_sync_claim,
)
from .settings_service import build_upstream_client, is_upstream_configured
from .upstream_client import UpstreamClient
from .upstream_schemas import OrderCreateRequest, OrderLineRequest, OrderSummary

RESULT_SYNCED = "synced"
RESULT_ALREADY_SYNCED = "already_synced"
RESULT_FAILED = "failed"
RESULT_IN_PROGRESS = "in_progress"


@dataclass
class SyncResult:
    order_id: int
    status: str
    order_number: str | None = None
    upstream_order_id: int | None = None
    error: str | None = None
    deduplicated: bool = False

    @property
    def ok(self) -> bool:
        return self.status in (RESULT_SYNCED, RESULT_ALREADY_SYNCED)

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "status": self.status,
            "upstream_order_id": self.upstream_order_id,
            "error": self.error,
            "deduplicated": self.deduplicated,
        }


def _billing_for(order: PosOrder) -> dict:
    if not order.customer_email:
        return {}
    parts = (order.customer_name or "").split()
    return {
        "email": order.customer_email,
        "first_name": parts[0] if parts else "",
        "last_name": " ".join(parts[1:]),
    }


def build_order_payload(order: PosOrder) -> OrderCreateRequest:
    """Map a local order onto the upstream order-create shape."""
    return OrderCreateRequest(
        pos_order_id=order.order_number,
        line_items=tuple(
            OrderLineRequest(
                product_id=line.product_id,
                quantity=line.quantity,
                total_cents=line.line_total_cents,
            )
            for line in order.lines
        ),
        customer_id=order.customer_id or 0,
        billing=_billing_for(order),
        cashier_name=order.cashier_name,
        payment_method=order.payment_method,
        discount_cents=order.discount_cents or 0,
        tax_cents=order.tax_cents or 0,
    )


def push_one(order_id: int, client: UpstreamClient | None = None) -> SyncResult:
    """
    Push one order upstream.

    Raises:
        NotFoundError: unknown order id
    """
    order = get_order(order_id)
    if order is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    order_number = order.order_number
    if order.is_synced:
        return _already_synced(order)

    token = new_claim_token()
    if not claim_for_sync(order_id, token):
        order = get_order(order_id)
        if order is not None and order.is_synced:
            return _already_synced(order)
        return SyncResult(order_id=order_id, status=RESULT_IN_PROGRESS, order_number=order_number)

    try:
        order = get_order(order_id)
        payload = build_order_payload(order)
        lookback = timedelta(hours=float(current_app.config.get("SYNC_LOOKBACK_HOURS", 24)))
        created_after = order.created_at - lookback
        db.session.commit()

        check_existing = current_app.config.get("SYNC_CHECK_EXISTING", True)
        deduplicated = False
        try:
            with upstream_session(client) as upstream:
                upstream_id = (
                    upstream.find_order_by_pos_id(order_number, created_after) if check_existing else None
                )
                if upstream_id is not None:
                    deduplicated = True
                else:
                    upstream_id = upstream.create_order(payload).id
        except UpstreamError as exc:
            record_sync_failure(order_id, str(exc))
            current_app.logger.warning("Order %s sync failed: %s", order_number, exc)
            return SyncResult(
                order_id=order_id,
                status=RESULT_FAILED,
                order_number=order_number,
                error=str(exc),
            )

        mark_synced(order_id, upstream_id)
        current_app.logger.info(
            "Order %s synced as upstream order %s%s",
            order_number, upstream_id, " (existing)" if deduplicated else "",
        )
        return SyncResult(
            order_id=order_id,
            status=RESULT_SYNCED,
            order_number=order_number,
            upstream_order_id=upstream_id,
            deduplicated=deduplicated,
        )
    finally:
        release_sync_claim(order_id, token)


def _already_synced(order: PosOrder) -> SyncResult:
    return SyncResult(
        order_id=order.id,
        status=RESULT_ALREADY_SYNCED,
        order_number=order.order_number,
        upstream_order_id=order.upstream_order_id,
    )


def reconcile_all(
    client: UpstreamClient | None = None,
    limit: int | None = None,
    stop_event: threading.Event | None = None,
) -> list[SyncResult]:
    """
    Push every order that was unsynced when the pass started, oldest first.

    Raises:
        UpstreamNotConfigured: before any order is touched
    """
    owns_client = client is None
    if owns_client:
        client = build_upstream_client()

    order_ids = [order.id for order in list_unsynced_orders(limit=limit)]
    db.session.commit()

    results: list[SyncResult] = []
    try:
        for order_id in order_ids:
            if stop_event is not None and stop_event.is_set():
                break
            try:
                results.append(push_one(order_id, client))
            except Exception as exc:
                db.session.rollback()
                current_app.logger.exception("Unexpected error syncing order %s", order_id)
                results.append(SyncResult(order_id=order_id, status=RESULT_FAILED, error=str(exc)))
    finally:
        if owns_client:
            client.close()

    if results:
        synced = sum(1 for r in results if r.status == RESULT_SYNCED)
        current_app.logger.info("Reconciliation pass: %d/%d orders synced", synced, len(results))
    return results


def sync_after_checkout(order_id: int) -> SyncResult | None:
    """
    Immediate push attempt for a sale that has already been committed.

    Never raises: the sale stands regardless of the outcome.
    """
    if not current_app.config.get("SYNC_ON_CHECKOUT", True):
        return None
    if not is_upstream_configured():
        return None
    try:
        return push_one(order_id)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Post-checkout sync of order %s failed", order_id)
        return None


def list_upstream_orders(per_page: int = 50, client: UpstreamClient | None = None) -> list[OrderSummary]:
    """Recent orders as the upstream platform sees them."""
    with upstream_session(client) as upstream:
        return upstream.list_orders(per_page=per_page)


def run_periodic(interval: float, stop_event: threading.Event, max_passes: int | None = None) -> int:
    """
    Reconciliation loop for the background worker.

    Returns the number of passes run. A pass that cannot reach or configure
    the upstream is logged and retried after the interval.
    """
    passes = 0
    while not stop_event.is_set():
        try:
            reconcile_all(stop_event=stop_event)
        except UpstreamError as exc:
            current_app.logger.warning("Reconciliation pass skipped: %s", exc)
        passes += 1
        if max_passes is not None and passes >= max_passes:
            break
        stop_event.wait(interval)
    return passes
