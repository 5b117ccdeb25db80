# Overview: Service-layer operations for the local order ledger.

"""
Order Ledger Invariants (authoritative)

- create_order never touches the network. A sale commits locally even when
  the upstream platform is unreachable; sync happens afterwards.
- Totals come from the cart calculator; lines are frozen snapshots and do
  not follow later catalog changes.
- sync_status moves UNSYNCED -> SYNCED exactly once and never reverts.
  mark_synced on an already synced order changes nothing.
- After creation only receipt_printed and the sync bookkeeping change;
  failure bookkeeping changes only while the order is unsynced.
- order_number is the durable identity sent upstream as _pos_order_id.
- A push holds the order's sync claim, a lease row-stamped with a random
  token. Claiming is one conditional UPDATE, so it excludes pushes from other
  processes too; a lease older than SYNC_CLAIM_LEASE_SECONDS is taken over.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Any, Iterable, Mapping

from flask import current_app
from sqlalchemy import or_

from ..errors import InvalidOrder, NotFoundError
from ..extensions import db
from ..models import PosOrder, PosOrderLine
from ..models.orders import SYNC_SYNCED, SYNC_UNSYNCED
from ..money import round2, to_cents, to_decimal
from ..time_utils import order_stamp, utcnow
from .cart_service import CartLine, calculate_totals
from .catalog_service import get_customer, get_product
from .concurrency import KeyedLocks, lock_for_update, run_with_retry

PAYMENT_CASH = "cash"
PAYMENT_CARD = "card"
PAYMENT_DIGITAL = "digital"
PAYMENT_SPLIT = "split"
VALID_PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_DIGITAL, PAYMENT_SPLIT)

MAX_SYNC_ERROR_LENGTH = 512

order_locks = KeyedLocks()


def generate_order_number(now=None) -> str:
    """POS-<UTC yyyymmddHHMMSS>-<6 hex>; sorts by creation time."""
    now = now or utcnow()
    return f"POS-{order_stamp(now)}-{uuid.uuid4().hex[:6]}"


def _resolve_item(raw: Any, index: int) -> dict:
    """Fill a cart item from the catalog cache where the caller left gaps."""
    if not isinstance(raw, Mapping):
        raise InvalidOrder(f"Item {index + 1} must be an object")

    product_id = raw.get("product_id")
    if isinstance(product_id, bool) or not isinstance(product_id, int) or product_id <= 0:
        raise InvalidOrder(f"Item {index + 1}: product_id must be a positive integer")

    cached = get_product(product_id)

    name = raw.get("name") or (cached.name if cached else None)
    if not name:
        raise InvalidOrder(
            f"Item {index + 1}: product {product_id} is not cached and has no name",
            details={"product_id": product_id},
        )
    sku = raw.get("sku") or (cached.sku if cached else None)

    unit_price = raw.get("unit_price")
    if unit_price is None or unit_price == "":
        if cached is None or cached.price_cents is None:
            raise InvalidOrder(
                f"Item {index + 1}: no price available for product {product_id}",
                details={"product_id": product_id},
            )
        unit_price = Decimal(cached.price_cents) / 100

    return {
        "product_id": product_id,
        "name": str(name).strip(),
        "sku": sku,
        "unit_price": unit_price,
        "quantity": raw.get("quantity"),
    }


def create_order(
    *,
    items: Iterable[Any],
    payment_method: str,
    cashier_id: str,
    cashier_name: str,
    customer_id: int | None = None,
    customer_name: str | None = None,
    customer_email: str | None = None,
    discount: Any = 0,
    amount_paid: Any = None,
    tax_rate: Any = None,
) -> PosOrder:
    """
    Price, snapshot and commit a sale as an UNSYNCED order.

    Raises:
        InvalidOrder: empty cart, bad line, non-positive total, unknown
            payment method, or cash tendered below the total
    """
    items = list(items or [])
    if not items:
        raise InvalidOrder("Order must contain at least one item")
    if payment_method not in VALID_PAYMENT_METHODS:
        raise InvalidOrder(
            f"Unknown payment method: {payment_method!r}",
            details={"valid_methods": list(VALID_PAYMENT_METHODS)},
        )
    if not cashier_id or not cashier_name:
        raise InvalidOrder("Cashier identity is required")
    if customer_id is not None and (
        isinstance(customer_id, bool) or not isinstance(customer_id, int) or customer_id <= 0
    ):
        raise InvalidOrder("customer_id must be a positive integer")

    resolved = [_resolve_item(raw, i) for i, raw in enumerate(items)]

    if tax_rate is None:
        tax_rate = current_app.config.get("POS_TAX_RATE")
    totals = calculate_totals(
        [{"unit_price": item["unit_price"], "quantity": item["quantity"]} for item in resolved],
        discount=discount,
        tax_rate=tax_rate,
    )
    if totals.total <= 0:
        raise InvalidOrder("Order total must be greater than zero", details={"total": str(totals.total)})

    total_cents = to_cents(totals.total)
    if amount_paid is None or amount_paid == "":
        paid_cents = total_cents
    else:
        try:
            paid_cents = to_cents(round2(to_decimal(amount_paid)))
        except ValueError:
            raise InvalidOrder("Amount paid is not a valid amount")
    if paid_cents < total_cents:
        label = "Cash tendered" if payment_method == PAYMENT_CASH else "Amount paid"
        raise InvalidOrder(
            f"{label} is less than the order total",
            details={"amount_paid_cents": paid_cents, "total_cents": total_cents},
        )
    if payment_method == PAYMENT_CASH:
        change_cents = paid_cents - total_cents
    else:
        paid_cents = total_cents
        change_cents = 0

    if customer_id is not None:
        customer = get_customer(customer_id)
        if customer is not None:
            customer_name = customer_name or customer.display_name
            customer_email = customer_email or customer.email

    order = PosOrder(
        order_number=generate_order_number(),
        status="completed",
        customer_id=customer_id,
        customer_name=customer_name,
        customer_email=customer_email,
        subtotal_cents=to_cents(totals.subtotal),
        discount_cents=to_cents(totals.discount),
        tax_cents=to_cents(totals.tax),
        total_cents=total_cents,
        payment_method=payment_method,
        amount_paid_cents=paid_cents,
        change_cents=change_cents,
        cashier_id=str(cashier_id),
        cashier_name=str(cashier_name),
        receipt_printed=False,
        sync_status=SYNC_UNSYNCED,
        sync_attempts=0,
    )
    for number, (item, line) in enumerate(zip(resolved, totals.lines), start=1):
        order.lines.append(_snapshot_line(number, item, line))

    db.session.add(order)
    db.session.commit()
    current_app.logger.info("Order %s committed (total %s)", order.order_number, totals.total)
    return order


def _snapshot_line(number: int, item: dict, line: CartLine) -> PosOrderLine:
    return PosOrderLine(
        line_number=number,
        product_id=item["product_id"],
        name=item["name"],
        sku=item["sku"],
        unit_price_cents=to_cents(line.unit_price),
        quantity=line.quantity,
        line_total_cents=to_cents(line.subtotal),
    )


# =============================================================================
# READS
# =============================================================================

def get_order(order_id: int) -> PosOrder | None:
    return db.session.get(PosOrder, int(order_id))


def get_order_by_number(order_number: str) -> PosOrder | None:
    return db.session.query(PosOrder).filter_by(order_number=order_number).first()


def list_recent_orders(limit: int = 50) -> list[PosOrder]:
    return (
        db.session.query(PosOrder)
        .order_by(PosOrder.created_at.desc(), PosOrder.id.desc())
        .limit(limit)
        .all()
    )


def list_unsynced_orders(limit: int | None = None) -> list[PosOrder]:
    """Oldest first, so reconciliation pushes in sale order."""
    query = (
        db.session.query(PosOrder)
        .filter(PosOrder.sync_status == SYNC_UNSYNCED)
        .order_by(PosOrder.created_at.asc(), PosOrder.id.asc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def count_unsynced_orders() -> int:
    return db.session.query(PosOrder).filter(PosOrder.sync_status == SYNC_UNSYNCED).count()


# =============================================================================
# STATE TRANSITIONS
# =============================================================================

def _locked_order(order_id: int) -> PosOrder:
    order = lock_for_update(db.session.query(PosOrder).filter_by(id=int(order_id))).first()
    if order is None:
        db.session.rollback()
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def mark_synced(order_id: int, upstream_order_id: int) -> PosOrder:
    """UNSYNCED -> SYNCED. A second call leaves the first result in place."""
    def _op():
        order = _locked_order(order_id)
        if order.sync_status == SYNC_SYNCED:
            db.session.rollback()
            return order
        order.sync_status = SYNC_SYNCED
        order.upstream_order_id = int(upstream_order_id)
        order.synced_at = utcnow()
        order.last_sync_error = None
        order.last_sync_attempt_at = order.synced_at
        order.sync_claim_token = None
        order.sync_claimed_at = None
        order.sync_attempts = (order.sync_attempts or 0) + 1
        db.session.commit()
        return order

    with order_locks.hold(int(order_id)):
        return run_with_retry(_op)


def record_sync_failure(order_id: int, error: str) -> PosOrder:
    """Bump attempt bookkeeping on an unsynced order; synced orders are untouched."""
    def _op():
        order = _locked_order(order_id)
        if order.sync_status == SYNC_SYNCED:
            db.session.rollback()
            return order
        order.sync_attempts = (order.sync_attempts or 0) + 1
        order.last_sync_error = (error or "unknown error")[:MAX_SYNC_ERROR_LENGTH]
        order.last_sync_attempt_at = utcnow()
        db.session.commit()
        return order

    with order_locks.hold(int(order_id)):
        return run_with_retry(_op)


def mark_receipt_printed(order_id: int) -> PosOrder:
    def _op():
        order = _locked_order(order_id)
        if not order.receipt_printed:
            order.receipt_printed = True
            db.session.commit()
        else:
            db.session.rollback()
        return order

    with order_locks.hold(int(order_id)):
        return run_with_retry(_op)


# =============================================================================
# SYNC CLAIMS
# =============================================================================

def new_claim_token() -> str:
    return uuid.uuid4().hex


def claim_for_sync(order_id: int, token: str, lease_seconds: float | None = None) -> bool:
    """
    Take the push lease on an unsynced order.

    Returns False when the order is synced, unknown, or leased by someone
    else within the lease period. The claim is committed before returning.
    """
    if lease_seconds is None:
        lease_seconds = float(current_app.config.get("SYNC_CLAIM_LEASE_SECONDS", 300))

    def _op():
        now = utcnow()
        stale_before = now - timedelta(seconds=lease_seconds)
        claimed = (
            db.session.query(PosOrder)
            .filter(
                PosOrder.id == int(order_id),
                PosOrder.sync_status == SYNC_UNSYNCED,
                or_(PosOrder.sync_claim_token.is_(None), PosOrder.sync_claimed_at < stale_before),
            )
            .update(
                {PosOrder.sync_claim_token: token, PosOrder.sync_claimed_at: now},
                synchronize_session=False,
            )
        )
        db.session.commit()
        return claimed == 1

    return run_with_retry(_op)


def release_sync_claim(order_id: int, token: str) -> bool:
    """Drop the lease if it is still ours; a lease taken over is left alone."""
    def _op():
        released = (
            db.session.query(PosOrder)
            .filter(PosOrder.id == int(order_id), PosOrder.sync_claim_token == token)
            .update(
                {PosOrder.sync_claim_token: None, PosOrder.sync_claimed_at: None},
                synchronize_session=False,
            )
        )
        db.session.commit()
        return released == 1

    return run_with_retry(_op)
