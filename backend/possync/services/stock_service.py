# Overview: Service-layer operations for the stock adjustment ledger.

"""
Stock Adjustment Invariants (authoritative)

- Every stock change is one StockAdjustment row, appended in the same DB
  transaction that writes the new quantity into the catalog cache.
- quantity_after = quantity_before + quantity_change, where the signed
  change is derived from the kind:
      add      -> +magnitude
      subtract -> -magnitude
      set      -> magnitude - quantity_before
- No clamping: a subtract past zero stores a negative quantity.
- A NULL cached quantity counts as 0.
- Adjustments to one product are serialized (per-product key lock plus a
  row lock where the database honors it). Different products do not block
  each other.
- Rows are never updated or deleted.
"""

from __future__ import annotations

from ..errors import InvalidAdjustment, NotFoundError
from ..extensions import db
from ..models import CachedProduct, StockAdjustment
from ..models.inventory import ADJUST_ADD, ADJUST_SET, ADJUST_SUBTRACT, VALID_ADJUSTMENT_TYPES
from .catalog_service import catalog_locks, product_key, write_stock_quantity
from .concurrency import lock_for_update, run_with_retry


def compute_delta(kind: str, magnitude: int, quantity_before: int) -> int:
    """Signed quantity change for an adjustment kind."""
    if kind == ADJUST_ADD:
        return magnitude
    if kind == ADJUST_SUBTRACT:
        return -magnitude
    if kind == ADJUST_SET:
        return magnitude - quantity_before
    raise InvalidAdjustment(
        f"Unknown adjustment type: {kind!r}",
        details={"valid_types": list(VALID_ADJUSTMENT_TYPES)},
    )


def _validate_request(kind: str, magnitude, actor: str) -> None:
    if kind not in VALID_ADJUSTMENT_TYPES:
        raise InvalidAdjustment(
            f"Unknown adjustment type: {kind!r}",
            details={"valid_types": list(VALID_ADJUSTMENT_TYPES)},
        )
    if isinstance(magnitude, bool) or not isinstance(magnitude, int):
        raise InvalidAdjustment("Quantity must be an integer")
    if magnitude <= 0:
        raise InvalidAdjustment("Quantity must be greater than zero", details={"quantity": magnitude})
    if not actor or not str(actor).strip():
        raise InvalidAdjustment("Actor is required")


def adjust_stock(
    product_id: int,
    kind: str,
    magnitude: int,
    actor: str,
    notes: str | None = None,
) -> StockAdjustment:
    """
    Apply one stock adjustment to a cached product.

    Returns the appended StockAdjustment.

    Raises:
        InvalidAdjustment: bad kind, magnitude, actor, or unmanaged product
        NotFoundError: product is not in the cache
    """
    _validate_request(kind, magnitude, actor)
    actor = str(actor).strip()
    notes = notes.strip() if isinstance(notes, str) and notes.strip() else None

    def _op():
        product = lock_for_update(
            db.session.query(CachedProduct).filter_by(id=int(product_id))
        ).first()
        if product is None:
            db.session.rollback()
            raise NotFoundError("Product not found", details={"product_id": product_id})
        if not product.manage_stock:
            db.session.rollback()
            raise InvalidAdjustment(
                "Product does not track stock",
                details={"product_id": product_id},
            )

        before = product.stock_quantity if product.stock_quantity is not None else 0
        delta = compute_delta(kind, magnitude, before)
        after = before + delta

        write_stock_quantity(product, after)
        adjustment = StockAdjustment(
            product_id=product.id,
            actor=actor,
            adjustment_type=kind,
            quantity_change=delta,
            quantity_before=before,
            quantity_after=after,
            notes=notes,
        )
        db.session.add(adjustment)
        db.session.commit()
        return adjustment

    with catalog_locks.hold(product_key(product_id)):
        return run_with_retry(_op)


def list_adjustments_for_product(product_id: int, limit: int = 50) -> list[StockAdjustment]:
    """Newest first. History survives removal of the cached product."""
    return (
        db.session.query(StockAdjustment)
        .filter(StockAdjustment.product_id == int(product_id))
        .order_by(StockAdjustment.created_at.desc(), StockAdjustment.id.desc())
        .limit(limit)
        .all()
    )
