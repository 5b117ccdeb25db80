# Overview: Service-layer operations for the local catalog cache.

"""
Catalog Cache Invariants (authoritative)

- The cache never calls the network. A miss returns None; fetching from
  upstream is the caller's job (see catalog_sync_service).
- replace_all_* swaps the whole collection in one DB transaction while
  holding every key lock, so readers never observe a half-replaced set.
- Writes to one product/customer id are serialized with per-key locks.
- Stock quantity is owned by the stock adjustment ledger: patch_product
  refuses it, and only write_stock_quantity / wholesale replacement set it.
- Managed stock: quantity is never NULL and stock_status is derived from it
  unless it was manually set to on_backorder.
"""

from __future__ import annotations

from typing import Any, Iterable

from sqlalchemy import func, or_

from ..extensions import db
from ..models import CachedCustomer, CachedProduct
from ..models.catalog import (
    STOCK_IN_STOCK,
    STOCK_ON_BACKORDER,
    STOCK_OUT_OF_STOCK,
    VALID_STOCK_STATUSES,
)
from ..time_utils import utcnow
from ..validation import ValidationError
from .concurrency import KeyedLocks, lock_for_update, run_with_retry
from .upstream_schemas import CustomerRecord, ProductRecord

catalog_locks = KeyedLocks()

PRODUCT_FIELDS = {
    "name", "slug", "sku", "price_cents", "regular_price_cents", "sale_price_cents",
    "on_sale", "status", "stock_status", "stock_quantity", "manage_stock",
    "categories", "images", "weight", "dimensions", "short_description", "description",
}

# Price edits and manual status override; stock_quantity belongs to the ledger
PRODUCT_PATCHABLE_FIELDS = {
    "name", "sku", "regular_price_cents", "sale_price_cents", "status",
    "stock_status", "categories", "images", "short_description", "description",
}

CUSTOMER_FIELDS = {
    "email", "first_name", "last_name", "display_name", "username", "billing",
    "shipping", "avatar_url", "date_created", "orders_count", "total_spent_cents",
}


def product_key(product_id: int) -> tuple:
    return ("product", int(product_id))


def customer_key(customer_id: int) -> tuple:
    return ("customer", int(customer_id))


# =============================================================================
# STOCK STATUS
# =============================================================================

def derive_stock_status(quantity: int | None, current_status: str | None) -> str:
    """Status for a managed-stock product; on_backorder is a manual override."""
    if current_status == STOCK_ON_BACKORDER:
        return STOCK_ON_BACKORDER
    if quantity is None or quantity <= 0:
        return STOCK_OUT_OF_STOCK
    return STOCK_IN_STOCK


def _apply_stock_invariant(product: CachedProduct) -> None:
    if not product.manage_stock:
        return
    if product.stock_quantity is None:
        product.stock_quantity = 0
    product.stock_status = derive_stock_status(product.stock_quantity, product.stock_status)


def _apply_effective_price(product: CachedProduct) -> None:
    if product.sale_price_cents is not None:
        product.price_cents = product.sale_price_cents
        product.on_sale = True
    else:
        product.price_cents = product.regular_price_cents
        product.on_sale = False


def _product_fields(record: ProductRecord | dict) -> dict:
    fields = record.to_cache_fields() if isinstance(record, ProductRecord) else dict(record)
    if "id" not in fields:
        raise ValidationError("product id is required")
    if not fields.get("name"):
        raise ValidationError("product name is required")
    status = fields.get("stock_status")
    if status is not None and status not in VALID_STOCK_STATUSES:
        raise ValidationError(f"stock_status must be one of {', '.join(VALID_STOCK_STATUSES)}")
    return fields


def _build_product(fields: dict, synced_at) -> CachedProduct:
    product = CachedProduct(id=int(fields["id"]))
    for key in PRODUCT_FIELDS:
        if key in fields:
            setattr(product, key, fields[key])
    if product.stock_status is None:
        product.stock_status = STOCK_IN_STOCK
    product.last_synced_at = synced_at
    _apply_stock_invariant(product)
    return product


def _evict(model) -> None:
    """Detach cached rows of one model so a wholesale swap can re-add the same ids."""
    for obj in [o for o in db.session.identity_map.values() if isinstance(o, model)]:
        db.session.expunge(obj)


# =============================================================================
# PRODUCT READS
# =============================================================================

def get_product(product_id: int) -> CachedProduct | None:
    return db.session.get(CachedProduct, int(product_id))


def get_product_by_sku(sku: str) -> CachedProduct | None:
    """Exact secondary-key lookup (barcode scans)."""
    sku = (sku or "").strip()
    if not sku:
        return None
    return (
        db.session.query(CachedProduct)
        .filter(CachedProduct.sku == sku)
        .order_by(CachedProduct.id.asc())
        .first()
    )


def search_products(text: str, limit: int | None = None) -> list[CachedProduct]:
    """Case-insensitive substring match over name and SKU."""
    term = (text or "").strip().lower()
    if not term:
        return list_products(limit=limit)
    query = (
        db.session.query(CachedProduct)
        .filter(or_(
            func.lower(CachedProduct.name).contains(term, autoescape=True),
            func.lower(CachedProduct.sku).contains(term, autoescape=True),
        ))
        .order_by(CachedProduct.name.asc(), CachedProduct.id.asc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def list_products(limit: int | None = 100, offset: int = 0) -> list[CachedProduct]:
    query = db.session.query(CachedProduct).order_by(CachedProduct.name.asc(), CachedProduct.id.asc())
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    return query.all()


def count_products() -> int:
    return db.session.query(CachedProduct).count()


# =============================================================================
# PRODUCT WRITES
# =============================================================================

def replace_all_products(records: Iterable[ProductRecord | dict]) -> int:
    """
    Atomically replace the whole product collection (after a full sync).

    Returns the number of cached products.
    """
    prepared = [_product_fields(record) for record in records]

    def _op():
        synced_at = utcnow()
        _evict(CachedProduct)
        db.session.query(CachedProduct).delete(synchronize_session=False)
        seen: set[int] = set()
        for fields in prepared:
            product_id = int(fields["id"])
            if product_id in seen:
                continue
            seen.add(product_id)
            db.session.add(_build_product(fields, synced_at))
        db.session.commit()
        return len(seen)

    with catalog_locks.hold_all():
        return run_with_retry(_op)


def upsert_product(record: ProductRecord | dict) -> CachedProduct:
    """Insert or wholesale-refresh one product from upstream data."""
    fields = _product_fields(record)
    product_id = int(fields["id"])

    def _op():
        existing = lock_for_update(db.session.query(CachedProduct).filter_by(id=product_id)).first()
        if existing is None:
            product = _build_product(fields, utcnow())
            db.session.add(product)
        else:
            product = existing
            for key in PRODUCT_FIELDS:
                if key in fields:
                    setattr(product, key, fields[key])
            product.last_synced_at = utcnow()
            _apply_stock_invariant(product)
        db.session.commit()
        return product

    with catalog_locks.hold(product_key(product_id)):
        return run_with_retry(_op)


def patch_product(product_id: int, patch: dict[str, Any]) -> CachedProduct | None:
    """
    Apply a partial edit (price edits, manual stock status override).

    Returns None when the product is not cached.

    Raises:
        ValidationError: for stock_quantity or unknown fields
    """
    unknown = set(patch) - PRODUCT_PATCHABLE_FIELDS
    if "stock_quantity" in unknown or "manage_stock" in unknown:
        raise ValidationError("stock quantity can only be changed through a stock adjustment")
    if unknown:
        raise ValidationError(f"fields not editable: {', '.join(sorted(unknown))}")
    if "stock_status" in patch and patch["stock_status"] not in VALID_STOCK_STATUSES:
        raise ValidationError(f"stock_status must be one of {', '.join(VALID_STOCK_STATUSES)}")
    if "name" in patch and not patch["name"]:
        raise ValidationError("name cannot be empty")

    def _op():
        product = lock_for_update(db.session.query(CachedProduct).filter_by(id=int(product_id))).first()
        if product is None:
            return None
        for key, value in patch.items():
            setattr(product, key, value)
        if "regular_price_cents" in patch or "sale_price_cents" in patch:
            _apply_effective_price(product)
        _apply_stock_invariant(product)
        db.session.commit()
        return product

    with catalog_locks.hold(product_key(product_id)):
        return run_with_retry(_op)


def write_stock_quantity(product: CachedProduct, quantity: int) -> None:
    """
    Set stock quantity and re-derive status. Does not commit.

    Only the stock adjustment ledger calls this, inside its own lock and
    transaction.
    """
    product.stock_quantity = int(quantity)
    product.stock_status = derive_stock_status(product.stock_quantity, product.stock_status)


def mark_product_synced(product_id: int) -> None:
    def _op():
        product = db.session.get(CachedProduct, int(product_id))
        if product is not None:
            product.last_synced_at = utcnow()
            db.session.commit()

    with catalog_locks.hold(product_key(product_id)):
        run_with_retry(_op)


def remove_product(product_id: int) -> bool:
    """Explicit removal. Returns False when nothing was cached."""
    def _op():
        product = db.session.get(CachedProduct, int(product_id))
        if product is None:
            return False
        db.session.delete(product)
        db.session.commit()
        return True

    with catalog_locks.hold(product_key(product_id)):
        return run_with_retry(_op)


# =============================================================================
# CUSTOMERS
# =============================================================================

def _customer_fields(record: CustomerRecord | dict) -> dict:
    fields = record.to_cache_fields() if isinstance(record, CustomerRecord) else dict(record)
    if "id" not in fields:
        raise ValidationError("customer id is required")
    if not fields.get("email"):
        raise ValidationError("customer email is required")
    return fields


def _build_customer(fields: dict, synced_at) -> CachedCustomer:
    customer = CachedCustomer(id=int(fields["id"]))
    for key in CUSTOMER_FIELDS:
        if key in fields:
            setattr(customer, key, fields[key])
    if customer.orders_count is None:
        customer.orders_count = 0
    if customer.total_spent_cents is None:
        customer.total_spent_cents = 0
    customer.last_synced_at = synced_at
    return customer


def get_customer(customer_id: int) -> CachedCustomer | None:
    return db.session.get(CachedCustomer, int(customer_id))


def search_customers(text: str, limit: int | None = None) -> list[CachedCustomer]:
    """Case-insensitive substring match over email and names."""
    term = (text or "").strip().lower()
    if not term:
        return list_customers(limit=limit)
    query = (
        db.session.query(CachedCustomer)
        .filter(or_(
            func.lower(CachedCustomer.email).contains(term, autoescape=True),
            func.lower(CachedCustomer.first_name).contains(term, autoescape=True),
            func.lower(CachedCustomer.last_name).contains(term, autoescape=True),
            func.lower(CachedCustomer.display_name).contains(term, autoescape=True),
        ))
        .order_by(CachedCustomer.email.asc(), CachedCustomer.id.asc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def list_customers(limit: int | None = 100, offset: int = 0) -> list[CachedCustomer]:
    query = db.session.query(CachedCustomer).order_by(CachedCustomer.email.asc(), CachedCustomer.id.asc())
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    return query.all()


def count_customers() -> int:
    return db.session.query(CachedCustomer).count()


def replace_all_customers(records: Iterable[CustomerRecord | dict]) -> int:
    prepared = [_customer_fields(record) for record in records]

    def _op():
        synced_at = utcnow()
        _evict(CachedCustomer)
        db.session.query(CachedCustomer).delete(synchronize_session=False)
        seen: set[int] = set()
        for fields in prepared:
            customer_id = int(fields["id"])
            if customer_id in seen:
                continue
            seen.add(customer_id)
            db.session.add(_build_customer(fields, synced_at))
        db.session.commit()
        return len(seen)

    with catalog_locks.hold_all():
        return run_with_retry(_op)


def upsert_customer(record: CustomerRecord | dict) -> CachedCustomer:
    fields = _customer_fields(record)
    customer_id = int(fields["id"])

    def _op():
        existing = lock_for_update(db.session.query(CachedCustomer).filter_by(id=customer_id)).first()
        if existing is None:
            customer = _build_customer(fields, utcnow())
            db.session.add(customer)
        else:
            customer = existing
            for key in CUSTOMER_FIELDS:
                if key in fields:
                    setattr(customer, key, fields[key])
            customer.last_synced_at = utcnow()
        db.session.commit()
        return customer

    with catalog_locks.hold(customer_key(customer_id)):
        return run_with_retry(_op)
