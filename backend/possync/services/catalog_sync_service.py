# Overview: Caller-side catalog population: full syncs and fetch-on-miss.

"""
Catalog sync and fetch-on-miss

The catalog cache itself never calls the network. This module is the
caller that decides when to go upstream:

- sync_products / sync_customers: full paginated fetch, then one atomic
  replace_all. Upstream errors propagate to the caller.
- lookup_product / lookup_product_by_sku / list_or_fetch_*: cache first;
  on a miss, fetch according to the catalog miss policy:
      single -> fetch just the missing product (or one search page) and upsert
      bulk   -> run a full sync, then read the cache again
  Upstream failures here mean "no data available": None or an empty list,
  logged at warning level, never an error for the caller.
- push_stock: best-effort stock write-back after a local adjustment; the
  local quantity is re-checked after each PUT so the last write upstream
  carries the latest local value.

Every upstream call happens after the local transaction has committed and
outside any cache key lock.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from flask import current_app

from ..errors import UpstreamError
from ..extensions import db
from ..models import CachedCustomer, CachedProduct
from . import catalog_service
from .settings_service import MISS_POLICY_BULK, build_upstream_client, get_catalog_miss_policy
from .upstream_client import UpstreamClient
from .upstream_schemas import CustomerCreateRequest

STOCK_PUSH_ATTEMPTS = 3


@contextmanager
def upstream_session(client: UpstreamClient | None = None) -> Iterator[UpstreamClient]:
    """Yield the given client, or build one from settings and close it after."""
    if client is not None:
        yield client
        return
    with build_upstream_client() as built:
        yield built


# =============================================================================
# FULL SYNC
# =============================================================================

def sync_products(client: UpstreamClient | None = None) -> int:
    """Replace the product cache with the full upstream catalog."""
    with upstream_session(client) as upstream:
        records = upstream.fetch_all_products()
    count = catalog_service.replace_all_products(records)
    current_app.logger.info("Product catalog synced: %d products", count)
    return count


def sync_customers(client: UpstreamClient | None = None) -> int:
    with upstream_session(client) as upstream:
        records = upstream.fetch_all_customers()
    count = catalog_service.replace_all_customers(records)
    current_app.logger.info("Customer list synced: %d customers", count)
    return count


# =============================================================================
# FETCH-ON-MISS
# =============================================================================

def lookup_product(product_id: int, client: UpstreamClient | None = None) -> CachedProduct | None:
    product = catalog_service.get_product(product_id)
    if product is not None:
        return product

    try:
        if get_catalog_miss_policy() == MISS_POLICY_BULK:
            sync_products(client)
        else:
            with upstream_session(client) as upstream:
                record = upstream.get_product(product_id)
            catalog_service.upsert_product(record)
    except UpstreamError as exc:
        current_app.logger.warning("Product %s not cached and upstream fetch failed: %s", product_id, exc)
        return None
    return catalog_service.get_product(product_id)


def lookup_product_by_sku(sku: str, client: UpstreamClient | None = None) -> CachedProduct | None:
    product = catalog_service.get_product_by_sku(sku)
    if product is not None or not (sku or "").strip():
        return product

    try:
        if get_catalog_miss_policy() == MISS_POLICY_BULK:
            sync_products(client)
        else:
            with upstream_session(client) as upstream:
                records = upstream.list_products(search=sku.strip(), per_page=20)
            for record in records:
                catalog_service.upsert_product(record)
    except UpstreamError as exc:
        current_app.logger.warning("SKU %r not cached and upstream fetch failed: %s", sku, exc)
        return None
    return catalog_service.get_product_by_sku(sku)


def list_or_fetch_products(
    search: str | None = None,
    per_page: int = 20,
    page: int = 1,
    client: UpstreamClient | None = None,
) -> tuple[list[CachedProduct], bool]:
    """
    Cached products, fetching from upstream when the cache has none.

    Returns (products, upstream_available). upstream_available is False
    only when a fetch was needed and failed.
    """
    offset = (page - 1) * per_page

    def _read() -> list[CachedProduct]:
        if search:
            return catalog_service.search_products(search, limit=per_page)
        return catalog_service.list_products(limit=per_page, offset=offset)

    products = _read()
    if products:
        return products, True

    try:
        if get_catalog_miss_policy() == MISS_POLICY_BULK:
            sync_products(client)
        else:
            with upstream_session(client) as upstream:
                records = upstream.list_products(page=page, per_page=per_page, search=search or None)
            for record in records:
                catalog_service.upsert_product(record)
    except UpstreamError as exc:
        current_app.logger.warning("Product cache empty and upstream fetch failed: %s", exc)
        return [], False
    return _read(), True


def list_or_fetch_customers(
    search: str | None = None,
    per_page: int = 20,
    page: int = 1,
    client: UpstreamClient | None = None,
) -> tuple[list[CachedCustomer], bool]:
    offset = (page - 1) * per_page

    def _read() -> list[CachedCustomer]:
        if search:
            return catalog_service.search_customers(search, limit=per_page)
        return catalog_service.list_customers(limit=per_page, offset=offset)

    customers = _read()
    if customers:
        return customers, True

    try:
        if get_catalog_miss_policy() == MISS_POLICY_BULK:
            sync_customers(client)
        else:
            with upstream_session(client) as upstream:
                records = upstream.list_customers(page=page, per_page=per_page, search=search or None)
            for record in records:
                catalog_service.upsert_customer(record)
    except UpstreamError as exc:
        current_app.logger.warning("Customer cache empty and upstream fetch failed: %s", exc)
        return [], False
    return _read(), True


# =============================================================================
# WRITES THROUGH UPSTREAM
# =============================================================================

def create_customer(
    *,
    email: str,
    first_name: str,
    last_name: str,
    phone: str | None = None,
    billing: dict | None = None,
    shipping: dict | None = None,
    client: UpstreamClient | None = None,
) -> CachedCustomer:
    """
    Create the customer upstream, then cache the upstream record.

    Raises:
        UpstreamError subclasses; nothing is cached on failure
    """
    request = CustomerCreateRequest(
        email=email,
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        billing=billing,
        shipping=shipping,
    )
    with upstream_session(client) as upstream:
        record = upstream.create_customer(request)
    customer = catalog_service.upsert_customer(record)
    current_app.logger.info("Customer %s created upstream (%s)", record.id, record.email)
    return customer


def _local_stock(product_id: int) -> int | None:
    """Current cached quantity of a stock-managed product, read fresh."""
    db.session.commit()
    product = catalog_service.get_product(product_id)
    quantity = None
    if product is not None and product.manage_stock:
        quantity = product.stock_quantity or 0
    db.session.commit()
    return quantity


def push_stock(product_id: int, client: UpstreamClient | None = None) -> bool:
    """
    Best-effort write of the cached stock quantity upstream.

    The local ledger stays authoritative for the cache: the upstream response
    does not overwrite local stock. Returns False when nothing was pushed.

    After each PUT the local quantity is read again and pushed once more if
    it moved, so pushes for two close adjustments that land out of order
    still leave the latest quantity upstream.
    """
    quantity = _local_stock(product_id)
    if quantity is None:
        return False

    try:
        with upstream_session(client) as upstream:
            for _ in range(STOCK_PUSH_ATTEMPTS):
                upstream.update_product_stock(product_id, quantity)
                latest = _local_stock(product_id)
                if latest is None or latest == quantity:
                    break
                quantity = latest
            else:
                current_app.logger.warning(
                    "Stock for product %s kept changing; upstream may lag the local quantity", product_id
                )
                return False
    except UpstreamError as exc:
        current_app.logger.warning("Stock push for product %s failed: %s", product_id, exc)
        return False

    catalog_service.mark_product_synced(product_id)
    return True
