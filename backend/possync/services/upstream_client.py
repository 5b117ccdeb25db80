# Overview: HTTP client for the upstream commerce platform REST API.

"""
UpstreamClient

WHY stateless: the client never retries and never caches. Callers decide
what a failure means (order sync records it and retries on the next pass;
catalog reads fall back to "no data available").

Error mapping:
- timeout / connection failure / 5xx / 429 / non-JSON body -> UpstreamUnavailable
- other 4xx -> UpstreamRejected (message taken from the upstream error body)
- 2xx with an unexpected JSON shape -> UpstreamSchemaError

Paging: listings stop at a short page or at X-WP-TotalPages, whichever
comes first. A listing still returning full pages after MAX_PAGES raises
UpstreamSchemaError instead of looping.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator, Optional
from urllib.parse import urlparse

import httpx

from ..errors import UpstreamNotConfigured, UpstreamRejected, UpstreamSchemaError, UpstreamUnavailable
from ..time_utils import to_utc_z
from .upstream_schemas import (
    CustomerCreateRequest,
    CustomerRecord,
    OrderCreateRequest,
    OrderSummary,
    ProductRecord,
    parse_list,
    stock_update_request,
)

API_PREFIX = "/wp-json/wc/v3"
PAGE_SIZE = 100
MAX_PAGES = 1000

@dataclass(frozen=True)
class UpstreamConfig:
    store_url: str
    consumer_key: str
    consumer_secret: str
    timeout: float = 10.0
    verify_tls: bool = True
    allow_insecure: bool = False

    def validate(self) -> None:
        if not self.store_url or not self.consumer_key or not self.consumer_secret:
            raise UpstreamNotConfigured("Upstream store URL and credentials are not configured")
        parsed = urlparse(self.store_url)
        if parsed.scheme not in ("https", "http") or not parsed.netloc:
            raise UpstreamNotConfigured(f"Invalid upstream store URL: {self.store_url!r}")
        if parsed.scheme != "https" and not self.allow_insecure:
            raise UpstreamNotConfigured("Upstream store URL must use https")
        if self.timeout <= 0:
            raise UpstreamNotConfigured("Upstream timeout must be positive")

    @property
    def api_base_url(self) -> str:
        return self.store_url.rstrip("/") + API_PREFIX


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status_code}"


def _total_pages(response: httpx.Response) -> int | None:
    raw = response.headers.get("X-WP-TotalPages")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class UpstreamClient:
    """
    Authenticated client for products, customers and orders.

    Usable as a context manager; close() releases the connection pool.
    """

    def __init__(self, config: UpstreamConfig, transport: Optional[httpx.BaseTransport] = None):
        config.validate()
        self.config = config
        self.client = httpx.Client(
            base_url=config.api_base_url,
            auth=httpx.BasicAuth(config.consumer_key, config.consumer_secret),
            timeout=httpx.Timeout(config.timeout),
            verify=config.verify_tls,
            transport=transport,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "UpstreamClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _send(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> httpx.Response:
        try:
            response = self.client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as exc:
            raise UpstreamUnavailable(f"Upstream timed out: {method} {path}") from exc
        except httpx.TransportError as exc:
            raise UpstreamUnavailable(f"Upstream unreachable: {exc}") from exc

        status = response.status_code
        if status >= 500 or status == 429:
            raise UpstreamUnavailable(_error_message(response), status_code=status)
        if status >= 400:
            raise UpstreamRejected(_error_message(response), status_code=status)
        return response

    @staticmethod
    def _decode(response: httpx.Response, method: str, path: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamUnavailable(
                f"Upstream returned a non-JSON body for {method} {path}", status_code=response.status_code
            ) from exc

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> Any:
        return self._decode(self._send(method, path, params=params, json=json), method, path)

    def _iter_pages(
        self,
        path: str,
        what: str,
        params: Optional[dict] = None,
        per_page: int = PAGE_SIZE,
        max_pages: int = MAX_PAGES,
    ) -> Iterator[list]:
        """Yield raw JSON items page by page."""
        page = 1
        while True:
            query = dict(params or {}, page=page, per_page=per_page)
            response = self._send("GET", path, params=query)
            batch = parse_list(self._decode(response, "GET", path), what)
            yield batch

            total_pages = _total_pages(response)
            if len(batch) < per_page or (total_pages is not None and page >= total_pages):
                return
            if page >= max_pages:
                raise UpstreamSchemaError(
                    f"Upstream {what} listing still returned full pages after {max_pages} pages",
                    details={"per_page": per_page},
                )
            page += 1

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def list_products(
        self,
        *,
        page: int = 1,
        per_page: int = 20,
        search: str | None = None,
        status: str = "publish",
    ) -> list[ProductRecord]:
        params: dict[str, Any] = {"page": page, "per_page": per_page, "status": status}
        if search:
            params["search"] = search
        data = parse_list(self._request("GET", "/products", params=params), "products")
        return [ProductRecord.from_json(item) for item in data]

    def fetch_all_products(self, per_page: int = PAGE_SIZE, max_pages: int = MAX_PAGES) -> list[ProductRecord]:
        """Every published product, page by page."""
        return [
            ProductRecord.from_json(item)
            for batch in self._iter_pages("/products", "products", {"status": "publish"}, per_page, max_pages)
            for item in batch
        ]

    def get_product(self, product_id: int) -> ProductRecord:
        return ProductRecord.from_json(self._request("GET", f"/products/{int(product_id)}"))

    def update_product_stock(self, product_id: int, quantity: int) -> ProductRecord:
        data = self._request("PUT", f"/products/{int(product_id)}", json=stock_update_request(quantity))
        return ProductRecord.from_json(data)

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    def list_customers(
        self,
        *,
        page: int = 1,
        per_page: int = 20,
        search: str | None = None,
    ) -> list[CustomerRecord]:
        params: dict[str, Any] = {"page": page, "per_page": per_page}
        if search:
            params["search"] = search
        data = parse_list(self._request("GET", "/customers", params=params), "customers")
        return [CustomerRecord.from_json(item) for item in data]

    def fetch_all_customers(self, per_page: int = PAGE_SIZE, max_pages: int = MAX_PAGES) -> list[CustomerRecord]:
        return [
            CustomerRecord.from_json(item)
            for batch in self._iter_pages("/customers", "customers", None, per_page, max_pages)
            for item in batch
        ]

    def create_customer(self, request: CustomerCreateRequest) -> CustomerRecord:
        return CustomerRecord.from_json(self._request("POST", "/customers", json=request.to_json()))

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_order(self, request: OrderCreateRequest) -> OrderSummary:
        return OrderSummary.from_json(self._request("POST", "/orders", json=request.to_json()))

    def list_orders(self, *, per_page: int = 50, search: str | None = None) -> list[OrderSummary]:
        params: dict[str, Any] = {"per_page": per_page, "orderby": "date", "order": "desc"}
        if search:
            params["search"] = search
        data = parse_list(self._request("GET", "/orders", params=params), "orders")
        return [OrderSummary.from_json(item) for item in data]

    def find_order_by_pos_id(
        self,
        pos_order_id: str,
        created_after: datetime,
        per_page: int = PAGE_SIZE,
        max_pages: int = MAX_PAGES,
    ) -> int | None:
        """
        Return the upstream id of an order already tagged with pos_order_id.

        Order search does not index meta data, so every order created after
        created_after (UTC) is paged oldest first and the _pos_order_id tag
        is matched here.
        """
        params = {
            "after": to_utc_z(created_after),
            "dates_are_gmt": "true",
            "orderby": "date",
            "order": "asc",
            "status": "any",
        }
        for batch in self._iter_pages("/orders", "orders", params, per_page, max_pages):
            for item in batch:
                summary = OrderSummary.from_json(item)
                if summary.pos_order_id == pos_order_id:
                    return summary.id
        return None

    # ------------------------------------------------------------------
    # System
    # ------------------------------------------------------------------

    def system_status(self) -> dict:
        data = self._request("GET", "/system_status")
        if not isinstance(data, dict):
            return {}
        environment = data.get("environment") if isinstance(data.get("environment"), dict) else {}
        return {"version": environment.get("version") or "Unknown"}
