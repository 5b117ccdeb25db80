"""
Pytest fixtures for possync backend tests.

Provides the test app on in-memory SQLite, a fresh database per test, a test
client, and a fake upstream commerce platform served through
httpx.MockTransport.
"""

import json
import math
import threading
from datetime import datetime, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from possync import create_app
from possync.extensions import db
from possync.services import catalog_service
from possync.services.upstream_client import API_PREFIX, UpstreamClient, UpstreamConfig
from possync.time_utils import parse_iso_datetime

STORE_URL = "https://shop.test"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'UPSTREAM_URL': '',
    'UPSTREAM_CONSUMER_KEY': '',
    'UPSTREAM_CONSUMER_SECRET': '',
    'UPSTREAM_TRANSPORT': None,
    'UPSTREAM_ALLOW_INSECURE': False,
    'CATALOG_MISS_POLICY': 'single',
    'SYNC_ON_CHECKOUT': True,
    'SYNC_CHECK_EXISTING': True,
    'SYNC_CLAIM_LEASE_SECONDS': 300,
    'SYNC_LOOKBACK_HOURS': 24,
    'POS_TAX_RATE': '0.10',
    'LOW_STOCK_THRESHOLD': 10,
}


def product_json(product_id, name, *, sku=None, price="10.00", stock=None,
                 manage_stock=True, stock_status="instock", sale_price=""):
    """Product as the upstream REST API returns it."""
    return {
        "id": product_id,
        "name": name,
        "slug": name.lower().replace(" ", "-"),
        "sku": sku or "",
        "price": sale_price or price,
        "regular_price": price,
        "sale_price": sale_price,
        "on_sale": bool(sale_price),
        "status": "publish",
        "stock_status": stock_status,
        "stock_quantity": stock,
        "manage_stock": manage_stock,
        "categories": [{"id": 1, "name": "General"}],
        "images": [],
        "weight": "",
        "dimensions": {"length": "", "width": "", "height": ""},
        "short_description": "",
        "description": "",
    }


def customer_json(customer_id, email, first_name="Jane", last_name="Doe"):
    return {
        "id": customer_id,
        "email": email,
        "first_name": first_name,
        "last_name": last_name,
        "username": email.split("@")[0],
        "billing": {"first_name": first_name, "last_name": last_name, "email": email},
        "shipping": {"first_name": first_name, "last_name": last_name},
        "avatar_url": "",
        "date_created": "2026-01-05T10:00:00",
        "orders_count": 2,
        "total_spent": "45.50",
    }


def order_json(order_id, pos_order_id=None, *, created_gmt=None, total="0.00", billing=None):
    """Order as the upstream REST API returns it; created now unless given."""
    created = created_gmt or datetime.now(timezone.utc).replace(tzinfo=None)
    meta = [{"key": "_pos_order_id", "value": pos_order_id}] if pos_order_id else []
    return {
        "id": order_id,
        "number": str(order_id),
        "status": "processing",
        "total": total,
        "billing": billing or {},
        "line_items": [],
        "meta_data": meta,
        "date_created": created.replace(microsecond=0).isoformat(),
        "date_created_gmt": created.replace(microsecond=0).isoformat(),
    }


# Fields the platform's order search indexes; meta data is not among them.
ORDER_SEARCH_FIELDS = ("first_name", "last_name", "email", "phone", "company", "address_1", "city")


class FakeUpstream:
    """
    In-memory stand-in for the commerce platform REST API.

    Set `fail_with` to an HTTP status code, "timeout" or "connect" to make
    every request fail that way. Set `lose_next_order_response` to store the
    next POSTed order and then time out, as when the response is lost.
    `on_request(method, path)` runs before each request is answered.
    Listings carry X-WP-Total / X-WP-TotalPages unless `send_total_pages`
    is off; `ignore_page` answers every page with the first one.
    """

    def __init__(self):
        self.products = {}
        self.customers = {}
        self.orders = []
        self.requests = []
        self.fail_with = None
        self.lose_next_order_response = False
        self.on_request = None
        self.send_total_pages = True
        self.ignore_page = False
        self.next_id = 1000
        self._lock = threading.Lock()

    def transport(self):
        return httpx.MockTransport(self.handle)

    def calls(self, method, path):
        return [r for r in self.requests if r[0] == method and r[1] == path]

    def _json(self, status, data):
        return httpx.Response(status, json=data)

    def _page(self, items, params):
        per_page = int(params.get("per_page", 10))
        page = 1 if self.ignore_page else int(params.get("page", 1))
        start = (page - 1) * per_page
        headers = {}
        if self.send_total_pages:
            headers = {
                "X-WP-Total": str(len(items)),
                "X-WP-TotalPages": str(max(1, math.ceil(len(items) / per_page))),
            }
        return httpx.Response(200, json=items[start:start + per_page], headers=headers)

    def _search_orders(self, items, params):
        search = (params.get("search") or "").lower()
        if search:
            items = [
                o for o in items
                if search == o.get("number", "").lower()
                or any(search in str(o.get("billing", {}).get(field, "")).lower() for field in ORDER_SEARCH_FIELDS)
            ]
        after = params.get("after")
        if after:
            # The fake store runs on UTC
            cutoff = parse_iso_datetime(after)
            items = [o for o in items if parse_iso_datetime(o["date_created_gmt"]) > cutoff]
        if params.get("order") == "asc":
            items = sorted(items, key=lambda o: (o["date_created_gmt"], o["id"]))
        else:
            items = sorted(items, key=lambda o: (o["date_created_gmt"], o["id"]), reverse=True)
        return items

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path[len(API_PREFIX):] if request.url.path.startswith(API_PREFIX) else request.url.path
        params = {k: v[0] for k, v in parse_qs(request.url.query.decode()).items()}
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, params, body))
        if self.on_request is not None:
            self.on_request(request.method, path)

        if self.fail_with == "timeout":
            raise httpx.ConnectTimeout("timed out", request=request)
        if self.fail_with == "connect":
            raise httpx.ConnectError("connection refused", request=request)
        if self.fail_with is not None:
            return self._json(self.fail_with, {"code": "error", "message": f"upstream said {self.fail_with}"})

        parts = path.strip("/").split("/")
        resource = parts[0]
        item_id = int(parts[1]) if len(parts) > 1 and parts[1].isdigit() else None

        if resource == "system_status":
            return self._json(200, {"environment": {"version": "8.5.1"}})

        if resource == "products":
            if item_id is None:
                items = sorted(self.products.values(), key=lambda p: p["id"])
                search = (params.get("search") or "").lower()
                if search:
                    items = [p for p in items if search in p["name"].lower() or search in p["sku"].lower()]
                return self._page(items, params)
            product = self.products.get(item_id)
            if product is None:
                return self._json(404, {"code": "woocommerce_rest_product_invalid_id", "message": "Invalid ID."})
            if request.method == "PUT":
                product.update(body or {})
            return self._json(200, product)

        if resource == "customers":
            if request.method == "POST":
                with self._lock:
                    customer = customer_json(self.next_id, body["email"], body["first_name"], body["last_name"])
                    self.next_id += 1
                self.customers[customer["id"]] = customer
                return self._json(201, customer)
            items = sorted(self.customers.values(), key=lambda c: c["id"])
            search = (params.get("search") or "").lower()
            if search:
                items = [c for c in items if search in c["email"].lower()]
            return self._page(items, params)

        if resource == "orders":
            if request.method == "POST":
                with self._lock:
                    order = order_json(self.next_id)
                    self.next_id += 1
                order.update(body)
                self.orders.append(order)
                if self.lose_next_order_response:
                    self.lose_next_order_response = False
                    raise httpx.ReadTimeout("response lost", request=request)
                return self._json(201, order)
            return self._page(self._search_orders(list(self.orders), params), params)

        return self._json(404, {"code": "rest_no_route", "message": "No route was found"})


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def fake_upstream(app):
    """Fake upstream wired into the app and configured via UPSTREAM_* keys."""
    fake = FakeUpstream()
    app.config.update({
        'UPSTREAM_URL': STORE_URL,
        'UPSTREAM_CONSUMER_KEY': 'ck_test_1234',
        'UPSTREAM_CONSUMER_SECRET': 'cs_test_5678',
        'UPSTREAM_TRANSPORT': fake.transport(),
    })
    yield fake
    app.config.update({key: TEST_CONFIG[key] for key in (
        'UPSTREAM_URL', 'UPSTREAM_CONSUMER_KEY', 'UPSTREAM_CONSUMER_SECRET',
        'UPSTREAM_TRANSPORT', 'CATALOG_MISS_POLICY', 'SYNC_ON_CHECKOUT', 'SYNC_CHECK_EXISTING',
    )})


@pytest.fixture(scope='function')
def upstream_client(fake_upstream):
    """UpstreamClient talking to the fake upstream."""
    config = UpstreamConfig(store_url=STORE_URL, consumer_key='ck_test_1234', consumer_secret='cs_test_5678')
    with UpstreamClient(config, transport=fake_upstream.transport()) as client:
        yield client


@pytest.fixture(scope='function')
def actor_headers():
    return {"X-POS-User-Id": "7", "X-POS-User-Name": "Alice Cashier"}


@pytest.fixture(scope='function')
def make_product(db_session):
    """Insert a cached product (stock-managed by default)."""
    def _make(product_id, name="Widget", *, sku=None, price_cents=1000, stock=5, manage_stock=True, **extra):
        fields = {
            "id": product_id,
            "name": name,
            "sku": sku,
            "price_cents": price_cents,
            "regular_price_cents": price_cents,
            "stock_quantity": stock,
            "manage_stock": manage_stock,
            "stock_status": "in_stock",
        }
        fields.update(extra)
        return catalog_service.upsert_product(fields)
    return _make
