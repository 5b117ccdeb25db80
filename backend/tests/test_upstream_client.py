# Overview: Pytest coverage for the upstream REST client and its boundary schemas.

from datetime import datetime, timedelta

import httpx
import pytest

from possync.errors import UpstreamNotConfigured, UpstreamRejected, UpstreamSchemaError, UpstreamUnavailable
from possync.services.upstream_client import UpstreamClient, UpstreamConfig
from possync.services.upstream_schemas import CustomerCreateRequest, OrderSummary, ProductRecord

from conftest import STORE_URL, customer_json, order_json, product_json


def _client(handler):
    config = UpstreamConfig(store_url=STORE_URL, consumer_key="ck", consumer_secret="cs")
    return UpstreamClient(config, transport=httpx.MockTransport(handler))


class TestUpstreamConfig:

    def test_https_required(self):
        config = UpstreamConfig(store_url="http://shop.test", consumer_key="ck", consumer_secret="cs")
        with pytest.raises(UpstreamNotConfigured):
            config.validate()

    def test_http_allowed_when_insecure_enabled(self):
        UpstreamConfig(
            store_url="http://localhost:8080", consumer_key="ck", consumer_secret="cs", allow_insecure=True,
        ).validate()

    @pytest.mark.parametrize("url,key,secret", [
        ("", "ck", "cs"),
        (STORE_URL, "", "cs"),
        (STORE_URL, "ck", ""),
        ("shop.test", "ck", "cs"),
    ])
    def test_missing_or_malformed(self, url, key, secret):
        with pytest.raises(UpstreamNotConfigured):
            UpstreamConfig(store_url=url, consumer_key=key, consumer_secret=secret).validate()

    def test_api_base_url(self):
        config = UpstreamConfig(store_url=STORE_URL + "/", consumer_key="ck", consumer_secret="cs")
        assert config.api_base_url == "https://shop.test/wp-json/wc/v3"


class TestErrorMapping:
    """Transport and status failures map onto the error taxonomy."""

    @pytest.mark.parametrize("status", [500, 502, 503, 429])
    def test_transient_statuses_are_unavailable(self, status):
        client = _client(lambda request: httpx.Response(status, json={"message": "busy"}))

        with pytest.raises(UpstreamUnavailable) as info:
            client.get_product(1)
        assert info.value.status_code == status

    @pytest.mark.parametrize("status", [400, 401, 404])
    def test_client_errors_are_rejected_with_upstream_message(self, status):
        client = _client(lambda request: httpx.Response(status, json={"code": "x", "message": "Invalid ID."}))

        with pytest.raises(UpstreamRejected) as info:
            client.get_product(1)
        assert str(info.value) == "Invalid ID."
        assert info.value.status_code == status

    def test_rejected_without_json_body(self):
        client = _client(lambda request: httpx.Response(403, text="Forbidden"))

        with pytest.raises(UpstreamRejected, match="HTTP 403"):
            client.get_product(1)

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(UpstreamUnavailable, match="timed out"):
            _client(handler).get_product(1)

    def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(UpstreamUnavailable, match="unreachable"):
            _client(handler).get_product(1)

    def test_non_json_success_body(self):
        client = _client(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

        with pytest.raises(UpstreamUnavailable):
            client.get_product(1)

    def test_unexpected_shape_is_schema_error(self):
        client = _client(lambda request: httpx.Response(200, json={"products": []}))

        with pytest.raises(UpstreamSchemaError):
            client.list_products()

    def test_product_without_id_is_schema_error(self):
        client = _client(lambda request: httpx.Response(200, json={"name": "No id"}))

        with pytest.raises(UpstreamSchemaError):
            client.get_product(1)


class TestRequests:

    def test_basic_auth_and_path(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json=product_json(7, "Lamp"))

        record = _client(handler).get_product(7)

        assert record.name == "Lamp"
        assert seen["url"] == "https://shop.test/wp-json/wc/v3/products/7"
        assert seen["auth"].startswith("Basic ")

    def test_fetch_all_stops_on_short_page(self, fake_upstream, upstream_client):
        for product_id in range(1, 6):
            fake_upstream.products[product_id] = product_json(product_id, f"Item {product_id}")

        records = upstream_client.fetch_all_products(per_page=2)

        assert [r.id for r in records] == [1, 2, 3, 4, 5]
        assert [call[2]["page"] for call in fake_upstream.calls("GET", "/products")] == ["1", "2", "3"]

    def test_fetch_all_stops_at_total_pages_header(self, fake_upstream, upstream_client):
        for product_id in range(1, 5):
            fake_upstream.products[product_id] = product_json(product_id, f"Item {product_id}")

        records = upstream_client.fetch_all_products(per_page=2)

        assert len(records) == 4
        assert len(fake_upstream.calls("GET", "/products")) == 2

    def test_fetch_all_without_header_requests_one_empty_page(self, fake_upstream, upstream_client):
        fake_upstream.send_total_pages = False
        for product_id in range(1, 5):
            fake_upstream.products[product_id] = product_json(product_id, f"Item {product_id}")

        records = upstream_client.fetch_all_products(per_page=2)

        assert len(records) == 4
        assert len(fake_upstream.calls("GET", "/products")) == 3

    def test_fetch_all_gives_up_on_endless_full_pages(self, fake_upstream, upstream_client):
        """An upstream that ignores the page parameter."""
        fake_upstream.send_total_pages = False
        fake_upstream.ignore_page = True
        for customer_id in range(1, 3):
            fake_upstream.customers[customer_id] = customer_json(customer_id, f"c{customer_id}@example.com")

        with pytest.raises(UpstreamSchemaError):
            upstream_client.fetch_all_customers(per_page=2, max_pages=3)
        assert len(fake_upstream.calls("GET", "/customers")) == 3

    def test_find_order_matches_meta_tag_across_pages(self, fake_upstream, upstream_client):
        since = datetime(2026, 10, 19, 9, 0, 0)
        for n in range(5):
            fake_upstream.orders.append(
                order_json(800 + n, f"POS-{n}", created_gmt=since + timedelta(minutes=n + 1))
            )
        fake_upstream.orders.append(order_json(900, "POS-old", created_gmt=since - timedelta(hours=1)))

        assert upstream_client.find_order_by_pos_id("POS-4", since, per_page=2) == 804
        assert upstream_client.find_order_by_pos_id("POS-old", since, per_page=2) is None
        assert upstream_client.find_order_by_pos_id("POS-9", since, per_page=2) is None
        params = fake_upstream.calls("GET", "/orders")[0][2]
        assert params["after"] == "2026-10-19T09:00:00Z"
        assert params["status"] == "any"

    def test_update_stock_sends_quantity(self, fake_upstream, upstream_client):
        fake_upstream.products[3] = product_json(3, "Chair", stock=1)

        upstream_client.update_product_stock(3, 9)

        method, path, params, body = fake_upstream.calls("PUT", "/products/3")[0]
        assert body == {"manage_stock": True, "stock_quantity": 9}

    def test_create_customer(self, fake_upstream, upstream_client):
        record = upstream_client.create_customer(
            CustomerCreateRequest(email="new@example.com", first_name="New", last_name="Person", phone="555")
        )

        assert record.email == "new@example.com"
        body = fake_upstream.calls("POST", "/customers")[0][3]
        assert body["billing"]["phone"] == "555"

    def test_system_status_version(self, fake_upstream, upstream_client):
        assert upstream_client.system_status() == {"version": "8.5.1"}


class TestSchemas:

    def test_product_wire_conversion(self):
        record = ProductRecord.from_json(product_json(
            4, "Scarf", sku="SC-4", price="12.50", sale_price="9.99", stock="3", stock_status="onbackorder",
        ))

        assert record.price_cents == 999
        assert record.regular_price_cents == 1250
        assert record.sale_price_cents == 999
        assert record.on_sale is True
        assert record.stock_quantity == 3
        assert record.stock_status == "on_backorder"

    def test_unknown_stock_status(self):
        with pytest.raises(UpstreamSchemaError):
            ProductRecord.from_json(product_json(4, "Scarf", stock_status="lost"))

    def test_bad_amount(self):
        data = product_json(4, "Scarf")
        data["price"] = "twelve"
        with pytest.raises(UpstreamSchemaError):
            ProductRecord.from_json(data)

    def test_order_summary_reads_pos_order_id(self):
        summary = OrderSummary.from_json({
            "id": 10,
            "number": "10",
            "status": "processing",
            "total": "5.00",
            "meta_data": [{"key": "other", "value": "x"}, {"key": "_pos_order_id", "value": "POS-1"}],
        })

        assert summary.pos_order_id == "POS-1"
        assert summary.total_cents == 500
