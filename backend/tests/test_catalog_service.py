# Overview: Pytest coverage for the local catalog cache.

import pytest

from possync.extensions import db
from possync.models import CachedProduct
from possync.services import catalog_service
from possync.services.catalog_service import derive_stock_status
from possync.services.upstream_schemas import CustomerRecord, ProductRecord
from possync.validation import ValidationError

from conftest import customer_json, product_json


class TestProductReads:
    """Cache lookups never error on a miss."""

    def test_get_missing_product_returns_none(self, db_session):
        assert catalog_service.get_product(404) is None

    def test_get_by_sku_exact_match(self, db_session, make_product):
        make_product(1, "Blue Mug", sku="MUG-BLUE")
        make_product(2, "Blue Mug XL", sku="MUG-BLUE-XL")

        assert catalog_service.get_product_by_sku("MUG-BLUE").id == 1
        assert catalog_service.get_product_by_sku("MUG") is None
        assert catalog_service.get_product_by_sku("") is None

    def test_search_is_case_insensitive_over_name_and_sku(self, db_session, make_product):
        make_product(1, "Green Tea", sku="TEA-001")
        make_product(2, "Coffee Beans", sku="COF-002")

        assert [p.id for p in catalog_service.search_products("gReEn")] == [1]
        assert [p.id for p in catalog_service.search_products("cof-")] == [2]
        assert catalog_service.search_products("nothing") == []

    def test_search_escapes_like_wildcards(self, db_session, make_product):
        make_product(1, "100% Cotton", sku="COT-1")
        make_product(2, "1000 Threads", sku="THR_2")
        make_product(3, "Plain", sku="THRX2")

        assert [p.id for p in catalog_service.search_products("100%")] == [1]
        assert [p.id for p in catalog_service.search_products("thr_")] == [2]

    def test_list_products_respects_limit(self, db_session, make_product):
        for i in range(1, 6):
            make_product(i, f"Item {i}")

        assert len(catalog_service.list_products(limit=3)) == 3
        assert catalog_service.count_products() == 5


class TestProductWrites:
    """Wholesale replacement, upsert, patch, removal."""

    def test_replace_all_swaps_collection(self, db_session, make_product):
        make_product(1, "Old One")
        make_product(2, "Old Two")

        records = [
            ProductRecord.from_json(product_json(2, "New Two", stock=3)),
            ProductRecord.from_json(product_json(3, "New Three", stock=0)),
        ]
        count = catalog_service.replace_all_products(records)

        assert count == 2
        assert catalog_service.get_product(1) is None
        assert catalog_service.get_product(2).name == "New Two"
        assert catalog_service.get_product(3).stock_status == "out_of_stock"

    def test_replace_all_is_atomic_on_bad_record(self, db_session, make_product):
        make_product(1, "Keep Me")

        with pytest.raises(ValidationError):
            catalog_service.replace_all_products([
                {"id": 2, "name": "Fine"},
                {"id": 3, "name": ""},
            ])

        assert catalog_service.get_product(1).name == "Keep Me"
        assert catalog_service.get_product(2) is None

    def test_managed_stock_null_quantity_becomes_zero(self, db_session):
        catalog_service.upsert_product(ProductRecord.from_json(
            product_json(5, "Unknown Stock", stock=None, manage_stock=True)
        ))

        product = catalog_service.get_product(5)
        assert product.stock_quantity == 0
        assert product.stock_status == "out_of_stock"

    def test_unmanaged_stock_keeps_upstream_status(self, db_session):
        catalog_service.upsert_product(ProductRecord.from_json(
            product_json(6, "Service", stock=None, manage_stock=False, stock_status="instock")
        ))

        product = catalog_service.get_product(6)
        assert product.stock_quantity is None
        assert product.stock_status == "in_stock"

    def test_upsert_refreshes_existing(self, db_session, make_product):
        make_product(1, "Before", price_cents=500)

        catalog_service.upsert_product(ProductRecord.from_json(product_json(1, "After", price="7.25")))

        product = catalog_service.get_product(1)
        assert product.name == "After"
        assert product.price_cents == 725
        assert product.last_synced_at is not None

    def test_patch_prices_recomputes_effective_price(self, db_session, make_product):
        make_product(1, "Shirt", price_cents=2000)

        product = catalog_service.patch_product(1, {"sale_price_cents": 1500})
        assert product.price_cents == 1500
        assert product.on_sale is True

        product = catalog_service.patch_product(1, {"sale_price_cents": None})
        assert product.price_cents == 2000
        assert product.on_sale is False

    def test_patch_rejects_stock_quantity(self, db_session, make_product):
        make_product(1, "Shirt", stock=4)

        with pytest.raises(ValidationError):
            catalog_service.patch_product(1, {"stock_quantity": 99})
        assert catalog_service.get_product(1).stock_quantity == 4

    def test_patch_backorder_override_sticks(self, db_session, make_product):
        make_product(1, "Preorder", stock=0)

        product = catalog_service.patch_product(1, {"stock_status": "on_backorder"})
        assert product.stock_status == "on_backorder"

    def test_patch_missing_product_returns_none(self, db_session):
        assert catalog_service.patch_product(9, {"name": "x"}) is None

    def test_remove_product(self, db_session, make_product):
        make_product(1, "Gone Soon")

        assert catalog_service.remove_product(1) is True
        assert catalog_service.get_product(1) is None
        assert catalog_service.remove_product(1) is False


class TestDeriveStockStatus:

    @pytest.mark.parametrize("quantity,current,expected", [
        (5, "in_stock", "in_stock"),
        (0, "in_stock", "out_of_stock"),
        (-2, "in_stock", "out_of_stock"),
        (3, "out_of_stock", "in_stock"),
        (0, "on_backorder", "on_backorder"),
        (None, "in_stock", "out_of_stock"),
    ])
    def test_status_follows_quantity(self, quantity, current, expected):
        assert derive_stock_status(quantity, current) == expected


class TestCustomers:
    """Customer cache reads and writes."""

    def test_replace_all_and_search(self, db_session):
        catalog_service.replace_all_customers([
            CustomerRecord.from_json(customer_json(1, "jane@example.com", "Jane", "Doe")),
            CustomerRecord.from_json(customer_json(2, "bob@example.com", "Bob", "Stone")),
        ])

        assert [c.id for c in catalog_service.search_customers("STONE")] == [2]
        assert [c.id for c in catalog_service.search_customers("jane@")] == [1]
        assert [c.id for c in catalog_service.search_customers("jane doe")] == [1]
        assert catalog_service.count_customers() == 2

    def test_upsert_customer_keeps_upstream_aggregates(self, db_session):
        customer = catalog_service.upsert_customer(
            CustomerRecord.from_json(customer_json(3, "amy@example.com", "Amy", "Lee"))
        )

        assert customer.display_name == "Amy Lee"
        assert customer.orders_count == 2
        assert customer.total_spent_cents == 4550

    def test_get_missing_customer_returns_none(self, db_session):
        assert catalog_service.get_customer(77) is None

    def test_customer_requires_email(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.upsert_customer({"id": 9, "email": ""})


def test_replace_all_drops_stale_session_objects(db_session, make_product):
    """Objects loaded before a swap do not clash with the replacement rows."""
    make_product(1, "Loaded")
    db.session.query(CachedProduct).all()

    catalog_service.replace_all_products([{"id": 1, "name": "Replaced"}])

    assert catalog_service.get_product(1).name == "Replaced"
