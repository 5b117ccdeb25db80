# Overview: Pytest coverage for pushing local orders upstream.

import threading
from datetime import timedelta

import pytest

from possync.errors import NotFoundError, UpstreamNotConfigured
from possync.services import order_service, sync_service
from possync.services.sync_service import (
    RESULT_ALREADY_SYNCED,
    RESULT_FAILED,
    RESULT_IN_PROGRESS,
    RESULT_SYNCED,
    build_order_payload,
    push_one,
    reconcile_all,
)
from possync.time_utils import parse_iso_datetime, utcnow

from conftest import order_json


@pytest.fixture
def sale(db_session, make_product):
    """Factory for committed cash sales of product 1."""
    make_product(1, "Widget", price_cents=1000)

    def _sale(quantity=1, **extra):
        return order_service.create_order(
            items=[{"product_id": 1, "quantity": quantity}],
            payment_method="cash",
            cashier_id="7",
            cashier_name="Alice Cashier",
            amount_paid="100",
            **extra,
        )
    return _sale


class TestBuildOrderPayload:

    def test_payload_carries_pos_order_id_and_lines(self, sale):
        order = sale(quantity=2, discount="1.00", customer_id=12, customer_name="Amy Lee",
                     customer_email="amy@example.com")

        payload = build_order_payload(order).to_json()

        assert {"key": "_pos_order_id", "value": order.order_number} in payload["meta_data"]
        assert payload["line_items"] == [{"product_id": 1, "quantity": 2, "total": "20.00"}]
        assert payload["customer_id"] == 12
        assert payload["billing"] == {"email": "amy@example.com", "first_name": "Amy", "last_name": "Lee"}
        assert payload["payment_method"] == "cash"
        assert {"name": "POS discount", "total": "-1.00", "tax_status": "none"} in payload["fee_lines"]
        assert {"name": "POS tax", "total": "1.90", "tax_status": "none"} in payload["fee_lines"]

    def test_walk_in_sale_has_no_customer(self, sale):
        payload = build_order_payload(sale()).to_json()

        assert payload["customer_id"] == 0
        assert payload["billing"] == {}


class TestPushOne:
    """One push attempt per call; failures are recorded, never raised."""

    def test_offline_sale_syncs_once_upstream_returns(self, sale, fake_upstream, upstream_client):
        order = sale()
        fake_upstream.fail_with = "connect"

        failed = push_one(order.id, upstream_client)

        assert failed.status == RESULT_FAILED
        stored = order_service.get_order(order.id)
        assert stored.sync_status == "UNSYNCED"
        assert stored.sync_attempts == 1
        assert "unreachable" in stored.last_sync_error

        fake_upstream.fail_with = None
        result = push_one(order.id, upstream_client)

        assert result.status == RESULT_SYNCED
        stored = order_service.get_order(order.id)
        assert stored.sync_status == "SYNCED"
        assert stored.upstream_order_id == result.upstream_order_id
        assert stored.last_sync_error is None
        assert len(fake_upstream.orders) == 1

    def test_already_synced_order_is_not_pushed_again(self, sale, fake_upstream, upstream_client):
        order = sale()
        push_one(order.id, upstream_client)

        again = push_one(order.id, upstream_client)

        assert again.status == RESULT_ALREADY_SYNCED
        assert again.ok
        assert len(fake_upstream.calls("POST", "/orders")) == 1

    def test_existing_upstream_order_is_adopted(self, sale, fake_upstream, upstream_client):
        """A POST whose response was lost is not repeated."""
        order = sale()
        fake_upstream.orders.append(order_json(555, order.order_number, total="11.00"))

        result = push_one(order.id, upstream_client)

        assert result.status == RESULT_SYNCED
        assert result.deduplicated is True
        assert result.upstream_order_id == 555
        assert fake_upstream.calls("POST", "/orders") == []

    def test_lost_create_response_is_not_posted_again(self, sale, fake_upstream, upstream_client):
        """The order landed upstream but the reply never arrived."""
        order = sale()
        fake_upstream.lose_next_order_response = True

        first = push_one(order.id, upstream_client)
        second = push_one(order.id, upstream_client)

        assert first.status == RESULT_FAILED
        assert second.status == RESULT_SYNCED
        assert second.deduplicated is True
        assert len(fake_upstream.orders) == 1
        assert second.upstream_order_id == fake_upstream.orders[0]["id"]

    def test_existing_check_pages_recent_orders_not_search(self, app, sale, fake_upstream, upstream_client):
        order = sale()

        push_one(order.id, upstream_client)

        params = fake_upstream.calls("GET", "/orders")[0][2]
        assert "search" not in params
        assert params["dates_are_gmt"] == "true"
        assert params["order"] == "asc"
        expected = order.created_at - timedelta(hours=app.config["SYNC_LOOKBACK_HOURS"])
        assert parse_iso_datetime(params["after"]) == expected.replace(microsecond=0)

    def test_tagged_order_older_than_lookback_is_not_adopted(self, sale, fake_upstream, upstream_client):
        order = sale()
        fake_upstream.orders.append(
            order_json(557, order.order_number, created_gmt=order.created_at - timedelta(days=3))
        )

        result = push_one(order.id, upstream_client)

        assert result.deduplicated is False

    def test_similar_order_number_is_not_adopted(self, sale, fake_upstream, upstream_client):
        order = sale()
        fake_upstream.orders.append(order_json(556, order.order_number + "-other"))

        result = push_one(order.id, upstream_client)

        assert result.deduplicated is False
        assert len(fake_upstream.calls("POST", "/orders")) == 1

    def test_existing_check_can_be_disabled(self, app, sale, fake_upstream, upstream_client):
        app.config["SYNC_CHECK_EXISTING"] = False
        order = sale()

        push_one(order.id, upstream_client)

        assert fake_upstream.calls("GET", "/orders") == []
        assert len(fake_upstream.calls("POST", "/orders")) == 1

    def test_rejected_order_stays_unsynced(self, sale, fake_upstream, upstream_client):
        order = sale()
        fake_upstream.fail_with = 400

        result = push_one(order.id, upstream_client)

        assert result.status == RESULT_FAILED
        assert result.error == "upstream said 400"
        assert order_service.get_order(order.id).last_sync_error == "upstream said 400"

    def test_order_claimed_elsewhere_reports_in_progress(self, sale, fake_upstream, upstream_client):
        """Another process (the sync worker) is pushing this order."""
        order = sale()
        assert order_service.claim_for_sync(order.id, "worker-process")

        result = push_one(order.id, upstream_client)

        assert result.status == RESULT_IN_PROGRESS
        assert fake_upstream.requests == []
        assert order_service.get_order(order.id).sync_claim_token == "worker-process"

    def test_claim_of_crashed_pusher_expires(self, sale, db_session, fake_upstream, upstream_client):
        order = sale()
        order_service.claim_for_sync(order.id, "crashed-process")
        stored = order_service.get_order(order.id)
        stored.sync_claimed_at = utcnow() - timedelta(hours=1)
        db_session.commit()

        result = push_one(order.id, upstream_client)

        assert result.status == RESULT_SYNCED
        assert len(fake_upstream.orders) == 1

    def test_claim_released_after_failure(self, sale, fake_upstream, upstream_client):
        order = sale()
        fake_upstream.fail_with = 503

        push_one(order.id, upstream_client)

        stored = order_service.get_order(order.id)
        assert stored.sync_claim_token is None
        assert stored.sync_claimed_at is None

    def test_unknown_order(self, db_session, fake_upstream, upstream_client):
        with pytest.raises(NotFoundError):
            push_one(9999, upstream_client)


class TestReconcileAll:

    def test_pushes_every_unsynced_order_oldest_first(self, sale, fake_upstream):
        first, second, third = sale(), sale(), sale()
        order_service.mark_synced(second.id, 900)

        results = reconcile_all()

        assert [r.order_id for r in results] == [first.id, third.id]
        assert all(r.status == RESULT_SYNCED for r in results)
        assert [o["meta_data"][0]["value"] for o in fake_upstream.orders] == [
            first.order_number, third.order_number,
        ]
        assert order_service.count_unsynced_orders() == 0

    def test_failures_do_not_stop_the_pass(self, sale, fake_upstream, upstream_client, monkeypatch):
        first, second = sale(), sale()
        real_create = upstream_client.create_order

        def flaky_create(request):
            if request.pos_order_id == first.order_number:
                fake_upstream.fail_with = 503
                try:
                    return real_create(request)
                finally:
                    fake_upstream.fail_with = None
            return real_create(request)

        monkeypatch.setattr(upstream_client, "create_order", flaky_create)

        results = reconcile_all(client=upstream_client)

        assert [r.status for r in results] == [RESULT_FAILED, RESULT_SYNCED]
        assert order_service.get_order(first.id).sync_status == "UNSYNCED"
        assert order_service.get_order(second.id).sync_status == "SYNCED"

    def test_stop_event_ends_pass(self, sale, fake_upstream, upstream_client):
        sale()
        stop = threading.Event()
        stop.set()

        assert reconcile_all(client=upstream_client, stop_event=stop) == []

    def test_not_configured_raises_before_touching_orders(self, sale):
        order = sale()

        with pytest.raises(UpstreamNotConfigured):
            reconcile_all()
        assert order_service.get_order(order.id).sync_attempts == 0


class TestSyncAfterCheckout:

    def test_pushes_when_configured(self, sale, fake_upstream):
        order = sale()

        result = sync_service.sync_after_checkout(order.id)

        assert result.status == RESULT_SYNCED

    def test_skipped_when_not_configured(self, sale):
        assert sync_service.sync_after_checkout(sale().id) is None

    def test_skipped_when_disabled(self, app, sale, fake_upstream):
        app.config["SYNC_ON_CHECKOUT"] = False

        assert sync_service.sync_after_checkout(sale().id) is None
        assert fake_upstream.requests == []

    def test_upstream_down_keeps_sale(self, sale, fake_upstream):
        fake_upstream.fail_with = "timeout"
        order = sale()

        result = sync_service.sync_after_checkout(order.id)

        assert result.status == RESULT_FAILED
        assert order_service.get_order(order.id).sync_status == "UNSYNCED"


class TestRunPeriodic:

    def test_runs_requested_passes(self, sale, fake_upstream):
        sale()
        stop = threading.Event()

        passes = sync_service.run_periodic(0, stop, max_passes=2)

        assert passes == 2
        assert order_service.count_unsynced_orders() == 0

    def test_unconfigured_pass_is_skipped_not_raised(self, db_session):
        stop = threading.Event()

        assert sync_service.run_periodic(0, stop, max_passes=1) == 1
