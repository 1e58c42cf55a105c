"""Tests for fulfillment outbox delivery."""

import logging
from unittest.mock import MagicMock

import pytest

from p2p.errors import AdUnavailable, CatalogError
from p2p.models.fulfillment import OutboxStatus
from p2p.models.order import OrderStatus
from p2p.orders.engine import OrderLifecycleEngine
from p2p.orders.fulfillment import FulfillmentReconciler
from p2p.resolvers.ad_catalog import SqliteAdCatalog
from p2p.resolvers.ad_resolver import AdResolver
from p2p.resolvers.identity import IdentityResolver
from p2p.storage import ad_repo, event_repo, outbox_repo
from p2p.storage.database import connect


@pytest.fixture
def flaky_catalog(db):
    """Reads go to the local table; fulfillment writes fail."""
    local = SqliteAdCatalog(db)
    catalog = MagicMock()
    catalog.get_ad.side_effect = local.get_ad
    catalog.mark_fulfilled.side_effect = CatalogError("HTTP 503: unavailable", 503)
    return catalog


@pytest.fixture
def flaky_engine(db, flaky_catalog):
    ads = AdResolver(flaky_catalog)
    reconciler = FulfillmentReconciler(db, ads, max_attempts=3)
    return OrderLifecycleEngine(db, ads, IdentityResolver(db), reconciler=reconciler)


def _released_order(engine, sell_ad):
    order = engine.open_order(sell_ad, "bob")
    engine.mark_paid(order.id, "bob")
    return engine.release(order.id, "alice")


class TestDeliveryFailure:
    def test_release_survives_catalog_failure(self, flaky_engine, db, sell_ad, caplog):
        with caplog.at_level(logging.WARNING, logger="p2p.orders.fulfillment"):
            order = _released_order(flaky_engine, sell_ad)

        assert order.status == OrderStatus.RELEASED
        assert flaky_engine.get_order(order.id).status == OrderStatus.RELEASED
        entry = outbox_repo.get_entry_for_order(db, order.id)
        assert entry.status == OutboxStatus.PENDING
        assert entry.attempts == 1
        assert "503" in entry.last_error
        assert "attempt 1/3" in caplog.text

        events = [e["event"] for e in event_repo.get_events_for_order(db, order.id)]
        assert events[-1] == "fulfillment_failed"

    def test_abandoned_after_max_attempts(self, flaky_engine, db, sell_ad, caplog):
        order = _released_order(flaky_engine, sell_ad)
        reconciler = flaky_engine.reconciler

        summary = reconciler.run_once()
        assert summary.attempted == 1
        assert summary.failed == 1

        with caplog.at_level(logging.ERROR, logger="p2p.orders.fulfillment"):
            summary = reconciler.run_once()
        assert summary.abandoned == 1
        assert "abandoned after 3 attempts" in caplog.text

        assert outbox_repo.get_entry_for_order(db, order.id).status == OutboxStatus.ABANDONED
        assert reconciler.run_once().attempted == 0
        events = [e["event"] for e in event_repo.get_events_for_order(db, order.id)]
        assert events.count("fulfillment_failed") == 2
        assert events[-1] == "fulfillment_abandoned"

    def test_recovery_on_later_pass(self, flaky_engine, flaky_catalog, db, sell_ad):
        order = _released_order(flaky_engine, sell_ad)
        flaky_catalog.mark_fulfilled.side_effect = None

        summary = flaky_engine.reconciler.run_once()
        assert summary.delivered == 1
        flaky_catalog.mark_fulfilled.assert_called_with(sell_ad)
        entry = outbox_repo.get_entry_for_order(db, order.id)
        assert entry.status == OutboxStatus.DELIVERED
        assert entry.attempts == 2


class TestDelivery:
    def test_inline_delivery(self, engine, db, sell_ad):
        order = _released_order(engine, sell_ad)
        assert ad_repo.get_ad(db, sell_ad).fulfilled
        assert engine.reconciler.delivered == 1
        assert engine.reconciler.run_once().attempted == 0
        assert outbox_repo.count_by_status(db) == {"delivered": 1}
        assert event_repo.get_events_for_order(db, order.id)[-1]["to_status"] == "released"

    def test_deliver_for_order_without_entry(self, engine, sell_ad):
        order = engine.open_order(sell_ad, "bob")
        assert engine.reconciler.deliver_for_order(order.id) is False

    def test_fulfilled_ad_rejects_new_orders(self, engine, sell_ad):
        _released_order(engine, sell_ad)
        with pytest.raises(AdUnavailable):
            engine.open_order(sell_ad, "dave")


class TestLockedDatabase:
    def test_release_survives_locked_outbox_write(
        self, engine, db, db_path, sell_ad, monkeypatch, caplog
    ):
        order = engine.open_order(sell_ad, "bob")
        engine.mark_paid(order.id, "bob")

        db.execute("PRAGMA busy_timeout = 50")
        blocker = connect(db_path)
        catalog = engine.ads.catalog
        real_mark = catalog.mark_fulfilled

        def lock_then_mark(ad_id):
            blocker.execute("BEGIN IMMEDIATE")
            real_mark(ad_id)

        monkeypatch.setattr(catalog, "mark_fulfilled", lock_then_mark)
        try:
            with caplog.at_level(logging.ERROR, logger="p2p.orders.engine"):
                released = engine.release(order.id, "alice")
        finally:
            blocker.rollback()
            blocker.close()

        assert released.status == OrderStatus.RELEASED
        assert "inline fulfillment failed" in caplog.text
        assert engine.get_order(order.id).status == OrderStatus.RELEASED
        entry = outbox_repo.get_entry_for_order(db, order.id)
        assert entry.status == OutboxStatus.PENDING
        assert not ad_repo.get_ad(db, sell_ad).fulfilled

        monkeypatch.setattr(catalog, "mark_fulfilled", real_mark)
        assert engine.reconciler.run_once().delivered == 1
        assert ad_repo.get_ad(db, sell_ad).fulfilled
