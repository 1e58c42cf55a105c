"""Tests for the order store, including compare-and-swap status updates."""

import sqlite3

import pytest

from p2p.errors import StoreConflict
from p2p.models.order import Order, OrderStatus
from p2p.storage import order_repo
from p2p.storage.database import connect


def _make_order(order_id: str = "o1", buyer: str = "bob", seller: str = "alice") -> Order:
    return Order(
        id=order_id,
        ad_id="ad1",
        token="USDT",
        unit_price=1.01,
        amount=100.0,
        fiat_method="UPI",
        buyer_id=buyer,
        seller_id=seller,
        status=OrderStatus.PENDING,
        created_at=f"2026-10-01T00:00:0{order_id[-1]}+00:00",
    )


class TestCreateAndGet:
    def test_round_trip(self, db: sqlite3.Connection):
        order_repo.create_order(db, _make_order())
        found = order_repo.get_order(db, "o1")
        assert found is not None
        assert found.buyer_id == "bob"
        assert found.seller_id == "alice"
        assert found.status == OrderStatus.PENDING
        assert found.fiat_method == "UPI"

    def test_not_found(self, db: sqlite3.Connection):
        assert order_repo.get_order(db, "missing") is None

    def test_self_trade_rejected_by_schema(self, db: sqlite3.Connection):
        with pytest.raises(sqlite3.IntegrityError):
            order_repo.create_order(db, _make_order(buyer="alice", seller="alice"))


class TestUpdateStatus:
    def test_applies_when_expected_matches(self, db: sqlite3.Connection):
        order_repo.create_order(db, _make_order())
        updated = order_repo.update_status(db, "o1", OrderStatus.PENDING, OrderStatus.PAID)
        assert updated.status == OrderStatus.PAID
        assert updated.updated_at is not None

    def test_conflict_when_status_moved(self, db: sqlite3.Connection):
        order_repo.create_order(db, _make_order())
        order_repo.update_status(db, "o1", OrderStatus.PENDING, OrderStatus.PAID)

        with pytest.raises(StoreConflict) as exc_info:
            order_repo.update_status(db, "o1", OrderStatus.PENDING, OrderStatus.CANCELED)
        assert exc_info.value.expected == "pending"
        assert order_repo.get_order(db, "o1").status == OrderStatus.PAID

    def test_conflict_when_missing(self, db: sqlite3.Connection):
        with pytest.raises(StoreConflict):
            order_repo.update_status(db, "nope", OrderStatus.PENDING, OrderStatus.PAID)

    def test_second_connection_sees_conflict(self, db: sqlite3.Connection, db_path):
        order_repo.create_order(db, _make_order())
        other = connect(db_path)
        try:
            order_repo.update_status(other, "o1", OrderStatus.PENDING, OrderStatus.DISPUTED)
            with pytest.raises(StoreConflict):
                order_repo.update_status(db, "o1", OrderStatus.PENDING, OrderStatus.PAID)
        finally:
            other.close()


class TestListForParty:
    def test_lists_both_roles(self, db: sqlite3.Connection):
        order_repo.create_order(db, _make_order("o1", buyer="bob", seller="alice"))
        order_repo.create_order(db, _make_order("o2", buyer="alice", seller="carol"))
        order_repo.create_order(db, _make_order("o3", buyer="dave", seller="carol"))

        orders = order_repo.list_orders_for_party(db, {"alice"})
        assert [o.id for o in orders] == ["o2", "o1"]

    def test_empty_identities(self, db: sqlite3.Connection):
        assert order_repo.list_orders_for_party(db, []) == []

    def test_uses_party_indexes(self, db: sqlite3.Connection):
        names = {
            row[0]
            for row in db.execute(
                "SELECT name FROM sqlite_master WHERE type='index' AND tbl_name='orders'"
            ).fetchall()
        }
        assert {"idx_orders_buyer", "idx_orders_seller"} <= names

    def test_count_by_status(self, db: sqlite3.Connection):
        order_repo.create_order(db, _make_order("o1"))
        order_repo.create_order(db, _make_order("o2"))
        order_repo.update_status(db, "o2", OrderStatus.PENDING, OrderStatus.CANCELED)
        assert order_repo.count_by_status(db) == {"pending": 1, "canceled": 1}
