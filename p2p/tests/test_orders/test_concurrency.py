"""Concurrent transitions on one order: exactly one writer wins."""

import threading
from pathlib import Path

import pytest

from p2p.errors import StoreConflict
from p2p.models.order import OrderStatus
from p2p.orders.engine import OrderLifecycleEngine
from p2p.storage import event_repo, order_repo
from p2p.storage.database import connect


def _race(db_path: Path, engine_factory, order_id: str, moves, monkeypatch):
    """Run each (actor, status) move in its own thread, all reading before any writes."""
    barrier = threading.Barrier(len(moves))
    real_get = OrderLifecycleEngine.get_order

    def get_then_wait(self, oid):
        order = real_get(self, oid)
        barrier.wait(timeout=5)
        return order

    monkeypatch.setattr(OrderLifecycleEngine, "get_order", get_then_wait)

    results: list = [None] * len(moves)

    def worker(i: int, actor: str, requested: OrderStatus) -> None:
        conn = connect(db_path)
        try:
            engine = engine_factory(conn)
            results[i] = engine.transition(order_id, actor, requested)
        except Exception as e:
            results[i] = e
        finally:
            conn.close()

    threads = [
        threading.Thread(target=worker, args=(i, actor, status))
        for i, (actor, status) in enumerate(moves)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    monkeypatch.setattr(OrderLifecycleEngine, "get_order", real_get)
    return results


@pytest.mark.parametrize(
    "moves",
    [
        [("bob", OrderStatus.PAID), ("alice", OrderStatus.CANCELED)],
        [("bob", OrderStatus.CANCELED), ("alice", OrderStatus.DISPUTED)],
        [("bob", OrderStatus.DISPUTED), ("alice", OrderStatus.DISPUTED)],
    ],
)
def test_one_winner(db, db_path, engine, engine_factory, sell_ad, monkeypatch, moves):
    order = engine.open_order(sell_ad, "bob")

    results = _race(db_path, engine_factory, order.id, moves, monkeypatch)

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], StoreConflict)

    final = order_repo.get_order(db, order.id)
    assert final.status == winners[0].status
    transitions = [
        e for e in event_repo.get_events_for_order(db, order.id)
        if e["event"] == "transition"
    ]
    assert len(transitions) == 1
    assert transitions[0]["to_status"] == final.status.value
