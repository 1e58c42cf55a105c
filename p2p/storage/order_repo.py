"""Repository for orders.

Status changes go through ``update_status`` only. It is a compare-and-swap on
the current status, which is what serializes concurrent transitions on the
same order.
"""

import sqlite3
from collections.abc import Iterable

from p2p.errors import StoreConflict
from p2p.models.common import utc_now_iso
from p2p.models.order import Order, OrderStatus


def create_order(conn: sqlite3.Connection, order: Order, commit: bool = True) -> Order:
    """Persist a new order. Returns it unchanged."""
    conn.execute(
        "INSERT INTO orders "
        "(id, ad_id, buyer_id, seller_id, token, unit_price, amount, "
        "fiat_method, status, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            order.id,
            order.ad_id,
            order.buyer_id,
            order.seller_id,
            order.token,
            order.unit_price,
            order.amount,
            order.fiat_method,
            order.status.value,
            order.created_at,
            order.updated_at,
        ),
    )
    if commit:
        conn.commit()
    return order


def get_order(conn: sqlite3.Connection, order_id: str) -> Order | None:
    """Get an order by id."""
    row = conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone()
    if row is None:
        return None
    return Order.from_row(dict(row))


def update_status(
    conn: sqlite3.Connection,
    order_id: str,
    expected: OrderStatus,
    next_status: OrderStatus,
    commit: bool = True,
) -> Order:
    """Move an order from ``expected`` to ``next_status``.

    Raises StoreConflict if the order is no longer in ``expected`` (or is gone).
    """
    cursor = conn.execute(
        "UPDATE orders SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
        (next_status.value, utc_now_iso(), order_id, expected.value),
    )
    if cursor.rowcount != 1:
        if commit:
            conn.rollback()
        raise StoreConflict(order_id, expected.value)
    if commit:
        conn.commit()
    order = get_order(conn, order_id)
    assert order is not None
    return order


def list_orders_for_party(
    conn: sqlite3.Connection, identities: Iterable[str], limit: int = 20
) -> list[Order]:
    """Orders where any of ``identities`` is the buyer or the seller, newest first."""
    ids = sorted(set(identities))
    if not ids:
        return []
    marks = ", ".join("?" for _ in ids)
    rows = conn.execute(
        f"SELECT * FROM orders WHERE buyer_id IN ({marks}) "
        f"UNION SELECT * FROM orders WHERE seller_id IN ({marks}) "
        "ORDER BY created_at DESC LIMIT ?",
        (*ids, *ids, limit),
    ).fetchall()
    return [Order.from_row(dict(r)) for r in rows]


def count_by_status(conn: sqlite3.Connection) -> dict[str, int]:
    rows = conn.execute(
        "SELECT status, COUNT(*) FROM orders GROUP BY status"
    ).fetchall()
    return {row[0]: row[1] for row in rows}
