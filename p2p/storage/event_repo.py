"""Repository for the order audit trail."""

import sqlite3

from p2p.models.order import OrderEvent


def record_event(conn: sqlite3.Connection, event: OrderEvent, commit: bool = True) -> int:
    """Append an event. Returns the row id."""
    cursor = conn.execute(
        "INSERT INTO order_events "
        "(order_id, event, from_status, to_status, actor, detail) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (
            event.order_id,
            event.event,
            event.from_status,
            event.to_status,
            event.actor,
            event.detail,
        ),
    )
    if commit:
        conn.commit()
    assert cursor.lastrowid is not None
    return cursor.lastrowid


def get_events_for_order(conn: sqlite3.Connection, order_id: str) -> list[dict]:
    """All events for an order, oldest first."""
    rows = conn.execute(
        "SELECT * FROM order_events WHERE order_id = ? ORDER BY id",
        (order_id,),
    ).fetchall()
    return [dict(r) for r in rows]
