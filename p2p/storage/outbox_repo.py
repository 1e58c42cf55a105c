"""Repository for the ad fulfillment outbox."""

import sqlite3

from p2p.models.fulfillment import OutboxEntry, OutboxStatus


def enqueue_fulfillment(
    conn: sqlite3.Connection, order_id: str, ad_id: str, commit: bool = True
) -> None:
    """Queue an ad for fulfillment marking. One entry per order."""
    conn.execute(
        "INSERT OR IGNORE INTO fulfillment_outbox (order_id, ad_id) VALUES (?, ?)",
        (order_id, ad_id),
    )
    if commit:
        conn.commit()


def get_entry_for_order(conn: sqlite3.Connection, order_id: str) -> OutboxEntry | None:
    row = conn.execute(
        "SELECT * FROM fulfillment_outbox WHERE order_id = ?", (order_id,)
    ).fetchone()
    if row is None:
        return None
    return OutboxEntry.from_row(dict(row))


def get_pending(conn: sqlite3.Connection, limit: int = 50) -> list[OutboxEntry]:
    """Pending entries, oldest first."""
    rows = conn.execute(
        "SELECT * FROM fulfillment_outbox WHERE status = ? ORDER BY id LIMIT ?",
        (OutboxStatus.PENDING.value, limit),
    ).fetchall()
    return [OutboxEntry.from_row(dict(r)) for r in rows]


def mark_delivered(conn: sqlite3.Connection, entry_id: int) -> None:
    conn.execute(
        "UPDATE fulfillment_outbox SET status = ?, attempts = attempts + 1, "
        "last_error = '', delivered_at = CURRENT_TIMESTAMP, "
        "updated_at = CURRENT_TIMESTAMP WHERE id = ?",
        (OutboxStatus.DELIVERED.value, entry_id),
    )
    conn.commit()


def record_failure(
    conn: sqlite3.Connection, entry_id: int, error: str, abandon: bool = False
) -> None:
    status = OutboxStatus.ABANDONED if abandon else OutboxStatus.PENDING
    conn.execute(
        "UPDATE fulfillment_outbox SET status = ?, attempts = attempts + 1, "
        "last_error = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
        (status.value, error, entry_id),
    )
    conn.commit()


def count_by_status(conn: sqlite3.Connection) -> dict[str, int]:
    rows = conn.execute(
        "SELECT status, COUNT(*) FROM fulfillment_outbox GROUP BY status"
    ).fetchall()
    return {row[0]: row[1] for row in rows}
