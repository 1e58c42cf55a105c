"""Repository for the local ad catalog."""

import sqlite3
import uuid

from p2p.models.ad import AdSnapshot, AdStatus, AdType, Token


def save_ad(
    conn: sqlite3.Connection,
    ad_type: AdType,
    token: Token,
    price_usd: float,
    amount: float,
    payment_method: str,
    posted_by: str,
    price_inr: float | None = None,
    ad_id: str | None = None,
) -> str:
    """Persist a new active ad. Returns its id."""
    ad_id = ad_id or str(uuid.uuid4())
    conn.execute(
        "INSERT INTO ads "
        "(id, type, token, price_usd, price_inr, amount, payment_method, posted_by) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (
            ad_id,
            ad_type.value,
            token.value,
            price_usd,
            price_inr,
            amount,
            payment_method,
            posted_by,
        ),
    )
    conn.commit()
    return ad_id


def get_ad(conn: sqlite3.Connection, ad_id: str) -> AdSnapshot | None:
    row = conn.execute(
        "SELECT id, type, token, price_usd, price_inr, amount, payment_method, "
        "posted_by, status FROM ads WHERE id = ?",
        (ad_id,),
    ).fetchone()
    if row is None:
        return None
    return AdSnapshot.from_row(dict(row))


def mark_fulfilled(conn: sqlite3.Connection, ad_id: str) -> bool:
    """Flag an ad as fulfilled. Returns False if the ad does not exist.

    Safe to repeat: a fulfilled ad stays fulfilled.
    """
    cursor = conn.execute(
        "UPDATE ads SET status = ? WHERE id = ?", (AdStatus.FULFILLED.value, ad_id)
    )
    conn.commit()
    return cursor.rowcount == 1


def list_ads_by_poster(
    conn: sqlite3.Connection, posted_by: str, limit: int = 10
) -> list[AdSnapshot]:
    rows = conn.execute(
        "SELECT * FROM ads WHERE posted_by = ? ORDER BY created_at DESC LIMIT ?",
        (posted_by, limit),
    ).fetchall()
    return [AdSnapshot.from_row(dict(r)) for r in rows]
