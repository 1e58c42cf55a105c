"""Repository for linked chat/wallet identities."""

import sqlite3

from p2p.errors import IdentityConflict


def upsert_user(
    conn: sqlite3.Connection,
    telegram_id: str | None = None,
    wallet_address: str | None = None,
    username: str | None = None,
) -> dict:
    """Create or update the account matching either credential.

    An existing row found by wallet takes precedence over one found by
    telegram id, so a wallet login attaches to the account it already owns.
    """
    if not telegram_id and not wallet_address:
        raise ValueError("telegram_id or wallet_address required")

    existing_id = None
    if wallet_address:
        row = conn.execute(
            "SELECT id FROM users WHERE lower(wallet_address) = lower(?) LIMIT 1",
            (wallet_address,),
        ).fetchone()
        existing_id = row[0] if row else None
    if existing_id is None and telegram_id:
        row = conn.execute(
            "SELECT id FROM users WHERE telegram_id = ? LIMIT 1", (telegram_id,)
        ).fetchone()
        existing_id = row[0] if row else None

    try:
        if existing_id is None:
            cursor = conn.execute(
                "INSERT INTO users (telegram_id, username, wallet_address) VALUES (?, ?, ?)",
                (telegram_id, username, wallet_address),
            )
            existing_id = cursor.lastrowid
        else:
            conn.execute(
                "UPDATE users SET "
                "telegram_id = COALESCE(?, telegram_id), "
                "username = COALESCE(?, username), "
                "wallet_address = COALESCE(?, wallet_address), "
                "updated_at = CURRENT_TIMESTAMP "
                "WHERE id = ?",
                (telegram_id, username, wallet_address, existing_id),
            )
        conn.commit()
    except sqlite3.IntegrityError as e:
        # telegram_id is unique; another row already holds it
        conn.rollback()
        raise IdentityConflict(str(e)) from e

    row = conn.execute("SELECT * FROM users WHERE id = ?", (existing_id,)).fetchone()
    return dict(row)


def get_telegram_ids_for_wallet(conn: sqlite3.Connection, wallet_address: str) -> list[str]:
    rows = conn.execute(
        "SELECT telegram_id FROM users "
        "WHERE lower(wallet_address) = lower(?) AND telegram_id IS NOT NULL",
        (wallet_address,),
    ).fetchall()
    return [str(r[0]) for r in rows]


def get_wallets_for_telegram_id(conn: sqlite3.Connection, telegram_id: str) -> list[str]:
    rows = conn.execute(
        "SELECT wallet_address FROM users "
        "WHERE telegram_id = ? AND wallet_address IS NOT NULL",
        (telegram_id,),
    ).fetchall()
    return [str(r[0]) for r in rows]
