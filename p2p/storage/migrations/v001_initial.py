"""Initial schema: ads, users, orders, order events, fulfillment outbox."""

import sqlite3

DDL = [
    # Local ad catalog (used when catalog.backend = sqlite)
    """
    CREATE TABLE IF NOT EXISTS ads (
        id TEXT PRIMARY KEY,
        type TEXT NOT NULL CHECK (type IN ('buy', 'sell')),
        token TEXT NOT NULL,
        price_usd REAL NOT NULL,
        price_inr REAL,
        amount REAL NOT NULL,
        payment_method TEXT NOT NULL DEFAULT '',
        posted_by TEXT,
        status TEXT NOT NULL DEFAULT 'active',
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_ads_posted_by ON ads(posted_by)",

    # Linked chat/wallet identities
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        telegram_id TEXT UNIQUE,
        username TEXT,
        wallet_address TEXT,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    (
        "CREATE INDEX IF NOT EXISTS idx_users_wallet "
        "ON users(lower(wallet_address))"
    ),

    # Orders; ad_id is a weak reference, ads may live in another catalog
    """
    CREATE TABLE IF NOT EXISTS orders (
        id TEXT PRIMARY KEY,
        ad_id TEXT NOT NULL,
        buyer_id TEXT NOT NULL,
        seller_id TEXT NOT NULL,
        token TEXT NOT NULL,
        unit_price REAL NOT NULL,
        amount REAL NOT NULL,
        fiat_method TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        created_at TEXT NOT NULL,
        updated_at TEXT,
        CHECK (buyer_id <> seller_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_orders_buyer ON orders(buyer_id)",
    "CREATE INDEX IF NOT EXISTS idx_orders_seller ON orders(seller_id)",

    # Append-only audit trail
    """
    CREATE TABLE IF NOT EXISTS order_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id TEXT NOT NULL REFERENCES orders(id),
        event TEXT NOT NULL,
        from_status TEXT,
        to_status TEXT,
        actor TEXT NOT NULL DEFAULT '',
        detail TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_order_events_order ON order_events(order_id)",

    # Ad fulfillment outbox, written with the 'released' transition
    """
    CREATE TABLE IF NOT EXISTS fulfillment_outbox (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id TEXT UNIQUE NOT NULL REFERENCES orders(id),
        ad_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        attempts INTEGER NOT NULL DEFAULT 0,
        last_error TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        delivered_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_outbox_status ON fulfillment_outbox(status)",
]


def up(conn: sqlite3.Connection) -> None:
    for stmt in DDL:
        conn.execute(stmt)
    conn.commit()
