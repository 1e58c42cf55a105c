"""Shared test fixtures."""

import sqlite3
from pathlib import Path

import pytest
import yaml

from p2p.config.schema import OrdersConfig
from p2p.models.ad import AdType, Token
from p2p.orders.engine import OrderLifecycleEngine
from p2p.orders.fulfillment import FulfillmentReconciler
from p2p.resolvers.ad_catalog import SqliteAdCatalog
from p2p.resolvers.ad_resolver import AdResolver
from p2p.resolvers.identity import IdentityResolver
from p2p.storage import ad_repo
from p2p.storage.database import connect, run_migrations


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path: Path) -> sqlite3.Connection:
    conn = connect(db_path)
    run_migrations(conn)
    yield conn
    conn.close()


@pytest.fixture
def sell_ad(db: sqlite3.Connection) -> str:
    """alice sells 100 USDT for $1.01, paid by UPI."""
    return ad_repo.save_ad(
        db, AdType.SELL, Token.USDT, price_usd=1.01, amount=100.0,
        payment_method="UPI", posted_by="alice", price_inr=84, ad_id="ad1",
    )


@pytest.fixture
def buy_ad(db: sqlite3.Connection) -> str:
    """carol wants to buy 0.5 ETH."""
    return ad_repo.save_ad(
        db, AdType.BUY, Token.ETH, price_usd=3000.0, amount=0.5,
        payment_method="IMPS", posted_by="carol", ad_id="ad2",
    )


def make_engine(
    conn: sqlite3.Connection, config: OrdersConfig | None = None
) -> OrderLifecycleEngine:
    ads = AdResolver(SqliteAdCatalog(conn))
    return OrderLifecycleEngine(
        conn,
        ads,
        IdentityResolver(conn),
        config=config or OrdersConfig(conflict_backoff_ms=0),
        reconciler=FulfillmentReconciler(conn, ads, max_attempts=3),
    )


@pytest.fixture
def engine(db: sqlite3.Connection) -> OrderLifecycleEngine:
    return make_engine(db)


@pytest.fixture
def engine_factory():
    """Build an engine on any connection, e.g. one per thread."""
    return make_engine


@pytest.fixture
def config_yaml_path(tmp_path: Path) -> Path:
    """Write a minimal valid config YAML and return its path."""
    data = {
        "orders": {"allow_seller_mark_paid": False, "conflict_retries": 2},
        "fulfillment": {"max_attempts": 5},
    }
    path = tmp_path / "test_config.yaml"
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


@pytest.fixture
def alice_wallet() -> str:
    """A mixed-case wallet address linked to Telegram id 'alice'."""
    return "0xAbCdEf0123456789aBcDeF0123456789AbCdEf01"
