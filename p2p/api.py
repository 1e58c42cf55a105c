"""HTTP API for order actions, served by FastAPI over the lifecycle engine."""

import os
import sqlite3
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from p2p.config.loader import default_config, load_config
from p2p.config.schema import P2PConfig
from p2p.errors import InvalidTransition, P2PError, http_status_for
from p2p.models.order import OrderStatus
from p2p.orders.engine import OrderLifecycleEngine, build_engine
from p2p.storage import event_repo, order_repo, outbox_repo
from p2p.storage.database import open_database

DB_PATH = Path(os.environ.get("P2P_DB_PATH", "data/p2p.db"))
CONFIG_PATH = Path(os.environ.get("P2P_CONFIG_PATH", "ops/configs/default.yaml"))

app = FastAPI(title="P2P Order Engine", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class OpenOrderBody(BaseModel):
    ad_id: str
    actor_id: str


class TransitionBody(BaseModel):
    actor_id: str
    next: OrderStatus


class CancelBody(BaseModel):
    order_id: str = ""
    wallet_address: str | None = None
    telegram_id: str | None = None


def _config() -> P2PConfig:
    if CONFIG_PATH.exists():
        return load_config(CONFIG_PATH)
    return default_config()


def _conn() -> sqlite3.Connection:
    return open_database(DB_PATH)


def _engine(conn: sqlite3.Connection) -> OrderLifecycleEngine:
    return build_engine(_config(), conn)


@app.exception_handler(P2PError)
async def _p2p_error(request: Request, exc: P2PError) -> JSONResponse:
    return JSONResponse(
        status_code=http_status_for(exc),
        content={"ok": False, "error": exc.user_message},
    )


# ── Orders ──────────────────────────────────────────────────────


@app.post("/api/orders", status_code=201)
def open_order(body: OpenOrderBody):
    conn = _conn()
    try:
        order = _engine(conn).open_order(body.ad_id, body.actor_id)
        return {"ok": True, **order.to_dict()}
    finally:
        conn.close()


@app.get("/api/orders")
def list_orders(party: str, limit: int = 20):
    conn = _conn()
    try:
        orders = _engine(conn).orders_for(party, limit=limit)
        return [o.to_dict() for o in orders]
    finally:
        conn.close()


@app.post("/api/orders/cancel")
def cancel_order(body: CancelBody):
    """Cancel by order id for a wallet and/or Telegram identity."""
    if not body.order_id:
        return JSONResponse(status_code=400, content={"ok": False, "error": "Missing order_id"})
    if not body.wallet_address and not body.telegram_id:
        return JSONResponse(status_code=400, content={"ok": False, "error": "Missing identity"})

    conn = _conn()
    try:
        engine = _engine(conn)
        actor = engine.identities.resolve(
            telegram_id=body.telegram_id, wallet_address=body.wallet_address
        )
        try:
            engine.cancel(body.order_id, actor)
        except InvalidTransition:
            return JSONResponse(
                status_code=409, content={"ok": False, "error": "Not cancellable"}
            )
        return {"ok": True}
    finally:
        conn.close()


@app.get("/api/orders/{order_id}")
def get_order(order_id: str):
    conn = _conn()
    try:
        order = _engine(conn).get_order(order_id)
        return {
            **order.to_dict(),
            "events": event_repo.get_events_for_order(conn, order_id),
        }
    finally:
        conn.close()


@app.post("/api/orders/{order_id}/transition")
def transition_order(order_id: str, body: TransitionBody):
    conn = _conn()
    try:
        order = _engine(conn).transition_with_retry(order_id, body.actor_id, body.next)
        return {"ok": True, "order_id": order.id, "status": order.status.value}
    finally:
        conn.close()


# ── Health ──────────────────────────────────────────────────────


@app.get("/api/health")
def health():
    conn = _conn()
    try:
        return {
            "db": "ok",
            "orders": order_repo.count_by_status(conn),
            "fulfillment_outbox": outbox_repo.count_by_status(conn),
        }
    finally:
        conn.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8778)
