"""CLI entry point for the P2P order engine."""

import argparse
import logging
import os
import threading
from pathlib import Path

from p2p.config.loader import (
    default_config,
    get_config_value,
    load_config,
    set_config_value,
)
from p2p.config.schema import P2PConfig
from p2p.daemon import ReconcileDaemon, daemon_status, reconcile_once, stop_daemon
from p2p.errors import P2PError, exit_code_for
from p2p.escrow.coordinator import build_coordinator
from p2p.models.ad import AdType, Token
from p2p.models.escrow import FundingProgress
from p2p.models.order import OrderStatus, PartyRole
from p2p.orders.engine import build_engine
from p2p.reporting import formatters
from p2p.storage import ad_repo, event_repo, user_repo
from p2p.storage.database import open_database

DEFAULT_CONFIG = "ops/configs/default.yaml"
DEFAULT_DB = "data/p2p.db"

TRANSITION_COMMANDS = {
    "mark-paid": OrderStatus.PAID,
    "release": OrderStatus.RELEASED,
    "cancel": OrderStatus.CANCELED,
    "dispute": OrderStatus.DISPUTED,
}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="p2p",
        description="P2P marketplace order engine",
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG, help="Config YAML path")
    parser.add_argument("--db", default=DEFAULT_DB, help="SQLite DB path")

    sub = parser.add_subparsers(dest="command")

    # open
    open_p = sub.add_parser("open", help="Open an order on an ad")
    open_p.add_argument("ad_id")
    open_p.add_argument("--actor", required=True, help="Telegram id or wallet")
    open_p.add_argument("--json", action="store_true", help="Print JSON")

    # mark-paid / release / cancel / dispute
    for name in TRANSITION_COMMANDS:
        t_p = sub.add_parser(name, help=f"Move an order to {TRANSITION_COMMANDS[name]}")
        t_p.add_argument("order_id")
        t_p.add_argument("--actor", required=True, help="Telegram id or wallet")

    # show / orders
    show_p = sub.add_parser("show", help="Show an order and its history")
    show_p.add_argument("order_id")
    orders_p = sub.add_parser("orders", help="List an actor's orders")
    orders_p.add_argument("--actor", required=True)
    orders_p.add_argument("--limit", type=int, default=20)

    # ad add
    ad_p = sub.add_parser("ad", help="Local ad catalog")
    ad_sub = ad_p.add_subparsers(dest="ad_command")
    add_p = ad_sub.add_parser("add", help="Post an ad")
    add_p.add_argument("type", choices=[t.value for t in AdType])
    add_p.add_argument("token", choices=[t.value for t in Token])
    add_p.add_argument("price_usd", type=float)
    add_p.add_argument("amount", type=float)
    add_p.add_argument("payment_method", nargs="?", default="UPI")
    add_p.add_argument("--actor", required=True)
    list_p = ad_sub.add_parser("list", help="List an actor's ads")
    list_p.add_argument("--actor", required=True)
    list_p.add_argument("--limit", type=int, default=10)

    # link
    link_p = sub.add_parser("link", help="Link a Telegram id and a wallet")
    link_p.add_argument("--telegram-id")
    link_p.add_argument("--wallet")
    link_p.add_argument("--username")

    # reconcile / daemon
    sub.add_parser("reconcile", help="Run one fulfillment outbox pass")
    daemon_p = sub.add_parser("daemon", help="Run the reconcile daemon")
    daemon_p.add_argument("--interval", type=int, default=None)
    daemon_p.add_argument("--stop", action="store_true")
    daemon_p.add_argument("--status", action="store_true")

    # fund-escrow
    fund_p = sub.add_parser("fund-escrow", help="Set up Permit2 allowances for escrow")
    fund_p.add_argument("token", choices=["USDT", "USDC"])
    fund_p.add_argument("amount")
    fund_p.add_argument(
        "--key-env", default="ESCROW_PRIVATE_KEY",
        help="Env var holding the owner's private key",
    )

    # config show / config set
    config_p = sub.add_parser("config", help="Config operations")
    config_sub = config_p.add_subparsers(dest="config_command")
    config_sub.add_parser("show", help="Display current config")
    set_p = config_sub.add_parser("set", help="Set a config value")
    set_p.add_argument("keyvalue", help="key=value to set")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = _load(args.config)

    try:
        if args.command == "open":
            return _cmd_open(config, args)
        elif args.command in TRANSITION_COMMANDS:
            return _cmd_transition(config, args)
        elif args.command == "show":
            return _cmd_show(config, args)
        elif args.command == "orders":
            return _cmd_orders(config, args)
        elif args.command == "ad":
            return _cmd_ad(config, args)
        elif args.command == "link":
            return _cmd_link(args)
        elif args.command == "reconcile":
            return _cmd_reconcile(config, args)
        elif args.command == "daemon":
            return _cmd_daemon(config, args)
        elif args.command == "fund-escrow":
            return _cmd_fund_escrow(config, args)
        elif args.command == "config":
            return _cmd_config(config, args)
    except P2PError as e:
        print(f"Error: {formatters.format_error(e)}")
        logging.getLogger(__name__).info("%s: %s", e.__class__.__name__, e)
        return exit_code_for(e)

    parser.print_help()
    return 1


def _load(path: str) -> P2PConfig:
    if Path(path).exists():
        return load_config(path)
    return default_config()


def _cmd_open(config, args) -> int:
    conn = open_database(args.db)
    try:
        engine = build_engine(config, conn)
        order = engine.open_order(args.ad_id, args.actor)
        if args.json:
            print(formatters.format_order_json(order))
            return 0
        ids = engine.identities.canonicalize(args.actor)
        role = PartyRole.BUYER if ids.matches(order.buyer_id) else PartyRole.SELLER
        print(formatters.format_order_created(order, role, args.actor))
        return 0
    finally:
        conn.close()


def _cmd_transition(config, args) -> int:
    conn = open_database(args.db)
    try:
        engine = build_engine(config, conn)
        order = engine.transition_with_retry(
            args.order_id, args.actor, TRANSITION_COMMANDS[args.command]
        )
        print(formatters.format_transition(order))
        return 0
    finally:
        conn.close()


def _cmd_show(config, args) -> int:
    conn = open_database(args.db)
    try:
        engine = build_engine(config, conn)
        order = engine.get_order(args.order_id)
        print(formatters.format_order_detail(order))
        for ev in event_repo.get_events_for_order(conn, order.id):
            print(
                f"  {ev['created_at']} {ev['event']} "
                f"{ev['from_status'] or '-'} -> {ev['to_status'] or '-'} "
                f"by {ev['actor'] or '-'} {ev['detail']}".rstrip()
            )
        return 0
    finally:
        conn.close()


def _cmd_orders(config, args) -> int:
    conn = open_database(args.db)
    try:
        engine = build_engine(config, conn)
        orders = engine.orders_for(args.actor, limit=args.limit)
        if not orders:
            print("You have no orders.")
            return 0
        for o in orders:
            print(
                f"#{o.id} {o.status.value} {o.token} {o.amount:g} @ ${o.unit_price:g} "
                f"(buyer {o.buyer_id}, seller {o.seller_id})"
            )
        return 0
    finally:
        conn.close()


def _cmd_ad(config, args) -> int:
    if args.ad_command == "list":
        return _cmd_ad_list(args)
    if args.ad_command != "add":
        print("Use: ad add <buy|sell> <token> <price_usd> <amount> [payment_method] | ad list")
        return 1
    if args.price_usd <= 0 or args.amount <= 0:
        print("Error: Invalid numbers")
        return 1
    conn = open_database(args.db)
    try:
        ad_id = ad_repo.save_ad(
            conn,
            AdType(args.type),
            Token(args.token),
            price_usd=args.price_usd,
            amount=args.amount,
            payment_method=args.payment_method,
            posted_by=args.actor,
            price_inr=round(args.price_usd * config.catalog.inr_per_usd),
        )
        print(f"Ad created: {ad_id}")
        return 0
    finally:
        conn.close()


def _cmd_ad_list(args) -> int:
    conn = open_database(args.db)
    try:
        ads = ad_repo.list_ads_by_poster(conn, args.actor, limit=args.limit)
        if not ads:
            print("You have no ads.")
            return 0
        for ad in ads:
            print(
                f"{ad.id} {ad.type.value} {ad.token.value} {ad.amount:g} "
                f"@ ${ad.price_usd:g} {ad.payment_method} [{ad.status.value}]"
            )
        return 0
    finally:
        conn.close()


def _cmd_link(args) -> int:
    if not args.telegram_id and not args.wallet:
        print("Error: --telegram-id or --wallet required")
        return 1
    conn = open_database(args.db)
    try:
        user = user_repo.upsert_user(
            conn,
            telegram_id=args.telegram_id,
            wallet_address=args.wallet,
            username=args.username,
        )
        print(
            f"Linked user #{user['id']}: telegram={user['telegram_id'] or '-'} "
            f"wallet={user['wallet_address'] or '-'}"
        )
        return 0
    finally:
        conn.close()


def _cmd_reconcile(config, args) -> int:
    summary = reconcile_once(config, args.db)
    print(
        f"Fulfillment: {summary.attempted} attempted, {summary.delivered} delivered, "
        f"{summary.failed} failed, {summary.abandoned} abandoned"
    )
    return 0 if not (summary.failed or summary.abandoned) else 1


def _cmd_daemon(config, args) -> int:
    if args.stop:
        return stop_daemon()
    if args.status:
        return daemon_status()
    ReconcileDaemon(config, db_path=args.db, interval=args.interval).start()
    return 0


def _cmd_fund_escrow(config, args) -> int:
    private_key = os.environ.get(args.key_env, "")
    if not private_key:
        print(f"Error: {args.key_env} not set")
        return 1

    def _progress(p: FundingProgress) -> None:
        print(f"[{p.phase.value}] {p.message}")

    cancel = threading.Event()
    coordinator = build_coordinator(
        config.escrow, private_key, progress=_progress, cancel_event=cancel
    )
    try:
        result = coordinator.fund(args.token, args.amount)
    except KeyboardInterrupt:
        cancel.set()
        print("Escrow funding cancelled")
        return 130
    print(formatters.format_funding_result(result))
    return 0


def _cmd_config(config, args) -> int:
    if args.config_command == "show":
        print(config.model_dump_json(indent=2))
        return 0
    elif args.config_command == "set":
        kv = args.keyvalue
        if "=" not in kv:
            print("Error: use key=value format")
            return 1
        key, value = kv.split("=", 1)
        try:
            new_config = set_config_value(config, key.strip(), value.strip())
        except (KeyError, ValueError) as e:
            print(f"Error: {e}")
            return 1
        print(f"Set {key.strip()} = {get_config_value(new_config, key.strip())}")
        return 0
    else:
        print("Use: config show | config set key=value")
        return 1
