"""Output formatters for orders: chat text, inline buttons, JSON."""

import json

from p2p.errors import P2PError
from p2p.models.escrow import FundingResult
from p2p.models.order import Order, OrderStatus, PartyRole
from p2p.orders.transitions import next_actions

CALLBACK_PREFIX = "order"

# callback verb <-> requested status
ACTION_STATUSES: dict[str, OrderStatus] = {
    "paid": OrderStatus.PAID,
    "release": OrderStatus.RELEASED,
    "cancel": OrderStatus.CANCELED,
    "dispute": OrderStatus.DISPUTED,
}

_BUTTON_LABELS: dict[str, str] = {
    "paid": "✅ Mark Paid",
    "release": "🔓 Release",
    "cancel": "❌ Cancel",
    "dispute": "⚠️ Dispute",
}


def format_order_created(order: Order, role: PartyRole, actor_label: str) -> str:
    """Confirmation shown to the actor who opened the order."""
    lines = [
        f"Order #{order.id} created",
        f"{role.value.capitalize()}: @{actor_label}",
        f"Token: {order.token} • Amount: {order.amount:g} • Price: ${order.unit_price:g}",
        f"Payment: {order.fiat_method}",
        f"Status: {order.status.value}",
    ]
    return "\n".join(lines)


def format_order_detail(order: Order) -> str:
    lines = [
        f"Order #{order.id}",
        f"Ad: {order.ad_id}",
        f"Buyer: {order.buyer_id} | Seller: {order.seller_id}",
        f"Token: {order.token} • Amount: {order.amount:g} • Price: ${order.unit_price:g}",
        f"Payment: {order.fiat_method}",
        f"Status: {order.status.value}",
        f"Opened: {order.created_at}",
    ]
    return "\n".join(lines)


def format_transition(order: Order) -> str:
    return f"Order #{order.id} → {order.status.value}"


def format_error(err: P2PError) -> str:
    return err.user_message


def order_keyboard(order: Order) -> list[list[dict[str, str]]]:
    """Inline keyboard rows for the actions still open on ``order``.

    Terminal orders get no buttons.
    """
    reachable = set(next_actions(order.status))
    buttons = [
        {
            "text": _BUTTON_LABELS[verb],
            "callback_data": f"{CALLBACK_PREFIX}:{verb}:{order.id}",
        }
        for verb, status in ACTION_STATUSES.items()
        if status in reachable
    ]
    return [buttons[i:i + 2] for i in range(0, len(buttons), 2)]


def parse_order_callback(data: str) -> tuple[OrderStatus, str] | None:
    """Parse ``order:<verb>:<id>`` into (requested status, order id)."""
    parts = data.split(":", 2)
    if len(parts) != 3 or parts[0] != CALLBACK_PREFIX:
        return None
    status = ACTION_STATUSES.get(parts[1])
    if status is None or not parts[2]:
        return None
    return status, parts[2]


def format_order_json(order: Order) -> str:
    return json.dumps(order.to_dict(), indent=2)


def format_funding_result(result: FundingResult) -> str:
    lines = [
        f"Escrow allowance ready for {result.token_symbol} ({result.token_address})",
        f"Owner: {result.owner}",
        f"Amount (base units): {result.amount_raw}",
    ]
    if result.arbiter:
        lines.append(f"Arbiter: {result.arbiter} • Fee {result.fee_bps / 100:.2f}%")
    if result.expiration is not None:
        lines.append(f"Expires at: {result.expiration}")
    if result.bridge_tx:
        lines.append(f"Permit2 approval tx: {result.bridge_tx}")
    if result.escrow_tx:
        lines.append(f"Escrow allowance tx: {result.escrow_tx}")
    if result.skipped:
        lines.append("Already in place: " + ", ".join(p.value for p in result.skipped))
    return "\n".join(lines)
