"""Order transition table and the role rule for each edge."""

from enum import StrEnum

from p2p.models.order import OrderStatus, PartyRole


class Invoker(StrEnum):
    EITHER = "either"
    BUYER = "buyer"
    SELLER = "seller"


_OPEN = (OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.MATCHED)

TRANSITIONS: dict[tuple[OrderStatus, OrderStatus], Invoker] = {
    (OrderStatus.PENDING, OrderStatus.PAID): Invoker.BUYER,
    (OrderStatus.PAID, OrderStatus.RELEASED): Invoker.SELLER,
    **{(s, OrderStatus.CANCELED): Invoker.EITHER for s in _OPEN},
    **{(s, OrderStatus.DISPUTED): Invoker.EITHER for s in _OPEN},
}

REQUESTABLE = frozenset(
    {OrderStatus.PAID, OrderStatus.RELEASED, OrderStatus.CANCELED, OrderStatus.DISPUTED}
)


def invoker_for(
    current: OrderStatus,
    requested: OrderStatus,
    allow_seller_mark_paid: bool = False,
) -> Invoker | None:
    """Who may move an order from ``current`` to ``requested``; None if no such edge."""
    invoker = TRANSITIONS.get((current, requested))
    if (
        invoker == Invoker.BUYER
        and requested == OrderStatus.PAID
        and allow_seller_mark_paid
    ):
        return Invoker.EITHER
    return invoker


def check_transition(
    current: OrderStatus,
    requested: OrderStatus,
    role: PartyRole,
    allow_seller_mark_paid: bool = False,
) -> str | None:
    """Return a rejection reason, or None if ``role`` may apply the transition."""
    invoker = invoker_for(current, requested, allow_seller_mark_paid)
    if invoker is None:
        return f"no transition from {current} to {requested}"
    if invoker == Invoker.EITHER or invoker.value == role.value:
        return None
    return f"only the {invoker} may move an order to {requested}"


def next_actions(status: OrderStatus) -> list[OrderStatus]:
    """Statuses reachable from ``status``, in table order."""
    return [nxt for (cur, nxt) in TRANSITIONS if cur == status]
