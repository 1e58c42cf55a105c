"""Typed errors raised by the order engine and its collaborators.

Every error carries a ``user_message`` that callers can show verbatim, so the
bot and HTTP layers map failures without inspecting exception text.
"""


class P2PError(Exception):
    user_message = "Order update failed."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.user_message)


class NotFound(P2PError):
    user_message = "Not found."


class AdNotFound(NotFound):
    user_message = "Ad not found."

    def __init__(self, ad_id: str):
        super().__init__(f"Ad {ad_id} not found")
        self.ad_id = ad_id


class OrderNotFound(NotFound):
    user_message = "Order not found."

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class AdUnavailable(P2PError):
    user_message = "This ad has already been fulfilled."

    def __init__(self, ad_id: str):
        super().__init__(f"Ad {ad_id} is fulfilled and cannot seed new orders")
        self.ad_id = ad_id


class SelfTrade(P2PError):
    user_message = "You cannot open an order on your own ad."

    def __init__(self, ad_id: str, actor_id: str):
        super().__init__(f"Actor {actor_id} posted ad {ad_id}")
        self.ad_id = ad_id
        self.actor_id = actor_id


class Forbidden(P2PError):
    user_message = "You are not a party in this order."

    def __init__(self, order_id: str, actor_id: str):
        super().__init__(f"Actor {actor_id} is not a party to order {order_id}")
        self.order_id = order_id
        self.actor_id = actor_id


class InvalidTransition(P2PError):
    user_message = "Action not allowed for current status."

    def __init__(self, order_id: str, current: str, requested: str, reason: str = ""):
        detail = f"Order {order_id}: {current} -> {requested} not allowed"
        if reason:
            detail = f"{detail} ({reason})"
        super().__init__(detail)
        self.order_id = order_id
        self.current = current
        self.requested = requested
        self.reason = reason


class StoreConflict(P2PError):
    user_message = "The order changed while you were updating it. Please retry."

    def __init__(self, order_id: str, expected: str):
        super().__init__(f"Order {order_id} is no longer {expected}")
        self.order_id = order_id
        self.expected = expected


class IdentityConflict(P2PError):
    user_message = "This account is already linked to another user."

    def __init__(self, detail: str):
        super().__init__(f"Identity link conflict: {detail}")
        self.detail = detail


class CatalogError(P2PError):
    """Raised when the ad catalog cannot be reached or returns an error."""

    user_message = "Ad catalog unavailable."

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class EscrowStepFailed(P2PError):
    user_message = "Escrow funding failed."

    def __init__(self, phase: str, chain_error: str):
        super().__init__(f"{phase}: {chain_error}")
        self.phase = phase
        self.chain_error = chain_error


class FundingCancelled(EscrowStepFailed):
    user_message = "Escrow funding cancelled."

    def __init__(self, phase: str):
        super().__init__(phase, "cancelled by user")


# Most specific class first; lookups walk this list in order.
EXIT_CODES: list[tuple[type[P2PError], int]] = [
    (NotFound, 3),
    (Forbidden, 4),
    (InvalidTransition, 5),
    (AdUnavailable, 5),
    (SelfTrade, 5),
    (StoreConflict, 6),
    (IdentityConflict, 6),
    (CatalogError, 7),
    (EscrowStepFailed, 8),
]

HTTP_STATUS: list[tuple[type[P2PError], int]] = [
    (NotFound, 404),
    (Forbidden, 403),
    (InvalidTransition, 409),
    (AdUnavailable, 409),
    (SelfTrade, 409),
    (StoreConflict, 409),
    (IdentityConflict, 409),
    (CatalogError, 502),
    (EscrowStepFailed, 502),
]


def exit_code_for(err: P2PError) -> int:
    for cls, code in EXIT_CODES:
        if isinstance(err, cls):
            return code
    return 1


def http_status_for(err: P2PError) -> int:
    for cls, code in HTTP_STATUS:
        if isinstance(err, cls):
            return code
    return 500
