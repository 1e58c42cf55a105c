"""Order lifecycle engine: opens orders from ads and applies transitions.

Each call is a self-contained unit of work against one connection. Status
writes are compare-and-swap on the status the engine read, so two callers
racing on the same order cannot both commit; the loser gets StoreConflict.
"""

import logging
import sqlite3
import time

from p2p.config.schema import OrdersConfig, P2PConfig
from p2p.errors import (
    AdUnavailable,
    Forbidden,
    InvalidTransition,
    OrderNotFound,
    SelfTrade,
    StoreConflict,
)
from p2p.models.ad import AdType
from p2p.models.common import new_order_id, utc_now_iso
from p2p.models.order import Order, OrderEvent, OrderStatus, PartyRole
from p2p.orders.fulfillment import FulfillmentReconciler
from p2p.orders.transitions import REQUESTABLE, check_transition
from p2p.resolvers.ad_resolver import AdResolver, build_catalog
from p2p.resolvers.identity import IdentityResolver, IdentitySet, normalize_identity
from p2p.storage import event_repo, order_repo, outbox_repo

logger = logging.getLogger(__name__)


class OrderLifecycleEngine:
    def __init__(
        self,
        conn: sqlite3.Connection,
        ads: AdResolver,
        identities: IdentityResolver,
        config: OrdersConfig | None = None,
        reconciler: FulfillmentReconciler | None = None,
    ):
        self.conn = conn
        self.ads = ads
        self.identities = identities
        self.config = config or OrdersConfig()
        self.reconciler = reconciler

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        order = order_repo.get_order(self.conn, order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def orders_for(self, actor: str | IdentitySet, limit: int = 20) -> list[Order]:
        ids = self._identity_set(actor)
        return order_repo.list_orders_for_party(self.conn, ids.identities, limit)

    # ------------------------------------------------------------------
    # Open
    # ------------------------------------------------------------------

    def open_order(self, ad_id: str, actor: str | IdentitySet) -> Order:
        """Accept an ad's terms, creating a pending order.

        On a sell ad the actor buys from the poster; on a buy ad the actor
        sells to the poster.
        """
        ids = self._identity_set(actor)
        ad = self.ads.resolve(ad_id)
        if ad.fulfilled or not ad.posted_by:
            raise AdUnavailable(ad.id)
        if ids.matches(ad.posted_by):
            raise SelfTrade(ad.id, ids.primary)

        actor_id = normalize_identity(ids.primary)
        poster_id = normalize_identity(ad.posted_by)
        if ad.type == AdType.SELL:
            buyer_id, seller_id = actor_id, poster_id
        else:
            buyer_id, seller_id = poster_id, actor_id

        order = Order(
            id=new_order_id(),
            ad_id=ad.id,
            token=ad.token.value,
            unit_price=ad.price_usd,
            amount=ad.amount,
            fiat_method=ad.payment_method,
            buyer_id=buyer_id,
            seller_id=seller_id,
            status=OrderStatus.PENDING,
            created_at=utc_now_iso(),
        )
        try:
            order_repo.create_order(self.conn, order, commit=False)
            event_repo.record_event(
                self.conn,
                OrderEvent(
                    order_id=order.id,
                    event="created",
                    from_status=None,
                    to_status=order.status.value,
                    actor=actor_id,
                    detail=f"ad={ad.id} type={ad.type}",
                ),
                commit=False,
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        logger.info(
            "Order %s opened on ad %s (buyer=%s seller=%s)",
            order.id, ad.id, buyer_id, seller_id,
        )
        return order

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition(
        self, order_id: str, actor: str | IdentitySet, requested: OrderStatus | str
    ) -> Order:
        """Apply one transition for ``actor``.

        Raises OrderNotFound, Forbidden, InvalidTransition or StoreConflict.
        """
        ids = self._identity_set(actor)
        order = self.get_order(order_id)

        role = self._role_of(order, ids)
        if role is None:
            logger.warning(
                "Actor %s denied on order %s (not a party)", ids.primary, order_id
            )
            raise Forbidden(order_id, ids.primary)

        try:
            requested = OrderStatus(requested)
        except ValueError:
            raise InvalidTransition(
                order_id, order.status.value, str(requested), "unknown status"
            ) from None

        if requested not in REQUESTABLE:
            raise InvalidTransition(
                order_id, order.status.value, requested.value, "not a requestable status"
            )
        reason = check_transition(
            order.status, requested, role, self.config.allow_seller_mark_paid
        )
        if reason is not None:
            logger.info(
                "Order %s: %s rejected for %s (%s)",
                order_id, requested, ids.primary, reason,
            )
            raise InvalidTransition(order_id, order.status.value, requested.value, reason)

        try:
            updated = order_repo.update_status(
                self.conn, order_id, order.status, requested, commit=False
            )
            event_repo.record_event(
                self.conn,
                OrderEvent(
                    order_id=order_id,
                    event="transition",
                    from_status=order.status.value,
                    to_status=requested.value,
                    actor=normalize_identity(ids.primary),
                    detail=role.value,
                ),
                commit=False,
            )
            if requested == OrderStatus.RELEASED:
                outbox_repo.enqueue_fulfillment(
                    self.conn, order_id, order.ad_id, commit=False
                )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        logger.info(
            "Order %s: %s -> %s by %s (%s)",
            order_id, order.status, requested, ids.primary, role,
        )

        if requested == OrderStatus.RELEASED and self.reconciler is not None:
            self._deliver_inline(order_id)

        return updated

    def _deliver_inline(self, order_id: str) -> None:
        # The release is committed; the outbox entry stays for the daemon.
        try:
            self.reconciler.deliver_for_order(order_id)
        except Exception:
            self.conn.rollback()
            logger.exception(
                "Order %s: inline fulfillment failed, left for reconcile", order_id
            )

    def transition_with_retry(
        self, order_id: str, actor: str | IdentitySet, requested: OrderStatus | str
    ) -> Order:
        """``transition`` that reloads and retries on StoreConflict with backoff."""
        retries = self.config.conflict_retries
        backoff = self.config.conflict_backoff_ms / 1000
        attempt = 0
        while True:
            try:
                return self.transition(order_id, actor, requested)
            except StoreConflict:
                if attempt >= retries:
                    logger.warning(
                        "Order %s: giving up after %d conflicting attempts",
                        order_id, attempt + 1,
                    )
                    raise
                wait = backoff * (2 ** attempt)
                logger.info(
                    "Order %s: concurrent update, retry %d/%d in %.3fs",
                    order_id, attempt + 1, retries, wait,
                )
                time.sleep(wait)
                attempt += 1

    def mark_paid(self, order_id: str, actor: str | IdentitySet) -> Order:
        return self.transition_with_retry(order_id, actor, OrderStatus.PAID)

    def release(self, order_id: str, actor: str | IdentitySet) -> Order:
        return self.transition_with_retry(order_id, actor, OrderStatus.RELEASED)

    def cancel(self, order_id: str, actor: str | IdentitySet) -> Order:
        return self.transition_with_retry(order_id, actor, OrderStatus.CANCELED)

    def dispute(self, order_id: str, actor: str | IdentitySet) -> Order:
        return self.transition_with_retry(order_id, actor, OrderStatus.DISPUTED)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _identity_set(self, actor: str | IdentitySet) -> IdentitySet:
        if isinstance(actor, IdentitySet):
            return actor
        return self.identities.canonicalize(actor)

    @staticmethod
    def _role_of(order: Order, ids: IdentitySet) -> PartyRole | None:
        if ids.matches(order.buyer_id):
            return PartyRole.BUYER
        if ids.matches(order.seller_id):
            return PartyRole.SELLER
        return None


def build_engine(config: P2PConfig, conn: sqlite3.Connection) -> OrderLifecycleEngine:
    """Wire an engine and its reconciler to one connection."""
    ads = AdResolver(build_catalog(config.catalog, conn))
    reconciler = FulfillmentReconciler(
        conn, ads, max_attempts=config.fulfillment.max_attempts
    )
    return OrderLifecycleEngine(
        conn,
        ads,
        IdentityResolver(conn),
        config=config.orders,
        reconciler=reconciler,
    )
