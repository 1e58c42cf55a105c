"""Fulfillment reconciler: delivers queued ad-fulfillment marks.

The ``released`` transition queues an outbox entry in the same transaction as
the status change. Delivery to the catalog happens afterwards, at least once,
either inline right after the transition or from the reconcile daemon. A
failed delivery never undoes the release; it is retried until
``max_attempts`` and then abandoned with an ERROR log and an audit event.
"""

import logging
import sqlite3

from p2p.models.fulfillment import OutboxEntry, OutboxStatus, ReconcileSummary
from p2p.models.order import OrderEvent
from p2p.resolvers.ad_resolver import AdResolver
from p2p.storage import event_repo, outbox_repo

logger = logging.getLogger(__name__)


class FulfillmentReconciler:
    def __init__(
        self,
        conn: sqlite3.Connection,
        ads: AdResolver,
        max_attempts: int = 10,
    ):
        self.conn = conn
        self.ads = ads
        self.max_attempts = max_attempts
        # Metrics
        self.delivered = 0
        self.failed = 0
        self.abandoned = 0

    def deliver(self, entry: OutboxEntry) -> bool:
        """Try one delivery. Returns True if the ad is now marked fulfilled."""
        try:
            self.ads.mark_fulfilled(entry.ad_id)
        except Exception as e:
            self._record_failure(entry, str(e) or e.__class__.__name__)
            return False

        outbox_repo.mark_delivered(self.conn, entry.id)
        self.delivered += 1
        return True

    def deliver_for_order(self, order_id: str) -> bool:
        entry = outbox_repo.get_entry_for_order(self.conn, order_id)
        if entry is None:
            return False
        return self.deliver(entry)

    def run_once(self, limit: int = 50) -> ReconcileSummary:
        """Drain up to ``limit`` pending entries."""
        summary = ReconcileSummary()
        for entry in outbox_repo.get_pending(self.conn, limit):
            summary.attempted += 1
            if self.deliver(entry):
                summary.delivered += 1
                continue
            refreshed = outbox_repo.get_entry_for_order(self.conn, entry.order_id)
            assert refreshed is not None
            if refreshed.status == OutboxStatus.ABANDONED:
                summary.abandoned += 1
            else:
                summary.failed += 1
            summary.errors.append(f"{entry.ad_id}: {refreshed.last_error}")
        if summary.attempted:
            logger.info(
                "Fulfillment pass: %d attempted, %d delivered, %d failed, %d abandoned",
                summary.attempted, summary.delivered, summary.failed, summary.abandoned,
            )
        return summary

    def _record_failure(self, entry: OutboxEntry, error: str) -> None:
        attempts = entry.attempts + 1
        abandon = attempts >= self.max_attempts
        outbox_repo.record_failure(self.conn, entry.id, error, abandon=abandon)
        self.failed += 1

        if abandon:
            self.abandoned += 1
            logger.error(
                "Fulfillment of ad %s for order %s abandoned after %d attempts: %s",
                entry.ad_id, entry.order_id, attempts, error,
            )
            event = "fulfillment_abandoned"
        else:
            logger.warning(
                "Fulfillment of ad %s for order %s failed (attempt %d/%d): %s",
                entry.ad_id, entry.order_id, attempts, self.max_attempts, error,
            )
            event = "fulfillment_failed"

        event_repo.record_event(
            self.conn,
            OrderEvent(
                order_id=entry.order_id,
                event=event,
                from_status=None,
                to_status=None,
                actor="reconciler",
                detail=f"ad={entry.ad_id} attempt={attempts}: {error}",
            ),
        )
