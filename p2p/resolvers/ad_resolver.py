"""Ad reference resolver: reads ad terms and writes ad fulfillment."""

import logging
import sqlite3
from typing import Protocol

from p2p.config.schema import CatalogBackend, CatalogConfig
from p2p.errors import AdNotFound
from p2p.models.ad import AdSnapshot
from p2p.resolvers.ad_catalog import SqliteAdCatalog, SupabaseAdCatalog

logger = logging.getLogger(__name__)


class AdCatalog(Protocol):
    def get_ad(self, ad_id: str) -> AdSnapshot | None: ...

    def mark_fulfilled(self, ad_id: str) -> None: ...


class AdResolver:
    def __init__(self, catalog: AdCatalog):
        self.catalog = catalog

    def resolve(self, ad_id: str) -> AdSnapshot:
        """Current terms of an ad. Raises AdNotFound."""
        ad = self.catalog.get_ad(ad_id)
        if ad is None:
            raise AdNotFound(ad_id)
        return ad

    def mark_fulfilled(self, ad_id: str) -> None:
        self.catalog.mark_fulfilled(ad_id)
        logger.info("Ad %s marked fulfilled", ad_id)


def build_catalog(config: CatalogConfig, conn: sqlite3.Connection) -> AdCatalog:
    if config.backend == CatalogBackend.SUPABASE:
        return SupabaseAdCatalog(config.base_url, timeout=config.timeout_seconds)
    return SqliteAdCatalog(conn)
