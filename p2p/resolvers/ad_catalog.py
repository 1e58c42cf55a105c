"""Ad catalog backends: the local ads table or a hosted Supabase table."""

import logging
import os
import sqlite3

import httpx

from p2p.errors import AdNotFound, CatalogError
from p2p.models.ad import AdSnapshot, AdStatus
from p2p.storage import ad_repo

logger = logging.getLogger(__name__)

AD_COLUMNS = "id,type,token,price_usd,price_inr,amount,payment_method,posted_by,status"


class SqliteAdCatalog:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get_ad(self, ad_id: str) -> AdSnapshot | None:
        return ad_repo.get_ad(self.conn, ad_id)

    def mark_fulfilled(self, ad_id: str) -> None:
        if not ad_repo.mark_fulfilled(self.conn, ad_id):
            raise AdNotFound(ad_id)


class SupabaseAdCatalog:
    """PostgREST client for the hosted ``ads`` table.

    Reads use ``?id=eq.<id>`` filters and return a list; fulfillment is a
    PATCH of the status column, which is safe to repeat.
    """

    def __init__(
        self,
        base_url: str,
        service_key: str | None = None,
        timeout: float = 15.0,
    ):
        if not base_url:
            raise CatalogError("catalog.base_url not set")
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key or os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")
        if not self.service_key:
            raise CatalogError("SUPABASE_SERVICE_ROLE_KEY not set")
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, params: dict, json: dict | None = None) -> httpx.Response:
        url = f"{self.base_url}/rest/v1/ads"
        try:
            resp = httpx.request(
                method, url, params=params, headers=self._headers(),
                json=json, timeout=self.timeout,
            )
        except httpx.RequestError as e:
            logger.error("Ad catalog request failed: %s %s -> %s", method, params, e)
            raise CatalogError(f"Request failed: {e}") from e
        return resp

    def get_ad(self, ad_id: str) -> AdSnapshot | None:
        resp = self._request("GET", {"id": f"eq.{ad_id}", "select": AD_COLUMNS})
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            logger.error("Ad catalog %d for ad=%s: %s", resp.status_code, ad_id, resp.text)
            raise CatalogError(f"HTTP {resp.status_code}: {resp.text}", resp.status_code)
        data = resp.json()
        if isinstance(data, list):
            data = data[0] if data else None
        if not data:
            return None
        return AdSnapshot.from_row(data)

    def mark_fulfilled(self, ad_id: str) -> None:
        resp = self._request(
            "PATCH",
            {"id": f"eq.{ad_id}"},
            json={"status": AdStatus.FULFILLED.value},
        )
        if resp.status_code >= 400:
            logger.error(
                "Ad catalog %d marking ad=%s fulfilled: %s",
                resp.status_code, ad_id, resp.text,
            )
            raise CatalogError(f"HTTP {resp.status_code}: {resp.text}", resp.status_code)
