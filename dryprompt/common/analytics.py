"""
Analytics Store

Optional persistence of suggestions and per-run statistics in Supabase,
talking to its PostgREST endpoint over httpx. Every operation degrades to a
no-op result when the store is not configured or the connection test failed;
nothing here raises into the pipeline.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .schemas import AnalysisRecord, Suggestion, utc_now_iso

logger = logging.getLogger("dryprompt.common.analytics")

SUGGESTIONS_TABLE = "suggestions"
ANALYSIS_TABLE = "analysis_results"


class AnalyticsStore:
    """
    Supabase-backed analytics store.

    Usage:
        store = AnalyticsStore(url="https://xyz.supabase.co", api_key="anon-key")
        if await store.initialize():
            await store.store_analysis_result(record)
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = (url or "").rstrip("/")
        self._api_key = api_key or ""
        self._timeout = timeout
        self._transport = transport
        self._connected = False

    @property
    def is_configured(self) -> bool:
        return bool(self._url and self._api_key)

    @property
    def is_available(self) -> bool:
        return self.is_configured and self._connected

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self._url}/rest/v1",
            headers=self._headers(),
            timeout=httpx.Timeout(self._timeout),
            transport=self._transport,
        )

    async def initialize(self) -> bool:
        """Test the connection; returns whether the store is usable."""
        if not self.is_configured:
            logger.warning("Supabase credentials not configured, analytics disabled")
            self._connected = False
            return False
        return await self.check_connection()

    async def check_connection(self) -> bool:
        if not self.is_configured:
            return False
        try:
            async with self._client() as client:
                response = await client.get(f"/{SUGGESTIONS_TABLE}", params={"select": "id", "limit": "1"})
            if response.status_code >= 400:
                logger.warning("Supabase connection test failed: HTTP %s %s", response.status_code, response.text[:200])
                self._connected = False
            else:
                self._connected = True
        except httpx.HTTPError as e:
            logger.warning("Supabase connection check failed: %s", e)
            self._connected = False
        return self._connected

    async def store_suggestion(self, suggestion: Suggestion) -> Optional[str]:
        """Insert a suggestion with status 'pending'; returns the row id."""
        if not self.is_available:
            logger.debug("Supabase not available, skipping suggestion storage")
            return None
        record = {
            "trigger": suggestion.trigger,
            "replacement": suggestion.replacement,
            "source_texts": suggestion.source_texts,
            "confidence": suggestion.confidence,
            "status": "pending",
        }
        try:
            async with self._client() as client:
                response = await client.post(
                    f"/{SUGGESTIONS_TABLE}",
                    json=record,
                    headers={"Prefer": "return=representation"},
                )
            response.raise_for_status()
            rows = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to store suggestion %s: %s", suggestion.trigger, e)
            return None

        if isinstance(rows, list) and rows:
            row_id = rows[0].get("id")
        elif isinstance(rows, dict):
            row_id = rows.get("id")
        else:
            row_id = None
        if row_id is not None:
            logger.info("Stored suggestion %s (ID: %s)", suggestion.trigger, row_id)
            return str(row_id)
        return None

    async def update_suggestion_status(self, suggestion_id: str, status: str) -> bool:
        """Record the user's accept/reject decision for a stored suggestion."""
        if status not in ("accepted", "rejected"):
            raise ValueError(f"Invalid suggestion status: {status}")
        if not self.is_available:
            return False
        try:
            async with self._client() as client:
                response = await client.patch(
                    f"/{SUGGESTIONS_TABLE}",
                    params={"id": f"eq.{suggestion_id}"},
                    json={"status": status, "updated_at": utc_now_iso()},
                )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Failed to update suggestion %s: %s", suggestion_id, e)
            return False
        logger.info("Updated suggestion %s status to: %s", suggestion_id, status)
        return True

    async def store_analysis_result(self, record: AnalysisRecord) -> bool:
        if not self.is_available:
            logger.debug("Supabase not available, skipping analysis storage")
            return False
        try:
            async with self._client() as client:
                response = await client.post(f"/{ANALYSIS_TABLE}", json=record.model_dump(mode="json"))
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Failed to store analysis result: %s", e)
            return False
        logger.info("Stored analysis result (%d prompts, %d suggestions)",
                    record.total_prompts, record.suggestions_generated)
        return True

    async def get_suggestion_stats(self) -> Optional[Dict[str, int]]:
        if not self.is_available:
            return None
        try:
            async with self._client() as client:
                response = await client.get(f"/{SUGGESTIONS_TABLE}", params={"select": "status"})
            response.raise_for_status()
            rows = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to get suggestion stats: %s", e)
            return None

        stats = {"total": len(rows), "accepted": 0, "rejected": 0, "pending": 0}
        for row in rows:
            status = row.get("status")
            if status in stats:
                stats[status] += 1
        return stats

    async def get_recent_analyses(self, limit: int = 10) -> List[Dict[str, Any]]:
        if not self.is_available:
            return []
        try:
            async with self._client() as client:
                response = await client.get(
                    f"/{ANALYSIS_TABLE}",
                    params={"select": "*", "order": "analysis_timestamp.desc", "limit": str(limit)},
                )
            response.raise_for_status()
            return response.json() or []
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to get recent analyses: %s", e)
            return []
