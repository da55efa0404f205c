"""SEOPULSE — Google Search Console API Client.

Handles authentication header, retry with backoff on rate limits and server
errors, and maps HTTP failures to the fetch error taxonomy. The OAuth token
exchange is out of scope: the client receives an access token (or a callable
returning one) from the caller.
"""

import asyncio
from datetime import date
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx

from seopulse.config import settings
from seopulse.connectors.base_source import AnalyticsSource
from seopulse.connectors.search_console.transformer import transform_rows, transform_sitemaps
from seopulse.core.errors import (
    AuthorizationError,
    FetchError,
    TransientFetchError,
    ValidationError,
    error_for_status,
)
from seopulse.models.analysis_models import TechnicalIssue
from seopulse.models.metric_models import MetricRow
from seopulse.core.logging import get_logger

logger = get_logger("search_console.client")

MAX_RETRIES = 3
RETRY_BASE_DELAY = 2  # seconds


def is_valid_site_ref(site_ref: str) -> bool:
    """A Search Console property is a URL-prefix or a sc-domain: property."""
    if not site_ref:
        return False
    return "://" in site_ref or site_ref.startswith("sc-domain:")


class SearchConsoleClient(AnalyticsSource):
    """Async HTTP client for the Search Console Search Analytics API."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        token_provider: Optional[Callable[[], str]] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        row_limit: Optional[int] = None,
        retry_base_delay: float = RETRY_BASE_DELAY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token or settings.gsc_access_token
        self.token_provider = token_provider
        self.base_url = (base_url or settings.gsc_base_url).rstrip("/")
        self.timeout = settings.fetch_timeout_seconds if timeout is None else timeout
        self.row_limit = settings.fetch_row_limit if row_limit is None else row_limit
        self.retry_base_delay = retry_base_delay
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        token = self.token_provider() if self.token_provider else self.access_token
        if not token:
            raise AuthorizationError("No Search Console access token configured")
        return {"Authorization": f"Bearer {token}"}

    def _site_url(self, site_ref: str) -> str:
        return f"{self.base_url}/sites/{quote(site_ref, safe='')}"

    # ── Core Request Method ──

    async def _request(
        self,
        method: str,
        url: str,
        json_body: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        """Make a request with retry + rate-limit handling."""
        client = await self._get_client()
        headers = self._headers()

        for attempt in range(1, MAX_RETRIES + 1):
            wait = self.retry_base_delay * (2 ** (attempt - 1))
            try:
                resp = await client.request(method, url, json=json_body, headers=headers)
            except httpx.TimeoutException as e:
                if attempt < MAX_RETRIES:
                    logger.warning(f"Request timed out. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise TransientFetchError(f"Timed out after {MAX_RETRIES} attempts: {e}") from e
            except httpx.RequestError as e:
                if attempt < MAX_RETRIES:
                    logger.warning(f"Request error: {e}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise TransientFetchError(
                    f"Connection failed after {MAX_RETRIES} retries: {e}"
                ) from e

            if resp.status_code == 429 or resp.status_code >= 500:
                if attempt < MAX_RETRIES:
                    logger.warning(
                        f"Upstream {resp.status_code}. Retrying in {wait}s (attempt {attempt}/{MAX_RETRIES})",
                        extra={"status_code": resp.status_code},
                    )
                    await asyncio.sleep(wait)
                    continue

            if resp.status_code >= 400:
                raise error_for_status(resp.status_code, self._error_message(resp))

            try:
                payload = resp.json()
            except ValueError as e:
                raise ValidationError(f"Response is not JSON: {e}", resp.status_code) from e
            if not isinstance(payload, dict):
                raise ValidationError("Response is not a JSON object", resp.status_code)
            return payload

        raise TransientFetchError("Max retries exhausted")

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return f"HTTP {resp.status_code}"
        error = body.get("error", {}) if isinstance(body, dict) else {}
        if isinstance(error, dict):
            return error.get("message") or f"HTTP {resp.status_code}"
        return str(error)

    # ── Search Analytics ──

    async def _query(
        self, site_ref: str, day: date, dimensions: List[str]
    ) -> List[Dict[str, Any]]:
        if not is_valid_site_ref(site_ref):
            raise ValidationError(f"Invalid Search Console property: {site_ref!r}")
        body = {
            "startDate": day.isoformat(),
            "endDate": day.isoformat(),
            "dimensions": dimensions,
            "rowLimit": self.row_limit,
        }
        result = await self._request(
            "POST", f"{self._site_url(site_ref)}/searchAnalytics/query", body
        )
        rows = result.get("rows") or []
        if not isinstance(rows, list):
            raise ValidationError("'rows' is not a list")
        return rows

    async def fetch_daily_totals(self, site_ref: str, day: date) -> List[MetricRow]:
        rows = await self._query(site_ref, day, ["date"])
        return transform_rows(rows[:1], keyed=False, context=f"{site_ref} {day} daily")

    async def fetch_page_breakdown(self, site_ref: str, day: date) -> List[MetricRow]:
        rows = await self._query(site_ref, day, ["page"])
        return transform_rows(rows, keyed=True, context=f"{site_ref} {day} pages")

    async def fetch_query_breakdown(self, site_ref: str, day: date) -> List[MetricRow]:
        rows = await self._query(site_ref, day, ["query"])
        return transform_rows(rows, keyed=True, context=f"{site_ref} {day} queries")

    # ── Sitemaps ──

    async def fetch_sitemap_issues(self, site_ref: str) -> List[TechnicalIssue]:
        """Indexing issues from submitted sitemaps."""
        try:
            result = await self._request("GET", f"{self._site_url(site_ref)}/sitemaps")
        except FetchError as e:
            logger.warning(f"Could not fetch sitemaps for {site_ref}: {e}", extra={"error_kind": e.kind.value})
            return []
        return transform_sitemaps(result)
