"""
Search Console client against httpx.MockTransport.
"""

from datetime import date

import httpx
import pytest

from conftest import run
from seopulse.connectors.search_console.client import SearchConsoleClient, is_valid_site_ref
from seopulse.connectors.search_console.transformer import transform_rows
from seopulse.core.errors import (
    AuthorizationError,
    NotFoundError,
    TransientFetchError,
    ValidationError,
)

DAY = date(2026, 3, 15)
SITE = "https://www.example.com/"


def _client(handler, **kwargs):
    kwargs.setdefault("access_token", "token")
    return SearchConsoleClient(
        transport=httpx.MockTransport(handler), retry_base_delay=0, **kwargs
    )


def _rows(*rows):
    return httpx.Response(200, json={"rows": list(rows)})


async def _fetch(client, method, *args):
    try:
        return await getattr(client, method)(*args)
    finally:
        await client.close()


class TestSearchAnalytics:
    def test_page_breakdown(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            return _rows(
                {"keys": ["https://www.example.com/"], "clicks": 12, "impressions": 340, "ctr": 0.035, "position": 4.2},
                {"keys": ["https://www.example.com/pricing"], "clicks": 3, "impressions": 90, "ctr": 0.033, "position": 9.1},
            )

        rows = run(_fetch(_client(handler), "fetch_page_breakdown", SITE, DAY))

        assert [r.key for r in rows] == ["https://www.example.com/", "https://www.example.com/pricing"]
        assert rows[0].clicks == 12 and rows[0].position == 4.2
        assert seen["url"].endswith("/searchAnalytics/query")
        assert "www.example.com" in seen["url"]
        assert seen["auth"] == "Bearer token"

    def test_daily_totals_without_rows_is_empty(self):
        rows = run(_fetch(_client(lambda request: httpx.Response(200, json={})), "fetch_daily_totals", SITE, DAY))
        assert rows == []

    def test_retries_server_errors_then_succeeds(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(503)
            return _rows({"keys": ["2026-03-15"], "clicks": 5, "impressions": 50, "ctr": 0.1, "position": 3.0})

        rows = run(_fetch(_client(handler), "fetch_daily_totals", SITE, DAY))

        assert len(attempts) == 3
        assert rows[0].clicks == 5

    def test_exhausted_retries_are_transient(self):
        with pytest.raises(TransientFetchError):
            run(_fetch(_client(lambda request: httpx.Response(429)), "fetch_daily_totals", SITE, DAY))

    def test_connection_errors_are_transient(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransientFetchError):
            run(_fetch(_client(handler), "fetch_query_breakdown", SITE, DAY))

    @pytest.mark.parametrize(
        "status, error",
        [(401, AuthorizationError), (403, AuthorizationError), (404, NotFoundError), (400, ValidationError)],
    )
    def test_status_mapping(self, status, error):
        def handler(request):
            return httpx.Response(status, json={"error": {"message": "nope"}})

        with pytest.raises(error, match="nope"):
            run(_fetch(_client(handler), "fetch_query_breakdown", SITE, DAY))

    def test_missing_token(self):
        client = _client(lambda request: _rows(), access_token="")
        with pytest.raises(AuthorizationError):
            run(_fetch(client, "fetch_daily_totals", SITE, DAY))

    def test_invalid_property_never_calls_upstream(self):
        calls = []

        def handler(request):
            calls.append(request)
            return _rows()

        with pytest.raises(ValidationError):
            run(_fetch(_client(handler), "fetch_daily_totals", "example.com", DAY))
        assert calls == []


class TestTransform:
    def test_malformed_rows_are_skipped(self):
        rows = transform_rows(
            [
                {"keys": ["/ok"], "clicks": 1, "impressions": 10, "ctr": 0.1, "position": 2.0},
                {"keys": [], "clicks": 1},
                {"keys": ["/neg"], "clicks": -4},
                {"keys": ["/nan"], "clicks": "lots"},
                "garbage",
            ],
            keyed=True,
        )
        assert [r.key for r in rows] == ["/ok"]

    def test_site_ref_formats(self):
        assert is_valid_site_ref("https://www.example.com/")
        assert is_valid_site_ref("sc-domain:example.com")
        assert not is_valid_site_ref("example.com")
        assert not is_valid_site_ref("")


class TestSitemaps:
    def test_sitemap_issues(self):
        def handler(request):
            assert request.url.path.endswith("/sitemaps")
            return httpx.Response(200, json={"sitemap": [
                {"path": "https://www.example.com/sitemap.xml", "errors": 2,
                 "contents": [{"submitted": "100", "indexed": "50"}]},
                {"path": "https://www.example.com/news.xml",
                 "contents": [{"submitted": "10", "indexed": "0"}]},
                {"path": "https://www.example.com/ok.xml",
                 "contents": [{"submitted": "10", "indexed": "10"}]},
            ]})

        issues = run(_fetch(_client(handler), "fetch_sitemap_issues", SITE))

        assert [(i.source.rsplit("/", 1)[-1], i.severity) for i in issues] == [
            ("sitemap.xml", "error"),
            ("sitemap.xml", "warning"),
            ("news.xml", "error"),
        ]

    def test_sitemap_failure_is_not_fatal(self):
        issues = run(_fetch(_client(lambda request: httpx.Response(403)), "fetch_sitemap_issues", SITE))
        assert issues == []
