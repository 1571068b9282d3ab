"""Unit tests for mailsift.retrieval.search_providers.

All network calls are mocked via ``unittest.mock``.  No real HTTP connections
are made; the tests validate provider-level parsing, domain exclusion, retry
logic, and chain-level failover behaviour.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import httpx
import pytest
from duckduckgo_search.exceptions import RatelimitException

from mailsift.config import Settings
from mailsift.retrieval.search_providers import (
    BraveSearchProvider,
    DuckDuckGoProvider,
    SearchProviderChain,
    SearchResult,
    SearXNGProvider,
    TavilySearchProvider,
    build_default_chain,
    domain_of,
    is_excluded,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        workspace_dir=tmp_path,
        tavily_api_key="",
        brave_api_key="",
        searxng_base_url="https://searx.example",
        search_provider_timeout=10.0,
        searxng_instance_timeout=1.0,
        search_retry_max=2,
        search_retry_base_delay=0.0,
    )


def _mock_httpx_response(json_data: dict, status_code: int = 200) -> MagicMock:
    """Build a mock httpx.Response-like object."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = json_data
    resp.raise_for_status = MagicMock()  # no-op by default
    return resp


def _mock_client(method: str = "get", **kwargs) -> MagicMock:
    ctx = MagicMock()
    ctx.__enter__ = MagicMock(return_value=ctx)
    ctx.__exit__ = MagicMock(return_value=False)
    for key, value in kwargs.items():
        setattr(getattr(ctx, method), key, value)
    return ctx


# ===========================================================================
# Domain helpers
# ===========================================================================

class TestDomainHelpers:
    def test_domain_strips_www(self):
        assert domain_of("https://www.Example.com/path") == "example.com"

    def test_excludes_subdomains(self):
        assert is_excluded("https://jobs.example.com/1", ["example.com"]) is True

    def test_does_not_exclude_lookalike(self):
        assert is_excluded("https://notexample.com/1", ["example.com"]) is False

    def test_unparsable_url_is_excluded(self):
        assert is_excluded("not a url", []) is True


# ===========================================================================
# TavilySearchProvider
# ===========================================================================

class TestTavilySearchProvider:
    def test_skipped_without_api_key(self, settings):
        with patch("mailsift.retrieval.search_providers.httpx.Client") as mock_client_cls:
            result = TavilySearchProvider(settings).search("test")

        assert result == []
        mock_client_cls.assert_not_called()

    def test_parses_scored_results(self, settings):
        settings.tavily_api_key = "tvly-key"
        json_data = {
            "results": [
                {"url": "https://a.com/job/1", "title": "A", "content": "snippet a", "score": 0.91},
                {"url": "https://b.com/job/2", "title": "B", "content": "snippet b", "score": 0.42},
            ]
        }
        with patch("mailsift.retrieval.search_providers.httpx.Client") as mock_client_cls:
            ctx = _mock_client("post", return_value=_mock_httpx_response(json_data))
            mock_client_cls.return_value = ctx
            result = TavilySearchProvider(settings).search(
                "backend developer", max_results=5, exclude_domains=["linkedin.com"]
            )

        assert result == [
            SearchResult(url="https://a.com/job/1", title="A", snippet="snippet a", score=0.91),
            SearchResult(url="https://b.com/job/2", title="B", snippet="snippet b", score=0.42),
        ]
        payload = ctx.post.call_args.kwargs["json"]
        assert payload["exclude_domains"] == ["linkedin.com"]
        assert ctx.post.call_args.kwargs["headers"]["Authorization"] == "Bearer tvly-key"

    def test_returns_empty_on_network_error(self, settings):
        settings.tavily_api_key = "tvly-key"
        with patch("mailsift.retrieval.search_providers.httpx.Client") as mock_client_cls:
            mock_client_cls.return_value = _mock_client(
                "post", side_effect=httpx.ConnectError("connection refused")
            )
            result = TavilySearchProvider(settings).search("query")

        assert result == []


# ===========================================================================
# SearXNGProvider
# ===========================================================================

class TestSearXNGProvider:
    def test_parses_json_results(self, settings):
        json_data = {
            "results": [
                {"url": "https://example.com/a", "title": "A", "content": "aa", "score": 2.5},
                {"url": "https://example.com/b"},
                {"href": "https://example.com/c"},   # alternate key
            ]
        }
        with patch("mailsift.retrieval.search_providers.httpx.Client") as mock_client_cls:
            mock_client_cls.return_value = _mock_client(return_value=_mock_httpx_response(json_data))
            result = SearXNGProvider(settings).search("test query", max_results=5)

        urls = [r.url for r in result]
        assert urls == ["https://example.com/a", "https://example.com/b", "https://example.com/c"]
        assert result[0].score == 2.5
        assert result[0].snippet == "aa"

    def test_respects_max_results(self, settings):
        json_data = {"results": [{"url": f"https://example.com/{i}"} for i in range(10)]}
        with patch("mailsift.retrieval.search_providers.httpx.Client") as mock_client_cls:
            mock_client_cls.return_value = _mock_client(return_value=_mock_httpx_response(json_data))
            result = SearXNGProvider(settings).search("test query", max_results=3)

        assert len(result) == 3

    def test_filters_excluded_domains(self, settings):
        json_data = {
            "results": [
                {"url": "https://www.linkedin.com/jobs/view/1"},
                {"url": "https://careers.acme.com/1"},
            ]
        }
        with patch("mailsift.retrieval.search_providers.httpx.Client") as mock_client_cls:
            mock_client_cls.return_value = _mock_client(return_value=_mock_httpx_response(json_data))
            result = SearXNGProvider(settings).search("q", exclude_domains=["linkedin.com"])

        assert [r.url for r in result] == ["https://careers.acme.com/1"]

    def test_returns_empty_on_http_error(self, settings):
        with patch("mailsift.retrieval.search_providers.httpx.Client") as mock_client_cls:
            mock_client_cls.return_value = _mock_client(
                side_effect=httpx.ConnectError("connection refused")
            )
            result = SearXNGProvider(settings).search("test query")

        assert result == []

    def test_returns_empty_on_json_parse_error(self, settings):
        mock_resp = MagicMock()
        mock_resp.raise_for_status = MagicMock()
        mock_resp.json.side_effect = ValueError("invalid JSON")

        with patch("mailsift.retrieval.search_providers.httpx.Client") as mock_client_cls:
            mock_client_cls.return_value = _mock_client(return_value=mock_resp)
            result = SearXNGProvider(settings).search("test query")

        assert result == []

    def test_deduplicates_urls(self, settings):
        json_data = {
            "results": [
                {"url": "https://dup.com/x"},
                {"url": "https://dup.com/x"},
                {"url": "https://unique.com/y"},
            ]
        }
        with patch("mailsift.retrieval.search_providers.httpx.Client") as mock_client_cls:
            mock_client_cls.return_value = _mock_client(return_value=_mock_httpx_response(json_data))
            result = SearXNGProvider(settings).search("test", max_results=10)

        assert [r.url for r in result].count("https://dup.com/x") == 1


# ===========================================================================
# DuckDuckGoProvider
# ===========================================================================

class TestDuckDuckGoProvider:
    def _ddgs(self, **kwargs) -> MagicMock:
        ctx = MagicMock()
        ctx.__enter__ = MagicMock(return_value=ctx)
        ctx.__exit__ = MagicMock(return_value=False)
        ctx.text = MagicMock(**kwargs)
        return ctx

    def test_returns_results_on_success(self, settings):
        fake_results = [
            {"href": "https://a.com/1", "title": "A", "body": "body a"},
            {"href": "https://b.com/2", "title": "B", "body": "body b"},
        ]
        with patch("mailsift.retrieval.search_providers.DDGS") as mock_ddgs_cls:
            mock_ddgs_cls.return_value = self._ddgs(return_value=fake_results)
            result = DuckDuckGoProvider(settings).search("query", max_results=5)

        assert [r.url for r in result] == ["https://a.com/1", "https://b.com/2"]
        assert result[0].score > result[1].score
        assert result[1].snippet == "body b"

    def test_retries_on_ratelimit_then_succeeds(self, settings):
        fake_results = [{"href": "https://ok.com/1"}]
        sleep = MagicMock()

        with patch("mailsift.retrieval.search_providers.DDGS") as mock_ddgs_cls:
            mock_ddgs_cls.return_value = self._ddgs(
                side_effect=[RatelimitException("rate limited"), fake_results]
            )
            result = DuckDuckGoProvider(settings, sleep=sleep).search("query")

        assert [r.url for r in result] == ["https://ok.com/1"]
        sleep.assert_called_once_with(0.0)

    def test_returns_empty_after_exhausting_retries(self, settings):
        sleep = MagicMock()
        with patch("mailsift.retrieval.search_providers.DDGS") as mock_ddgs_cls:
            mock_ddgs_cls.return_value = self._ddgs(
                side_effect=RatelimitException("always rate limited")
            )
            result = DuckDuckGoProvider(settings, sleep=sleep).search("query")

        assert result == []
        assert sleep.call_count == settings.search_retry_max

    def test_backoff_doubles(self, settings):
        settings.search_retry_base_delay = 2.0
        sleep = MagicMock()
        with patch("mailsift.retrieval.search_providers.DDGS") as mock_ddgs_cls:
            mock_ddgs_cls.return_value = self._ddgs(side_effect=RatelimitException("limited"))
            DuckDuckGoProvider(settings, sleep=sleep).search("query")

        assert [c.args[0] for c in sleep.call_args_list] == [2.0, 4.0]

    def test_returns_empty_on_generic_error(self, settings):
        with patch("mailsift.retrieval.search_providers.DDGS") as mock_ddgs_cls:
            mock_ddgs_cls.return_value = self._ddgs(
                side_effect=RuntimeError("https://html.duckduckgo.com/html 202 Ratelimit")
            )
            result = DuckDuckGoProvider(settings, sleep=MagicMock()).search("query")

        assert result == []


# ===========================================================================
# BraveSearchProvider
# ===========================================================================

class TestBraveSearchProvider:
    def test_skipped_without_api_key(self, settings):
        assert BraveSearchProvider(settings).search("test") == []

    def test_parses_response_correctly(self, settings):
        settings.brave_api_key = "test-key-abc"
        json_data = {
            "web": {
                "results": [
                    {"url": "https://brave-result.com/1", "title": "One", "description": "d1"},
                    {"url": "https://brave-result.com/2", "title": "Two", "description": "d2"},
                ]
            }
        }
        with patch("mailsift.retrieval.search_providers.httpx.Client") as mock_client_cls:
            ctx = _mock_client(return_value=_mock_httpx_response(json_data))
            mock_client_cls.return_value = ctx
            result = BraveSearchProvider(settings).search("test query", max_results=5)

        assert [r.url for r in result] == ["https://brave-result.com/1", "https://brave-result.com/2"]
        assert result[0].title == "One"
        assert ctx.get.call_args.kwargs["headers"]["X-Subscription-Token"] == "test-key-abc"

    def test_returns_empty_on_network_error(self, settings):
        settings.brave_api_key = "test-key"
        with patch("mailsift.retrieval.search_providers.httpx.Client") as mock_client_cls:
            mock_client_cls.return_value = _mock_client(
                side_effect=httpx.TimeoutException("timed out")
            )
            result = BraveSearchProvider(settings).search("test query")

        assert result == []


# ===========================================================================
# SearchProviderChain
# ===========================================================================

def _result(url: str) -> SearchResult:
    return SearchResult(url=url, title="", snippet="", score=1.0)


class TestSearchProviderChain:
    def _make_provider(self, name: str, returns: list[SearchResult]) -> MagicMock:
        p = MagicMock()
        p.name = name
        p.search.return_value = returns
        return p

    def test_returns_first_successful_result(self):
        p1 = self._make_provider("P1", [_result("https://p1.com/")])
        p2 = self._make_provider("P2", [_result("https://p2.com/")])
        chain = SearchProviderChain([p1, p2])

        result = chain.search("query")

        assert [r.url for r in result] == ["https://p1.com/"]
        p2.search.assert_not_called()

    def test_falls_through_to_second_on_empty_first(self):
        p1 = self._make_provider("P1", [])
        p2 = self._make_provider("P2", [_result("https://p2.com/")])
        chain = SearchProviderChain([p1, p2])

        result = chain.search("query")

        assert [r.url for r in result] == ["https://p2.com/"]
        p1.search.assert_called_once()
        p2.search.assert_called_once()

    def test_passes_arguments_to_provider(self):
        p1 = self._make_provider("P1", [_result("https://result.com/")])
        chain = SearchProviderChain([p1])

        chain.search("query", max_results=7, exclude_domains=["x.com"])

        p1.search.assert_called_once_with("query", max_results=7, exclude_domains=["x.com"])

    def test_empty_chain_returns_empty(self):
        assert SearchProviderChain([]).search("query") == []


# ===========================================================================
# build_default_chain
# ===========================================================================

class TestBuildDefaultChain:
    def test_includes_searxng_and_ddg(self, settings):
        chain = build_default_chain(settings)

        names = [p.name for p in chain.providers]
        assert names == ["SearXNG", "DuckDuckGo"]

    def test_keyed_providers_come_first(self, settings):
        settings.tavily_api_key = "tvly"
        settings.brave_api_key = "brave"
        chain = build_default_chain(settings)

        names = [p.name for p in chain.providers]
        assert names == ["Tavily", "Brave", "SearXNG", "DuckDuckGo"]
