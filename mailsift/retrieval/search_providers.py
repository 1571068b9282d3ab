"""Multi-provider web search abstraction with automatic failover.

Provider priority (highest to lowest):
  1. Tavily: relevance-scored results with content snippets; requires TAVILY_API_KEY.
  2. Brave Search: fast REST API, deterministic; requires BRAVE_API_KEY.
  3. SearXNG: free metasearch, rotates multiple public instances.
  4. DuckDuckGo: free, scraping-based; retried with exponential backoff.

All providers share a common interface:
``search(query, max_results, exclude_domains) -> list[SearchResult]``.
The ``SearchProviderChain`` tries each provider in order and returns the first
non-empty result set.  If every provider fails the chain returns ``[]``.

Results on an excluded domain are dropped by every provider, including the
ones whose API has no native exclusion parameter.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence
from urllib.parse import urlsplit

import httpx
from duckduckgo_search import DDGS
from duckduckgo_search.exceptions import DuckDuckGoSearchException, RatelimitException

from mailsift.config import Settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Reliable public SearXNG instances (tried in order on failure)
# ---------------------------------------------------------------------------
_SEARXNG_FALLBACK_INSTANCES = [
    "https://search.bus-hit.me",
    "https://searx.be",
    "https://paulgo.io",
    "https://searx.tiekoetter.com",
]

_BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class SearchResult:
    url: str
    title: str
    snippet: str
    score: float


def _normalise_query(query: str) -> str:
    """Strip surrounding double-quotes; some engines refuse quoted queries."""
    q = query.strip()
    if q.startswith('"') and q.endswith('"') and len(q) > 2:
        q = q[1:-1].strip()
    return q


def domain_of(url: str) -> str:
    """Return the host of *url* without a leading ``www.`` (empty if unparsable)."""
    try:
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def is_excluded(url: str, exclude_domains: Iterable[str]) -> bool:
    host = domain_of(url)
    if not host:
        return True
    for domain in exclude_domains:
        domain = domain.lower()
        if host == domain or host.endswith("." + domain):
            return True
    return False


def _positional_score(index: int) -> float:
    """Score for engines that only return a ranking, not a relevance value."""
    return round(1.0 / (index + 1), 3)


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class SearchProvider(ABC):
    """Abstract base class for a single search provider."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name."""

    @abstractmethod
    def search(
        self,
        query: str,
        max_results: int = 5,
        exclude_domains: Sequence[str] = (),
    ) -> list[SearchResult]:
        """Return ranked results.  Must return ``[]`` (not raise) on failure."""


# ---------------------------------------------------------------------------
# Tavily provider (preferred: relevance scores and page snippets)
# ---------------------------------------------------------------------------

class TavilySearchProvider(SearchProvider):
    """Tavily search API.  Skipped if ``settings.tavily_api_key`` is empty."""

    @property
    def name(self) -> str:
        return "Tavily"

    def search(
        self,
        query: str,
        max_results: int = 5,
        exclude_domains: Sequence[str] = (),
    ) -> list[SearchResult]:
        api_key = self._settings.tavily_api_key
        if not api_key:
            return []

        payload: dict = {
            "query": _normalise_query(query),
            "search_depth": "advanced",
            "max_results": max_results,
            "include_answer": False,
        }
        if exclude_domains:
            payload["exclude_domains"] = list(exclude_domains)

        try:
            with httpx.Client(timeout=self._settings.search_provider_timeout) as client:
                resp = client.post(
                    "https://api.tavily.com/search",
                    json=payload,
                    headers={"Authorization": f"Bearer {api_key}"},
                )
                resp.raise_for_status()
                data = resp.json()
        except Exception as exc:
            logger.warning("[Tavily] request failed: %s", exc)
            return []

        results = [
            SearchResult(
                url=item["url"],
                title=item.get("title", ""),
                snippet=item.get("content", ""),
                score=float(item.get("score") or 0.0),
            )
            for item in data.get("results", [])
            if item.get("url") and not is_excluded(item["url"], exclude_domains)
        ][:max_results]
        if results:
            logger.info("[Tavily] %d result(s).", len(results))
        return results


# ---------------------------------------------------------------------------
# Brave Search provider
# ---------------------------------------------------------------------------

class BraveSearchProvider(SearchProvider):
    """Brave Search REST API.  Skipped if ``settings.brave_api_key`` is empty."""

    @property
    def name(self) -> str:
        return "Brave"

    def search(
        self,
        query: str,
        max_results: int = 5,
        exclude_domains: Sequence[str] = (),
    ) -> list[SearchResult]:
        api_key = self._settings.brave_api_key
        if not api_key:
            return []

        try:
            with httpx.Client(timeout=self._settings.search_provider_timeout) as client:
                resp = client.get(
                    "https://api.search.brave.com/res/v1/web/search",
                    params={"q": _normalise_query(query), "count": min(max_results * 2, 20)},
                    headers={
                        "Accept": "application/json",
                        "Accept-Encoding": "gzip",
                        "X-Subscription-Token": api_key,
                    },
                )
                resp.raise_for_status()
                data = resp.json()
        except Exception as exc:
            logger.warning("[Brave] request failed: %s", exc)
            return []

        items = [
            item
            for item in data.get("web", {}).get("results", [])
            if item.get("url") and not is_excluded(item["url"], exclude_domains)
        ][:max_results]
        results = [
            SearchResult(
                url=item["url"],
                title=item.get("title", ""),
                snippet=item.get("description", ""),
                score=_positional_score(i),
            )
            for i, item in enumerate(items)
        ]
        if results:
            logger.info("[Brave] %d result(s).", len(results))
        return results


# ---------------------------------------------------------------------------
# SearXNG provider
# ---------------------------------------------------------------------------

class SearXNGProvider(SearchProvider):
    """Hit a SearXNG JSON endpoint.

    Tries the configured base URL first (`settings.searxng_base_url`), then
    rotates through ``_SEARXNG_FALLBACK_INSTANCES`` on failure.  Each instance
    is queried with the short ``searxng_instance_timeout`` so dead or
    rate-limited instances fail fast.
    """

    @property
    def name(self) -> str:
        return "SearXNG"

    def _query_instance(
        self,
        client: httpx.Client,
        base: str,
        query: str,
        max_results: int,
        exclude_domains: Sequence[str],
    ) -> list[SearchResult]:
        resp = client.get(
            f"{base}/search",
            params={
                "q": query,
                "format": "json",
                "engines": "google,bing,brave,duckduckgo",
            },
            headers={
                "Accept": "application/json, text/javascript, */*",
                "User-Agent": _BROWSER_UA,
            },
        )
        resp.raise_for_status()
        data = resp.json()
        results: list[SearchResult] = []
        seen: set[str] = set()
        for item in data.get("results", []):
            url = item.get("url") or item.get("href")
            if not url or url in seen or is_excluded(url, exclude_domains):
                continue
            seen.add(url)
            score = item.get("score")
            results.append(
                SearchResult(
                    url=url,
                    title=item.get("title", ""),
                    snippet=item.get("content", ""),
                    score=float(score) if isinstance(score, (int, float)) else _positional_score(len(results)),
                )
            )
            if len(results) >= max_results:
                break
        return results

    def search(
        self,
        query: str,
        max_results: int = 5,
        exclude_domains: Sequence[str] = (),
    ) -> list[SearchResult]:
        query = _normalise_query(query)
        primary = self._settings.searxng_base_url.rstrip("/")
        instances = [primary] + [
            u for u in _SEARXNG_FALLBACK_INSTANCES if u.rstrip("/") != primary
        ]

        with httpx.Client(
            timeout=self._settings.searxng_instance_timeout,
            follow_redirects=True,
        ) as client:
            for base in instances:
                try:
                    results = self._query_instance(client, base, query, max_results, exclude_domains)
                    if results:
                        logger.info("[SearXNG] %s -> %d result(s).", base, len(results))
                        return results
                    logger.info("[SearXNG] %s returned 0 results, trying next instance.", base)
                except Exception as exc:
                    logger.info("[SearXNG] %s failed: %.120r, trying next instance.", base, exc)

        logger.warning("[SearXNG] all instances exhausted.")
        return []


# ---------------------------------------------------------------------------
# DuckDuckGo provider (with exponential backoff)
# ---------------------------------------------------------------------------

class DuckDuckGoProvider(SearchProvider):
    """Wrapper around ``duckduckgo_search.DDGS`` with retry on rate-limit."""

    def __init__(self, settings: Settings, sleep=time.sleep) -> None:
        super().__init__(settings)
        self._sleep = sleep

    @property
    def name(self) -> str:
        return "DuckDuckGo"

    def _to_results(self, raw: Optional[list], max_results: int, exclude_domains: Sequence[str]) -> list[SearchResult]:
        items = [
            r for r in (raw or [])
            if r.get("href") and not is_excluded(r["href"], exclude_domains)
        ][:max_results]
        return [
            SearchResult(
                url=r["href"],
                title=r.get("title", ""),
                snippet=r.get("body", ""),
                score=_positional_score(i),
            )
            for i, r in enumerate(items)
        ]

    def search(
        self,
        query: str,
        max_results: int = 5,
        exclude_domains: Sequence[str] = (),
    ) -> list[SearchResult]:
        query = _normalise_query(query)
        base_delay = self._settings.search_retry_base_delay
        max_retries = self._settings.search_retry_max

        for attempt in range(max_retries + 1):
            try:
                with DDGS() as ddgs:
                    raw = ddgs.text(query, max_results=max_results * 2)
                results = self._to_results(raw, max_results, exclude_domains)
                if results:
                    logger.info("[DuckDuckGo] %d result(s).", len(results))
                return results
            except RatelimitException:
                if attempt < max_retries:
                    delay = base_delay * (2 ** attempt)
                    logger.info(
                        "[DuckDuckGo] rate-limited (attempt %d/%d); retrying in %.0fs",
                        attempt + 1, max_retries, delay,
                    )
                    self._sleep(delay)
                else:
                    logger.warning("[DuckDuckGo] exhausted %d retries, rate-limited.", max_retries)
                    return []
            except DuckDuckGoSearchException as exc:
                logger.warning("[DuckDuckGo] search error: %s", exc)
                return []
            except Exception as exc:
                logger.warning("[DuckDuckGo] error: %s", exc)
                return []

        return []


# ---------------------------------------------------------------------------
# Provider chain
# ---------------------------------------------------------------------------

class SearchProviderChain:
    """Try providers in order; return the first non-empty result list."""

    def __init__(self, providers: list[SearchProvider]) -> None:
        self._providers = providers

    @property
    def providers(self) -> list[SearchProvider]:
        return list(self._providers)

    def search(
        self,
        query: str,
        max_results: int = 5,
        exclude_domains: Sequence[str] = (),
    ) -> list[SearchResult]:
        for provider in self._providers:
            results = provider.search(query, max_results=max_results, exclude_domains=exclude_domains)
            if results:
                return results
        logger.warning("[search chain] all providers returned no results for %r.", query)
        return []


def build_default_chain(settings: Settings) -> SearchProviderChain:
    """Tavily (if key) → Brave (if key) → SearXNG → DuckDuckGo."""
    providers: list[SearchProvider] = []
    if settings.tavily_api_key:
        providers.append(TavilySearchProvider(settings))
    if settings.brave_api_key:
        providers.append(BraveSearchProvider(settings))
    providers.append(SearXNGProvider(settings))
    providers.append(DuckDuckGoProvider(settings))
    return SearchProviderChain(providers)
