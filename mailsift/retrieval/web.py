"""Web retrieval collaborator: page fetching and web search.

Retrievers depend on the :class:`WebClient` protocol only; :class:`HttpWebClient`
is the production implementation built on the scraper package and the search
provider chain.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from mailsift.config import Settings
from mailsift.retrieval.search_providers import SearchProviderChain, SearchResult, build_default_chain
from mailsift.scraper import extract_content, fetch_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchedPage:
    """Readable text of one fetched page."""

    requested_url: str
    final_url: str
    title: str
    text: str
    status_code: int = 200


class WebClient(Protocol):
    def fetch(self, url: str, settle_seconds: float) -> FetchedPage:
        """Fetch *url*; raise ``httpx.HTTPError`` on failure."""
        ...

    def search(
        self,
        query: str,
        exclude_domains: Sequence[str] = (),
        max_results: int = 5,
    ) -> list[SearchResult]:
        ...


class HttpWebClient:
    """:class:`WebClient` over httpx/trafilatura and the search provider chain."""

    def __init__(self, settings: Settings, search_chain: Optional[SearchProviderChain] = None) -> None:
        self._settings = settings
        self._search_chain = search_chain or build_default_chain(settings)

    def fetch(self, url: str, settle_seconds: float) -> FetchedPage:
        raw = fetch_url(
            url,
            timeout=self._settings.request_timeout,
            settle_seconds=settle_seconds,
            use_browser=self._settings.use_browser_fallback,
        )
        page = extract_content(raw)
        if raw.resolved_url != url:
            logger.debug("[FETCH] %s resolved to %s", url, raw.resolved_url)
        return FetchedPage(
            requested_url=url,
            final_url=page.url,
            title=page.title,
            text=page.text,
            status_code=raw.status_code,
        )

    def search(
        self,
        query: str,
        exclude_domains: Sequence[str] = (),
        max_results: int = 5,
    ) -> list[SearchResult]:
        return self._search_chain.search(query, max_results=max_results, exclude_domains=exclude_domains)
