"""Search discovery: find an alternative copy of a link's content via web search.

Useful when the linked page is behind a login wall or a tracking redirect that
never resolves.  The anchor text (or the email subject) becomes a search query,
the original domain is excluded, and the best-ranked results are fetched
directly.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Optional
from urllib.parse import urlsplit

from mailsift.errors import RetrievalError
from mailsift.models import RetrievedContent
from mailsift.retrieval.base import ContentRetriever, RetrievalContext
from mailsift.retrieval.direct import DirectFetchRetriever
from mailsift.retrieval.search_providers import SearchResult, domain_of
from mailsift.retrieval.web import WebClient

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 250
TOP_RESULTS = 3
MIN_CONTENT_CHARS = 1_000
MAX_CONTENT_CHARS = 150_000

# Listing-page noise that turns up in job-board anchor text.
_ANCHOR_NOISE = [
    re.compile(r"\d+\s+(?:tidlige medarbejdere|skole alumner|early employees|school alumni)", re.IGNORECASE),
    re.compile(r"\(på arbejdesstedet\)|\(hybridarbejde\)|\(remote\)", re.IGNORECASE),
    re.compile(r"vær den første.*til at ansøge", re.IGNORECASE),
    re.compile(r"easy apply|view|see more|read more|apply now", re.IGNORECASE),
]
_REPLY_PREFIX = re.compile(r"^(?:re|fwd|fw):\s*", re.IGNORECASE)


def build_query(context: RetrievalContext) -> str:
    """Derive a search query from the anchor text, else the subject."""
    query = ""
    anchor = context.anchor_text or ""
    if len(anchor) > 5:
        cleaned = re.sub(r"\s+", " ", anchor)
        for pattern in _ANCHOR_NOISE:
            cleaned = pattern.sub("", cleaned)
        cleaned = re.sub(r"\s+", " ", cleaned.replace("·", " ")).strip()
        if len(cleaned) > 5:
            query = cleaned

    if not query and context.subject:
        query = re.sub(r"\s+", " ", _REPLY_PREFIX.sub("", context.subject.strip())).strip()

    if not query:
        query = "content"

    return query[:MAX_QUERY_LENGTH].strip()


def relevance_score(result: SearchResult, anchor_text: str) -> float:
    """Search score adjusted by URL shape and anchor-word overlap."""
    score = result.score or 0.0
    try:
        parts = urlsplit(result.url)
    except ValueError:
        return score

    depth = len([p for p in parts.path.split("/") if p])
    if depth == 0:
        score -= 2
    path_and_query = parts.path + ("?" + parts.query if parts.query else "")
    if "/search" in parts.path or "/jobs?" in path_and_query:
        score -= 3
    if parts.query and len("?" + parts.query) > 50:
        score -= 2

    if anchor_text:
        url_lower = result.url.lower()
        words = [w for w in anchor_text.lower().split() if len(w) > 3]
        score += 0.5 * sum(1 for w in words if w in url_lower)
    return score


def rank_results(results: list[SearchResult], anchor_text: str, top: int = TOP_RESULTS) -> list[SearchResult]:
    # sorted() is stable, so ties keep the search engine's order.
    scored = sorted(results, key=lambda r: relevance_score(r, anchor_text), reverse=True)
    return scored[:top]


def _snippet_digest(results: list[SearchResult]) -> str:
    return "\n\n".join(
        f"## {r.title}\n\n**Source**: {r.url}\n\n{r.snippet}\n\n---" for r in results
    )


class SearchDiscoveryRetriever(ContentRetriever):
    """Search for the link's subject matter elsewhere and fetch the best hit."""

    strategy = "search_discovery"

    def __init__(
        self,
        web: WebClient,
        fetcher: DirectFetchRetriever,
        *,
        max_results: int = 5,
    ) -> None:
        self._web = web
        self._fetcher = fetcher
        self._max_results = max_results

    def _fail(self, url: str, message: str, query: str) -> RetrievedContent:
        logger.warning("[DISCOVERY] %s: %s", url, message)
        return RetrievedContent.failure(
            url,
            self.strategy,
            RetrievalError(message, url=url, attempts=1),
            search_query=query,
        )

    def _first_substantive(self, ranked: list[SearchResult], context: RetrievalContext) -> Optional[RetrievedContent]:
        with ThreadPoolExecutor(max_workers=len(ranked)) as pool:
            futures = [pool.submit(self._fetcher.retrieve, r.url, context) for r in ranked]
            fetched = []
            for future in futures:
                try:
                    fetched.append(future.result())
                except Exception as exc:
                    logger.info("[DISCOVERY] scrape raised %s", exc)
                    fetched.append(None)

        for content in fetched:
            if content is None or not content.success:
                continue
            length = len(content.text)
            if MIN_CONTENT_CHARS <= length <= MAX_CONTENT_CHARS:
                return content
            logger.info("[DISCOVERY] skipping %s: %d chars", content.canonical_url, length)
        return None

    def retrieve(self, url: str, context: RetrievalContext) -> RetrievedContent:
        query = build_query(context)
        original_domain = domain_of(url)
        exclude = [original_domain] if original_domain else []
        logger.info("[DISCOVERY] query=%r excluding=%s", query, exclude or "none")

        try:
            results = self._web.search(query, exclude_domains=exclude, max_results=self._max_results)
        except Exception as exc:
            return self._fail(url, f"search failed: {exc}", query)
        if not results:
            return self._fail(url, "search returned no results", query)

        ranked = rank_results(results, context.anchor_text)
        best = self._first_substantive(ranked, context)

        if best is not None:
            logger.info("[DISCOVERY] %s -> %s", url, best.canonical_url)
            return RetrievedContent(
                requested_url=url,
                canonical_url=best.canonical_url,
                text=best.text,
                format=best.format,
                strategy=self.strategy,
                success=True,
                title=best.title,
                metadata={
                    **best.metadata,
                    "original_url": url,
                    "discovery_method": "web_search_then_scrape",
                    "search_query": query,
                },
            )

        logger.info("[DISCOVERY] %s: no page scraped cleanly, using search snippets", url)
        return RetrievedContent(
            requested_url=url,
            canonical_url=ranked[0].url,
            text=_snippet_digest(ranked),
            format="markdown",
            strategy=self.strategy,
            success=True,
            title=ranked[0].title,
            metadata={
                "original_url": url,
                "discovery_method": "web_search_snippets",
                "search_query": query,
                "alternative_sources": [r.url for r in ranked],
            },
        )
