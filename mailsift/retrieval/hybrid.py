"""Hybrid retrieval: direct fetch and search discovery side by side."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

from mailsift.errors import RetrievalError
from mailsift.models import RetrievedContent
from mailsift.retrieval.base import ContentRetriever, RetrievalContext
from mailsift.retrieval.direct import DirectFetchRetriever
from mailsift.retrieval.discovery import SearchDiscoveryRetriever

logger = logging.getLogger(__name__)


def merge_contents(primary: RetrievedContent, supplementary: RetrievedContent) -> str:
    """Direct-fetch text first, search-discovery text as an appended section."""
    return (
        f"# Content from {primary.canonical_url}\n\n{primary.text}"
        f"\n\n---\n\n# Additional Information from Web Search\n\n{supplementary.text}"
    )


class HybridRetriever(ContentRetriever):
    strategy = "hybrid"

    def __init__(self, direct: DirectFetchRetriever, discovery: SearchDiscoveryRetriever) -> None:
        self._direct = direct
        self._discovery = discovery

    def retrieve(self, url: str, context: RetrievalContext) -> RetrievedContent:
        with ThreadPoolExecutor(max_workers=2) as pool:
            direct_future = pool.submit(self._direct.retrieve, url, context)
            discovery_future = pool.submit(self._discovery.retrieve, url, context)
            direct = direct_future.result()
            discovery = discovery_future.result()

        if direct.success and discovery.success:
            return RetrievedContent(
                requested_url=url,
                canonical_url=direct.canonical_url,
                text=merge_contents(direct, discovery),
                format="markdown",
                strategy=self.strategy,
                success=True,
                title=direct.title,
                metadata={
                    **direct.metadata,
                    "original_url": url,
                    "supplementary_url": discovery.canonical_url,
                    "search_query": discovery.metadata.get("search_query"),
                },
            )

        for content in (direct, discovery):
            if content.success:
                logger.info("[HYBRID] %s: only %s succeeded", url, content.strategy)
                return replace(
                    content,
                    strategy=self.strategy,
                    metadata={**content.metadata, "resolved_by": content.strategy},
                )

        error = RetrievalError(
            f"direct fetch: {direct.error}; search discovery: {discovery.error}",
            url=url,
            attempts=(direct.error.attempts if direct.error else 0)
            + (discovery.error.attempts if discovery.error else 0),
            transient=bool(direct.error and direct.error.transient),
        )
        logger.warning("[HYBRID] %s: both strategies failed", url)
        return RetrievedContent.failure(url, self.strategy, error)
