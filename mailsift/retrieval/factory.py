"""Build a retriever for a :class:`~mailsift.config.RetrievalStrategy`."""

from __future__ import annotations

import time
from typing import Callable

from mailsift.config import RetrievalStrategy, Settings
from mailsift.retrieval.base import ContentRetriever
from mailsift.retrieval.direct import DirectFetchRetriever
from mailsift.retrieval.discovery import SearchDiscoveryRetriever
from mailsift.retrieval.hybrid import HybridRetriever
from mailsift.retrieval.web import WebClient


def create_retriever(
    strategy: RetrievalStrategy | str,
    web: WebClient,
    settings: Settings,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> ContentRetriever:
    """Return the retriever for *strategy*.

    Raises:
        ValueError: If *strategy* is not a known strategy name.
    """
    strategy = RetrievalStrategy(strategy)
    direct = DirectFetchRetriever(
        web,
        max_attempts=settings.fetch_max_attempts,
        base_delay=settings.fetch_backoff_base,
        settle_seconds=settings.fetch_settle_seconds,
        sleep=sleep,
    )
    if strategy is RetrievalStrategy.DIRECT_FETCH:
        return direct
    discovery = SearchDiscoveryRetriever(web, direct)
    if strategy is RetrievalStrategy.SEARCH_DISCOVERY:
        return discovery
    return HybridRetriever(direct, discovery)
