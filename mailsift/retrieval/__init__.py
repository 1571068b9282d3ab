"""Content retrieval strategies - direct fetch, search discovery and hybrid."""

from mailsift.retrieval.base import ContentRetriever, RetrievalContext
from mailsift.retrieval.direct import DirectFetchRetriever
from mailsift.retrieval.discovery import SearchDiscoveryRetriever
from mailsift.retrieval.factory import create_retriever
from mailsift.retrieval.hybrid import HybridRetriever
from mailsift.retrieval.search_providers import SearchProviderChain, SearchResult
from mailsift.retrieval.web import FetchedPage, HttpWebClient, WebClient

__all__ = [
    "ContentRetriever",
    "RetrievalContext",
    "DirectFetchRetriever",
    "SearchDiscoveryRetriever",
    "HybridRetriever",
    "create_retriever",
    "SearchProviderChain",
    "SearchResult",
    "FetchedPage",
    "HttpWebClient",
    "WebClient",
]
