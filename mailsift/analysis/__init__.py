"""Analysis stages - chunking, link prioritization, classification and aggregation."""

from mailsift.analysis.aggregator import aggregate
from mailsift.analysis.chunker import chunk_source, chunk_text
from mailsift.analysis.classifier import classify_chunk, classify_chunks
from mailsift.analysis.llm import LLMClassifier, SemanticClassifier
from mailsift.analysis.prioritizer import prioritize_links

__all__ = [
    "aggregate",
    "chunk_source",
    "chunk_text",
    "classify_chunk",
    "classify_chunks",
    "LLMClassifier",
    "SemanticClassifier",
    "prioritize_links",
]
