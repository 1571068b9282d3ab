"""Data models shared by every stage of the analysis pipeline.

These are plain dataclasses.  Inputs (documents, chunks, link candidates) are
frozen; the pipeline builds new values instead of mutating old ones.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar, Union

from mailsift.errors import RetrievalError

DOCUMENT_SOURCE_KEY = "Document"

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Tagged results for collaborator boundaries
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    ok: bool = True


@dataclass(frozen=True)
class Err:
    reason: str
    ok: bool = False


Result = Union[Ok[T], Err]


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Document:
    """An email (or any markup document) handed to the pipeline."""

    id: str
    markup: str
    plaintext: str
    subject: str = ""
    sender: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "subject": self.subject,
            "sender": self.sender,
            "markup_length": len(self.markup),
            "plaintext_length": len(self.plaintext),
        }


@dataclass(frozen=True)
class LinkCandidate:
    """A link found in a document, normalized and de-duplicated."""

    url: str
    anchor_text: str
    is_cta: bool = False
    rank_score: Optional[float] = None
    raw_href: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "anchor_text": self.anchor_text,
            "is_cta": self.is_cta,
            "rank_score": self.rank_score,
            "raw_href": self.raw_href,
        }


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------

@dataclass
class RetrievedContent:
    """The outcome of resolving one URL through a retrieval strategy."""

    requested_url: str
    canonical_url: str
    text: str
    format: str
    strategy: str
    success: bool
    error: Optional[RetrievalError] = None
    title: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(
        cls,
        url: str,
        strategy: str,
        error: RetrievalError,
        **metadata: Any,
    ) -> "RetrievedContent":
        return cls(
            requested_url=url,
            canonical_url=url,
            text="",
            format="text",
            strategy=strategy,
            success=False,
            error=error,
            metadata=dict(metadata),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "requested_url": self.requested_url,
            "canonical_url": self.canonical_url,
            "title": self.title,
            "format": self.format,
            "strategy": self.strategy,
            "success": self.success,
            "error": str(self.error) if self.error else None,
            "text_length": len(self.text),
            "metadata": self.metadata,
        }


# ---------------------------------------------------------------------------
# Chunking / classification
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SourceRef:
    """Identifies where a chunk came from: the document or one retrieved page."""

    kind: str  # "document" | "retrieved"
    key: str

    @classmethod
    def document(cls) -> "SourceRef":
        return cls(kind="document", key=DOCUMENT_SOURCE_KEY)

    @classmethod
    def retrieved(cls, content: RetrievedContent) -> "SourceRef":
        return cls(kind="retrieved", key=content.canonical_url)


@dataclass(frozen=True)
class Chunk:
    source: SourceRef
    index: int
    text: str

    @property
    def char_count(self) -> int:
        return len(self.text)


@dataclass(frozen=True)
class ChunkClassification:
    chunk: Chunk
    matched: bool
    extracted_fields: dict[str, Any]
    reasoning: str
    confidence: float
    error: Optional[str] = None

    @property
    def source(self) -> Optional[SourceRef]:
        return self.chunk.source if self.chunk is not None else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.chunk.source.key,
            "chunk_index": self.chunk.index,
            "matched": self.matched,
            "extracted_fields": self.extracted_fields,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "error": self.error,
        }


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

@dataclass
class SourceBreakdown:
    source: str
    kind: str
    fields: dict[str, Any]
    reasoning: list[str]
    confidence: float
    matched_chunks: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "kind": self.kind,
            "fields": self.fields,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "matched_chunks": self.matched_chunks,
        }


@dataclass
class AggregatedResult:
    matched_overall: bool
    merged_fields: dict[str, Any]
    by_source: list[SourceBreakdown]
    overall_confidence: float
    total_matches: int = 0

    @classmethod
    def empty(cls) -> "AggregatedResult":
        return cls(
            matched_overall=False,
            merged_fields={},
            by_source=[],
            overall_confidence=0.0,
            total_matches=0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "matched_overall": self.matched_overall,
            "merged_fields": self.merged_fields,
            "by_source": [b.to_dict() for b in self.by_source],
            "overall_confidence": self.overall_confidence,
            "total_matches": self.total_matches,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AggregatedResult":
        return cls(
            matched_overall=bool(data.get("matched_overall", False)),
            merged_fields=dict(data.get("merged_fields") or {}),
            by_source=[
                SourceBreakdown(
                    source=b["source"],
                    kind=b.get("kind", "retrieved"),
                    fields=dict(b.get("fields") or {}),
                    reasoning=list(b.get("reasoning") or []),
                    confidence=float(b.get("confidence", 0.0)),
                    matched_chunks=int(b.get("matched_chunks", 0)),
                )
                for b in data.get("by_source") or []
            ],
            overall_confidence=float(data.get("overall_confidence", 0.0)),
            total_matches=int(data.get("total_matches", 0)),
        )


# ---------------------------------------------------------------------------
# Classifier input
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Criteria:
    """What the semantic classifier is asked to look for."""

    match_criteria: str
    extraction_fields: str
    boost_pattern: Optional[str] = None
    guidance: Optional[str] = None
    user_intent: Optional[str] = None
    extraction_examples: Optional[str] = None
    analysis_feedback: Optional[str] = None
