"""State, events and per-run context for the analysis pipeline."""

from __future__ import annotations

import enum
import operator
import time
from dataclasses import dataclass, field
from typing import Annotated, Any, Callable, Optional, TypedDict

from mailsift.analysis.llm import SemanticClassifier
from mailsift.config import AnalysisConfig, Settings
from mailsift.db.results import ResultStore
from mailsift.documents import DocumentSource
from mailsift.models import (
    AggregatedResult,
    Chunk,
    ChunkClassification,
    Document,
    LinkCandidate,
    RetrievedContent,
)
from mailsift.retrieval.web import WebClient


class RunState(str, enum.Enum):
    PENDING = "pending"
    FETCHING_DOCUMENT = "fetching_document"
    EXTRACTING_LINKS = "extracting_links"
    PRIORITIZING_LINKS = "prioritizing_links"
    RETRIEVING_CONTENT = "retrieving_content"
    CHUNKING = "chunking"
    CLASSIFYING_CHUNKS = "classifying_chunks"
    AGGREGATING = "aggregating"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.FAILED)


@dataclass(frozen=True)
class ProgressEvent:
    """Advisory progress notification; never authoritative."""

    run_id: str
    state: RunState
    message: str
    detail: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "state": self.state.value,
            "message": self.message,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class Diagnostic:
    """An error that was absorbed instead of failing the run."""

    stage: str
    kind: str
    message: str
    subject: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "kind": self.kind,
            "message": self.message,
            "subject": self.subject,
        }


@dataclass(frozen=True)
class PipelineContext:
    """Collaborators and settings shared by every node of one run."""

    settings: Settings
    documents: DocumentSource
    classifier: SemanticClassifier
    web: WebClient
    store: Optional[ResultStore] = None
    on_progress: Optional[Callable[[ProgressEvent], None]] = None
    sleep: Callable[[float], None] = time.sleep


class AnalysisState(TypedDict, total=False):
    """The LangGraph state bag.

    ``events`` and ``diagnostics`` accumulate across nodes; every other key
    is overwritten by the node that produces it.
    """

    run_id: str
    document_id: str
    config: AnalysisConfig
    run_state: RunState
    failure: str
    failed_at: RunState
    document: Document
    candidates: list[LinkCandidate]
    prioritized: list[LinkCandidate]
    retrieved: list[RetrievedContent]
    chunks: list[Chunk]
    classifications: list[ChunkClassification]
    result: AggregatedResult
    events: Annotated[list[ProgressEvent], operator.add]
    diagnostics: Annotated[list[Diagnostic], operator.add]


@dataclass
class RunOutcome:
    """Everything a caller gets back from :func:`~mailsift.pipeline.run_analysis`."""

    run_id: str
    document_id: str
    state: RunState
    result: Optional[AggregatedResult] = None
    failure_reason: Optional[str] = None
    failed_at: Optional[RunState] = None
    diagnostics: list[Diagnostic] = field(default_factory=list)
    events: list[ProgressEvent] = field(default_factory=list)
    candidates: list[LinkCandidate] = field(default_factory=list)
    prioritized: list[LinkCandidate] = field(default_factory=list)
    retrieved: list[RetrievedContent] = field(default_factory=list)
    classifications: list[ChunkClassification] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.COMPLETED

    def to_dict(self, verbose: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "run_id": self.run_id,
            "document_id": self.document_id,
            "state": self.state.value,
            "result": self.result.to_dict() if self.result else None,
            "failure_reason": self.failure_reason,
            "failed_at": self.failed_at.value if self.failed_at else None,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "links": {
                "candidates": len(self.candidates),
                "prioritized": [c.to_dict() for c in self.prioritized],
            },
            "retrieved": [r.to_dict() for r in self.retrieved],
        }
        if verbose:
            data["links"]["all"] = [c.to_dict() for c in self.candidates]
            data["events"] = [e.to_dict() for e in self.events]
            data["classifications"] = [c.to_dict() for c in self.classifications]
        return data
