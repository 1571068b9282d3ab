"""Analysis endpoints.

Routes
------
POST /analysis              Run the pipeline over a stored document
GET  /analysis              List stored results (newest first)
GET  /analysis/{run_id}     One stored result

A document that cannot be found answers 404.  Any other failed run answers
200 with ``state == "failed"`` and the failure reason in the body.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from mailsift.config import AnalysisConfig, RetrievalStrategy
from mailsift.pipeline import PipelineContext, RunState, run_analysis

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class AnalysisRequest(BaseModel):
    document_id: str
    match_criteria: str
    extraction_fields: str
    boost_pattern: Optional[str] = None
    follow_links: bool = True
    retrieval_strategy: RetrievalStrategy = RetrievalStrategy.DIRECT_FETCH
    link_guidance: Optional[str] = None
    max_links: Optional[int] = Field(default=None, ge=1)
    user_intent: Optional[str] = None
    extraction_examples: Optional[str] = None
    analysis_feedback: Optional[str] = None

    def to_config(self) -> AnalysisConfig:
        return AnalysisConfig(
            match_criteria=self.match_criteria,
            extraction_fields=self.extraction_fields,
            boost_pattern=self.boost_pattern,
            follow_links=self.follow_links,
            retrieval_strategy=self.retrieval_strategy,
            link_guidance=self.link_guidance,
            max_links=self.max_links,
            user_intent=self.user_intent,
            extraction_examples=self.extraction_examples,
            analysis_feedback=self.analysis_feedback,
        )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("")
def create_analysis(body: AnalysisRequest, request: Request) -> dict[str, Any]:
    """Run an analysis synchronously and return the run outcome."""
    state = request.app.state
    context = PipelineContext(
        settings=state.settings,
        documents=state.documents,
        classifier=state.classifier,
        web=state.web,
        store=state.store,
    )
    outcome = run_analysis(body.document_id, body.to_config(), context)
    if outcome.failed_at is RunState.FETCHING_DOCUMENT:
        raise HTTPException(status_code=404, detail=outcome.failure_reason)
    return outcome.to_dict()


@router.get("")
def list_analyses(
    request: Request,
    document_id: Optional[str] = None,
    matched_only: bool = False,
    limit: int = 50,
) -> list[dict[str, Any]]:
    """List stored results, optionally filtered by document."""
    results = request.app.state.store.list_results(
        document_id=document_id, matched_only=matched_only, limit=limit
    )
    return [r.to_dict() for r in results]


@router.get("/{run_id}")
def get_analysis(run_id: str, request: Request) -> dict[str, Any]:
    """Return the stored result of a completed run."""
    stored = request.app.state.store.get(run_id)
    if stored is None:
        raise HTTPException(status_code=404, detail=f"No result for run {run_id!r}")
    return stored.to_dict()
