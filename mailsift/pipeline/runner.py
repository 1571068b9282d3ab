"""High-level runner for the analysis pipeline.

``run_analysis`` wires a :class:`~mailsift.pipeline.state.PipelineContext`
into the compiled LangGraph, runs it to a terminal state and packages the
result as a :class:`~mailsift.pipeline.state.RunOutcome`.  Completed results
are handed to the result store (when one is configured) and, when
``settings.debug_dir`` is set, a JSON trail of the run is written there.
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Optional

from mailsift.config import AnalysisConfig, RetrievalStrategy
from mailsift.pipeline.graph import build_graph
from mailsift.pipeline.nodes import emit_progress
from mailsift.pipeline.state import (
    AnalysisState,
    Diagnostic,
    PipelineContext,
    RunOutcome,
    RunState,
)

logger = logging.getLogger(__name__)


def write_debug_trail(outcome: RunOutcome, config: AnalysisConfig, debug_dir: Path) -> Path:
    """Write the full run record to ``<debug_dir>/<run_id>.json``."""
    debug_dir.mkdir(parents=True, exist_ok=True)
    path = debug_dir / f"{outcome.run_id}.json"
    record = outcome.to_dict(verbose=True)
    record["config"] = {
        "match_criteria": config.match_criteria,
        "extraction_fields": config.extraction_fields,
        "boost_pattern": config.boost_pattern,
        "follow_links": config.follow_links,
        "retrieval_strategy": config.retrieval_strategy.value,
        "link_guidance": config.link_guidance,
        "max_links": config.max_links,
        "user_intent": config.user_intent,
        "extraction_examples": config.extraction_examples,
        "analysis_feedback": config.analysis_feedback,
    }
    record["features_used"] = {
        "user_intent": bool(config.user_intent),
        "extraction_examples": bool(config.extraction_examples),
        "analysis_feedback": bool(config.analysis_feedback),
        "link_guidance": bool(config.link_guidance),
        "web_search": config.retrieval_strategy is not RetrievalStrategy.DIRECT_FETCH,
    }
    path.write_text(json.dumps(record, indent=2, ensure_ascii=False, default=str), encoding="utf-8")
    return path


def run_analysis(
    document_id: str,
    config: AnalysisConfig,
    context: PipelineContext,
    *,
    run_id: Optional[str] = None,
) -> RunOutcome:
    """Analyse one document and return the run outcome.

    The run ends ``COMPLETED`` (possibly with diagnostics recording absorbed
    failures) or ``FAILED`` when the document is unavailable or aggregation
    hits an invariant violation.  Nothing else fails a run, including a
    result store that rejects the write.

    Args:
        document_id: Id understood by ``context.documents``.
        config: User configuration for this run.
        context: Collaborators and settings.
        run_id: Optional caller-chosen run id; a UUID is generated otherwise.
    """
    run_id = run_id or str(uuid.uuid4())
    graph = build_graph(context)

    pending = emit_progress(context, run_id, RunState.PENDING, f"analysis of {document_id!r} queued")
    initial_state: AnalysisState = {
        "run_id": run_id,
        "document_id": document_id,
        "config": config,
        "run_state": RunState.PENDING,
        "events": [pending],
        "diagnostics": [],
    }

    final: AnalysisState = graph.invoke(initial_state)  # type: ignore[assignment]

    state = final.get("run_state", RunState.FAILED)
    outcome = RunOutcome(
        run_id=run_id,
        document_id=document_id,
        state=state,
        result=final.get("result") if state is RunState.COMPLETED else None,
        failure_reason=final.get("failure") or (None if state is RunState.COMPLETED else "run did not complete"),
        failed_at=final.get("failed_at"),
        diagnostics=list(final.get("diagnostics", [])),
        events=list(final.get("events", [])),
        candidates=list(final.get("candidates", [])),
        prioritized=list(final.get("prioritized", [])),
        retrieved=list(final.get("retrieved", [])),
        classifications=list(final.get("classifications", [])),
    )

    # ------------------------------------------------------------------
    # Persist the completed result
    # ------------------------------------------------------------------
    if outcome.succeeded and outcome.result is not None and context.store is not None:
        try:
            context.store.store(
                run_id,
                outcome.result,
                document_id=document_id,
                strategy=config.retrieval_strategy.value if config.follow_links else "",
            )
        except Exception as exc:
            logger.warning("[COMPLETED] could not persist result: %s", exc, extra={"run_id": run_id})
            outcome.diagnostics.append(
                Diagnostic(stage="persist", kind="persistence_error", message=str(exc), subject=run_id)
            )

    # ------------------------------------------------------------------
    # Debug trail
    # ------------------------------------------------------------------
    debug_dir = context.settings.debug_dir
    if debug_dir is not None:
        try:
            path = write_debug_trail(outcome, config, Path(debug_dir))
            logger.info("[DEBUG] run trail written to %s", path, extra={"run_id": run_id})
        except OSError as exc:
            logger.warning("[DEBUG] could not write run trail: %s", exc, extra={"run_id": run_id})
            outcome.diagnostics.append(
                Diagnostic(stage="debug", kind="debug_trail_error", message=str(exc), subject=run_id)
            )

    return outcome
