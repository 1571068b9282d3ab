"""LangGraph node functions for the analysis pipeline.

Each public symbol is a *factory* that accepts the per-run
:class:`~mailsift.pipeline.state.PipelineContext` and returns a callable
``(AnalysisState) -> dict`` suitable for use as a LangGraph node.  Using
factories (closures) keeps collaborators out of the state bag while still
letting node functions reach them.

Public factories
----------------
``make_document_fetcher`` loads the document; the only node that can fail the
run besides the aggregator.
``make_link_extractor``   collects every link candidate.
``make_link_prioritizer`` asks the classifier which links to follow.
``make_retriever``        resolves the chosen links **in parallel**.
``make_chunker``          splits the document and each retrieved page.
``make_chunk_classifier`` classifies every chunk **in parallel**.
``make_aggregator``       folds the classifications into the final result.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any

from mailsift.analysis.aggregator import aggregate
from mailsift.analysis.chunker import chunk_source
from mailsift.analysis.classifier import classify_chunks
from mailsift.analysis.prioritizer import select_links
from mailsift.errors import AggregationInvariantError, FatalInputError, RetrievalError
from mailsift.models import RetrievedContent, SourceRef
from mailsift.pipeline.state import (
    AnalysisState,
    Diagnostic,
    PipelineContext,
    ProgressEvent,
    RunState,
)
from mailsift.retrieval.base import RetrievalContext
from mailsift.retrieval.factory import create_retriever
from mailsift.scraper.links import extract_links

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def emit_progress(
    context: PipelineContext,
    run_id: str,
    state: RunState,
    message: str,
    **detail: Any,
) -> ProgressEvent:
    """Log a progress event and hand it to the caller's callback, if any."""
    event = ProgressEvent(run_id=run_id, state=state, message=message, detail=detail)
    logger.info("[%s] %s", state.name, message, extra={"run_id": run_id, "state": state.value})
    if context.on_progress is not None:
        try:
            context.on_progress(event)
        except Exception as exc:
            logger.warning("[%s] progress callback raised %s", state.name, exc)
    return event


# ---------------------------------------------------------------------------
# Node factories
# ---------------------------------------------------------------------------

def make_document_fetcher(context: PipelineContext):
    """Return a node that loads the document from the document source."""

    def fetch_document(state: AnalysisState) -> dict:
        run_id = state["run_id"]
        document_id = state["document_id"]
        started = emit_progress(context, run_id, RunState.FETCHING_DOCUMENT, f"loading {document_id!r}")
        try:
            document = context.documents.get_document(document_id)
        except FatalInputError as exc:
            reason = str(exc)
        except Exception as exc:
            reason = f"document {document_id!r} unavailable: {type(exc).__name__}: {exc}"
        else:
            done = emit_progress(
                context, run_id, RunState.FETCHING_DOCUMENT,
                f"loaded {len(document.plaintext)} chars",
                subject=document.subject,
            )
            return {"run_state": RunState.FETCHING_DOCUMENT, "document": document, "events": [started, done]}

        failed = emit_progress(context, run_id, RunState.FAILED, reason)
        return {
            "run_state": RunState.FAILED,
            "failure": reason,
            "failed_at": RunState.FETCHING_DOCUMENT,
            "events": [started, failed],
        }

    return fetch_document


def make_link_extractor(context: PipelineContext):
    """Return a node that extracts every link candidate from the document markup."""

    def extract(state: AnalysisState) -> dict:
        candidates = extract_links(state["document"].markup)
        event = emit_progress(
            context, state["run_id"], RunState.EXTRACTING_LINKS,
            f"found {len(candidates)} link(s)",
            cta=sum(1 for c in candidates if c.is_cta),
        )
        return {"run_state": RunState.EXTRACTING_LINKS, "candidates": candidates, "events": [event]}

    return extract


def make_link_prioritizer(context: PipelineContext):
    """Return a node that picks the links worth following.

    A classifier failure selects nothing and is recorded as a diagnostic.
    """

    def prioritize(state: AnalysisState) -> dict:
        config = state["config"]
        candidates = state.get("candidates", [])
        result = select_links(
            candidates, config.to_criteria(), classifier=context.classifier, max_links=config.max_links
        )

        diagnostics: list[Diagnostic] = []
        if result.ok:
            selected = result.value
        else:
            selected = []
            diagnostics.append(
                Diagnostic(stage="prioritize", kind="collaborator_error", message=result.reason)
            )

        event = emit_progress(
            context, state["run_id"], RunState.PRIORITIZING_LINKS,
            f"selected {len(selected)}/{len(candidates)} link(s)",
        )
        return {
            "run_state": RunState.PRIORITIZING_LINKS,
            "prioritized": selected,
            "diagnostics": diagnostics,
            "events": [event],
        }

    return prioritize


def make_retriever(context: PipelineContext):
    """Return a node that retrieves every prioritized link **in parallel**.

    Each URL settles on its own: one failure never aborts the others.
    Results come back in prioritized order.
    """

    def retrieve(state: AnalysisState) -> dict:
        run_id = state["run_id"]
        config = state["config"]
        document = state["document"]
        links = state.get("prioritized", [])
        retriever = create_retriever(
            config.retrieval_strategy, context.web, context.settings, sleep=context.sleep
        )

        started = emit_progress(
            context, run_id, RunState.RETRIEVING_CONTENT,
            f"retrieving {len(links)} link(s) via {config.retrieval_strategy.value}",
        )

        results: list[RetrievedContent | None] = [None] * len(links)
        workers = max(1, min(context.settings.max_concurrent_retrievals, len(links)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            future_to_index = {
                pool.submit(
                    retriever.retrieve,
                    link.url,
                    RetrievalContext(
                        anchor_text=link.anchor_text,
                        subject=document.subject,
                        match_criteria=config.match_criteria,
                        run_id=run_id,
                    ),
                ): i
                for i, link in enumerate(links)
            }
            for future in as_completed(future_to_index):
                i = future_to_index[future]
                url = links[i].url
                try:
                    results[i] = future.result()
                except Exception as exc:
                    results[i] = RetrievedContent.failure(
                        url, retriever.strategy, RetrievalError(str(exc), url=url)
                    )

        retrieved = [r for r in results if r is not None]
        diagnostics = [
            Diagnostic(
                stage="retrieve",
                kind="retrieval_error",
                message=str(r.error) if r.error else "retrieval failed",
                subject=r.requested_url,
            )
            for r in retrieved
            if not r.success
        ]
        ok = len(retrieved) - len(diagnostics)
        done = emit_progress(
            context, run_id, RunState.RETRIEVING_CONTENT,
            f"retrieved {ok}/{len(links)} link(s)",
            failed=len(diagnostics),
        )
        return {
            "run_state": RunState.RETRIEVING_CONTENT,
            "retrieved": retrieved,
            "diagnostics": diagnostics,
            "events": [started, done],
        }

    return retrieve


def make_chunker(context: PipelineContext):
    """Return a node that chunks the document and every successful retrieval.

    Two links that resolve to the same canonical URL contribute one source.
    """

    def chunk(state: AnalysisState) -> dict:
        settings = context.settings
        chunks = chunk_source(
            state["document"].plaintext,
            SourceRef.document(),
            settings.chunk_size,
            settings.chunk_min_size,
        )

        diagnostics: list[Diagnostic] = []
        seen: set[str] = set()
        for content in state.get("retrieved", []):
            if not content.success:
                continue
            source = SourceRef.retrieved(content)
            if source.key in seen:
                diagnostics.append(
                    Diagnostic(
                        stage="chunk",
                        kind="duplicate_source",
                        message=f"{content.requested_url} resolved to an already retrieved page",
                        subject=source.key,
                    )
                )
                continue
            seen.add(source.key)
            chunks.extend(
                chunk_source(content.text, source, settings.chunk_size, settings.chunk_min_size)
            )

        event = emit_progress(
            context, state["run_id"], RunState.CHUNKING,
            f"{len(chunks)} chunk(s) from {len(seen) + 1} source(s)",
        )
        return {
            "run_state": RunState.CHUNKING,
            "chunks": chunks,
            "diagnostics": diagnostics,
            "events": [event],
        }

    return chunk


def make_chunk_classifier(context: PipelineContext):
    """Return a node that classifies every chunk **in parallel**."""

    def classify(state: AnalysisState) -> dict:
        config = state["config"]
        chunks = state.get("chunks", [])
        classifications = classify_chunks(
            chunks,
            config.match_criteria,
            config.extraction_fields,
            classifier=context.classifier,
            max_workers=context.settings.max_concurrent_classifications,
            user_intent=config.user_intent,
            extraction_examples=config.extraction_examples,
            analysis_feedback=config.analysis_feedback,
        )
        diagnostics = [
            Diagnostic(
                stage="classify",
                kind="collaborator_error",
                message=c.error,
                subject=f"{c.chunk.source.key}#{c.chunk.index}",
            )
            for c in classifications
            if c.error
        ]
        event = emit_progress(
            context, state["run_id"], RunState.CLASSIFYING_CHUNKS,
            f"{sum(1 for c in classifications if c.matched)}/{len(chunks)} chunk(s) matched",
            errors=len(diagnostics),
        )
        return {
            "run_state": RunState.CLASSIFYING_CHUNKS,
            "classifications": classifications,
            "diagnostics": diagnostics,
            "events": [event],
        }

    return classify


def make_aggregator(context: PipelineContext):
    """Return a node that aggregates classifications into the final result."""

    def aggregate_node(state: AnalysisState) -> dict:
        run_id = state["run_id"]
        classifications = state.get("classifications", [])
        started = emit_progress(
            context, run_id, RunState.AGGREGATING,
            f"aggregating {len(classifications)} classification(s)",
        )
        try:
            result = aggregate(classifications)
        except AggregationInvariantError as exc:
            reason = f"aggregation invariant violated: {exc}"
            event = emit_progress(context, run_id, RunState.FAILED, reason)
            return {
                "run_state": RunState.FAILED,
                "failure": reason,
                "failed_at": RunState.AGGREGATING,
                "events": [started, event],
            }

        event = emit_progress(
            context, run_id, RunState.COMPLETED,
            f"matched={result.matched_overall} confidence={result.overall_confidence}",
            sources=len(result.by_source),
        )
        return {"run_state": RunState.COMPLETED, "result": result, "events": [started, event]}

    return aggregate_node
