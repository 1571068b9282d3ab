"""Build and compile the LangGraph analysis StateGraph.

The graph topology is:

    START → fetch_document → extract_links → prioritize_links → retrieve_content
                  |                |                 |                  |
                  |                └──── (skip) ─────┴──── (skip) ──────┤
                  |                                                     ↓
                  |                                                   chunk
                  |                                                     ↓
                  |                                              classify_chunks
                  |                                                     ↓
                  └──────────── (failed) ──────→ END ←──────────── aggregate

Link prioritization and retrieval are skipped when link following is off, no
candidates were found, or the prioritizer selected nothing.

All nodes are created as closures via the ``make_*`` factories in
``mailsift.pipeline.nodes``, so every node shares the same collaborators
without them appearing in the state bag.
"""

from __future__ import annotations

from langgraph.graph import END, START, StateGraph

from mailsift.pipeline.nodes import (
    make_aggregator,
    make_chunk_classifier,
    make_chunker,
    make_document_fetcher,
    make_link_extractor,
    make_link_prioritizer,
    make_retriever,
)
from mailsift.pipeline.state import AnalysisState, PipelineContext, RunState


def _route_after_fetch(state: AnalysisState) -> str:
    return END if state.get("run_state") is RunState.FAILED else "extract_links"


def _route_after_extract(state: AnalysisState) -> str:
    if state["config"].follow_links and state.get("candidates"):
        return "prioritize_links"
    return "chunk"


def _route_after_prioritize(state: AnalysisState) -> str:
    return "retrieve_content" if state.get("prioritized") else "chunk"


def build_graph(context: PipelineContext):
    """Compile and return the analysis ``StateGraph``.

    Args:
        context: Per-run collaborators captured by every node closure.

    Returns:
        A compiled LangGraph graph.  No checkpointer is attached: runs are
        not resumable and the state holds plain Python objects.
    """
    graph = StateGraph(AnalysisState)

    # ------------------------------------------------------------------
    # Register nodes (each is a closure over *context*)
    # ------------------------------------------------------------------
    graph.add_node("fetch_document", make_document_fetcher(context))
    graph.add_node("extract_links", make_link_extractor(context))
    graph.add_node("prioritize_links", make_link_prioritizer(context))
    graph.add_node("retrieve_content", make_retriever(context))
    graph.add_node("chunk", make_chunker(context))
    graph.add_node("classify_chunks", make_chunk_classifier(context))
    graph.add_node("aggregate", make_aggregator(context))

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------
    graph.add_edge(START, "fetch_document")
    graph.add_conditional_edges("fetch_document", _route_after_fetch, ["extract_links", END])
    graph.add_conditional_edges("extract_links", _route_after_extract, ["prioritize_links", "chunk"])
    graph.add_conditional_edges("prioritize_links", _route_after_prioritize, ["retrieve_content", "chunk"])
    graph.add_edge("retrieve_content", "chunk")
    graph.add_edge("chunk", "classify_chunks")
    graph.add_edge("classify_chunks", "aggregate")
    graph.add_edge("aggregate", END)

    return graph.compile()
