"""Analysis pipeline - LangGraph orchestration of the analysis stages."""

from mailsift.pipeline.runner import run_analysis
from mailsift.pipeline.state import Diagnostic, PipelineContext, ProgressEvent, RunOutcome, RunState

__all__ = [
    "run_analysis",
    "Diagnostic",
    "PipelineContext",
    "ProgressEvent",
    "RunOutcome",
    "RunState",
]
