"""Semantic classifier collaborator backed by a LangChain chat model.

The classifier only builds prompts and returns the model's raw reply.  Replies
are untrusted: :mod:`mailsift.analysis.classifier` and
:mod:`mailsift.analysis.prioritizer` validate them once at the boundary.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional, Protocol, Sequence

from mailsift.config import Settings
from mailsift.models import Criteria, LinkCandidate

logger = logging.getLogger(__name__)

_URL_DISPLAY_LIMIT = 100

_SYSTEM_PROMPT = (
    "You are an email analysis assistant. Judge only what the provided content "
    "says and answer in exactly the requested format."
)


class SemanticClassifier(Protocol):
    def classify(self, text: str, criteria: Criteria) -> Any:
        """Judge *text* against *criteria*; returns an unvalidated reply."""
        ...

    def rank(self, candidates: Sequence[LinkCandidate], criteria: Criteria, boosted: int = 0) -> Any:
        """Pick relevant candidates; the first *boosted* ones match the boost pattern."""
        ...


# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------

def build_classification_prompt(text: str, criteria: Criteria) -> str:
    """Prompt for one chunk.  Intent, examples and feedback sections appear only when set."""
    sections = [
        "You are analysing a piece of content (part of an email, or a page linked "
        "from one) on behalf of a user.",
        f"## Match criteria\n{criteria.match_criteria}",
    ]
    if criteria.user_intent:
        sections.append(f"## User's intent (why they need this data)\n{criteria.user_intent}")
    sections.append(f"## Fields to extract\n{criteria.extraction_fields}")
    if criteria.extraction_examples:
        sections.append(
            "## Expected output examples\n"
            f"{criteria.extraction_examples}\n\n"
            "Match the structure, naming and value types shown in these examples: "
            "arrays where they show arrays, objects where they show objects."
        )
    if criteria.analysis_feedback:
        sections.append(
            "## Feedback on past analyses\n"
            f"{criteria.analysis_feedback}\n\n"
            "Treat this feedback as hard constraints and do not repeat these mistakes."
        )
    sections.append(f"## Content\n{text}")
    sections.append(
        "## Output format\n"
        "Return ONLY a JSON object with these keys:\n"
        "{\n"
        '  "matched": true or false,\n'
        '  "extractedData": { ...fields named as in the extraction fields... },\n'
        '  "reasoning": "why the content does or does not match",\n'
        '  "confidence": a number between 0 and 1\n'
        "}\n\n"
        "Extract every relevant value, not just the first one, and only values "
        "that are explicitly present in the content."
    )
    return "\n\n".join(sections)


def _display_url(url: str) -> str:
    if len(url) > _URL_DISPLAY_LIMIT:
        return url[:_URL_DISPLAY_LIMIT] + "..."
    return url


def build_ranking_prompt(candidates: Sequence[LinkCandidate], criteria: Criteria, boosted: int = 0) -> str:
    lines = []
    for i, link in enumerate(candidates, start=1):
        marker = "🎯 PRIORITY: " if i <= boosted else ""
        lines.append(f'{i}. {marker}"{link.anchor_text}" → {_display_url(link.url)}')

    parts = [
        "You are selecting links from an email that will lead to pages containing "
        "specific information.",
        f"**USER'S GOAL**: {criteria.match_criteria}",
        f"**WHAT TO EXTRACT**: {criteria.extraction_fields}",
    ]
    if criteria.user_intent:
        parts.append(f"**WHY THEY NEED IT**: {criteria.user_intent}")
    if criteria.guidance:
        parts.append(f"**LINK GUIDANCE**: {criteria.guidance}")
    if boosted:
        parts.append(
            f'The user configured "{criteria.boost_pattern}" as their primary link '
            "pattern. Links marked 🎯 match it and should be strongly preferred unless "
            "clearly irrelevant (unsubscribe, privacy policy and the like)."
        )
    parts.append(
        "URLs may be wrapped in tracking or SafeLinks redirects; judge by the link "
        "text and context."
    )
    parts.append("**AVAILABLE LINKS**:\n" + "\n".join(lines))
    parts.append(
        "Skip navigation, login, settings, unsubscribe, social media, legal pages "
        "and company homepages.\n\n"
        '**RESPOND**: comma-separated link numbers ONLY (e.g. "1, 2, 5"), most '
        'relevant first, or "NONE". No explanations.'
    )
    return "\n\n".join(parts)


# ---------------------------------------------------------------------------
# LangChain-backed implementation
# ---------------------------------------------------------------------------

class LLMClassifier:
    """:class:`SemanticClassifier` over ``ChatOpenAI`` or ``ChatOllama``."""

    def __init__(self, settings: Settings, llm: Optional[Any] = None) -> None:
        self._settings = settings
        self._llm = llm
        self._llm_lock = threading.Lock()

    def _get_llm(self) -> Any:
        """Return a configured LangChain chat model based on ``settings``.

        Chunks are classified from several threads; the model is built once.
        """
        if self._llm is not None:
            return self._llm

        with self._llm_lock:
            if self._llm is None:
                self._llm = self._build_llm()
        return self._llm

    def _build_llm(self) -> Any:
        if self._settings.llm_provider == "openai":
            from langchain_openai import ChatOpenAI

            return ChatOpenAI(model=self._settings.openai_chat_model, temperature=0)

        from langchain_ollama import ChatOllama

        return ChatOllama(
            model=self._settings.ollama_chat_model,
            base_url=self._settings.ollama_base_url,
            temperature=0,
        )

    def _invoke(self, prompt: str) -> str:
        from langchain_core.messages import HumanMessage, SystemMessage

        messages = [SystemMessage(content=_SYSTEM_PROMPT), HumanMessage(content=prompt)]
        response = self._get_llm().invoke(messages)
        return response.content if hasattr(response, "content") else str(response)

    def classify(self, text: str, criteria: Criteria) -> Any:
        return self._invoke(build_classification_prompt(text, criteria))

    def rank(self, candidates: Sequence[LinkCandidate], criteria: Criteria, boosted: int = 0) -> Any:
        reply = self._invoke(build_ranking_prompt(candidates, criteria, boosted))
        logger.debug("[PRIORITIZING] ranker replied %r", reply)
        return reply
