"""Retrieval strategy interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from mailsift.models import RetrievedContent


@dataclass(frozen=True)
class RetrievalContext:
    """What a retriever knows about the link it is resolving."""

    anchor_text: str = ""
    subject: str = ""
    match_criteria: str = ""
    run_id: str = ""


class ContentRetriever(ABC):
    """Turns one URL into :class:`RetrievedContent`.

    Implementations never raise: every failure comes back as a
    ``RetrievedContent`` with ``success=False`` and a ``RetrievalError``.
    """

    strategy: str = ""

    @abstractmethod
    def retrieve(self, url: str, context: RetrievalContext) -> RetrievedContent:
        """Resolve *url* into retrieved content."""
