"""Error taxonomy for the analysis pipeline.

Only :class:`FatalInputError` and :class:`AggregationInvariantError` ever end a
run.  :class:`CollaboratorError` and :class:`RetrievalError` are absorbed at
the point they occur and recorded as diagnostics.
"""

from __future__ import annotations

from typing import Optional


class MailsiftError(Exception):
    """Base class for all mailsift errors."""


class FatalInputError(MailsiftError):
    """The input document could not be obtained; the run cannot proceed."""

    def __init__(self, message: str, document_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.document_id = document_id


class CollaboratorError(MailsiftError):
    """The semantic classifier errored or returned malformed output."""


class RetrievalError(MailsiftError):
    """A URL could not be retrieved.

    Attributes:
        url: The URL that was requested.
        attempts: How many fetch attempts were made before giving up.
        transient: Whether the last failure looked transient (timeouts,
            connection resets, 5xx/429 responses).
    """

    def __init__(
        self,
        message: str,
        url: str = "",
        attempts: int = 0,
        transient: bool = False,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.attempts = attempts
        self.transient = transient


class AggregationInvariantError(MailsiftError):
    """A classification violated an aggregation invariant."""
