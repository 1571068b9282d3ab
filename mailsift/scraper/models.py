"""Data models for the scraper."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class RawPage:
    """The raw HTTP response for a single URL fetch.

    ``url`` is the address that was requested; ``final_url`` is where the
    redirect chain (HTTP, meta refresh or client-side) ended up.
    """

    url: str
    html: str
    status_code: int
    final_url: Optional[str] = None

    @property
    def resolved_url(self) -> str:
        return self.final_url or self.url


@dataclass
class CleanPage:
    """Cleaned, readable content extracted from a :class:`RawPage`."""

    url: str
    title: str
    text: str
