"""Content extraction: turns a :class:`RawPage` into a :class:`CleanPage`."""

from __future__ import annotations

import trafilatura
from bs4 import BeautifulSoup

from mailsift.scraper.models import CleanPage, RawPage

_NON_CONTENT_TAGS = ["script", "style", "nav", "footer", "header", "noscript", "iframe"]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _page_title(soup: BeautifulSoup) -> str:
    """Prefer ``og:title``; job boards often leave ``<title>`` generic."""
    og = soup.find("meta", attrs={"property": "og:title"})
    if og is not None and og.get("content", "").strip():
        return og["content"].strip()
    if soup.title is not None and soup.title.string:
        return soup.title.string.strip()
    return ""


def _bs4_fallback(soup: BeautifulSoup) -> str:
    """Readable text from ``<main>``, ``<article>`` or ``<body>``, one block per line."""
    for tag in soup(_NON_CONTENT_TAGS):
        tag.decompose()
    container = soup.find("main") or soup.find("article") or soup.body or soup
    return container.get_text(separator="\n", strip=True)


def _as_paragraphs(text: str) -> str:
    """Put a blank line between non-empty lines.

    Both trafilatura's ``txt`` output and the BS4 fallback separate blocks
    with a single newline; the chunker splits on blank lines.
    """
    lines = [line.strip() for line in text.splitlines()]
    return "\n\n".join(line for line in lines if line)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_content(raw: RawPage) -> CleanPage:
    """Extract clean, readable text from *raw*.

    Tries ``trafilatura`` first and falls back to a BeautifulSoup heuristic
    when it returns nothing.  The page is keyed by the resolved URL, not the
    requested one.
    """
    text: str | None = trafilatura.extract(
        raw.html,
        include_links=False,
        include_images=False,
        include_tables=True,
        no_fallback=False,
        url=raw.resolved_url,
    )

    soup = BeautifulSoup(raw.html, "html.parser")
    title = _page_title(soup)
    if not text:
        text = _bs4_fallback(soup)

    return CleanPage(url=raw.resolved_url, title=title, text=_as_paragraphs(text or ""))
