"""Link extraction from email markup.

``extract_links`` turns arbitrary (often malformed) email HTML into an ordered
list of :class:`~mailsift.models.LinkCandidate` records:

    parse → unwrap SafeLinks → normalize → de-duplicate → flag call-to-action

There is no cap on the number of candidates; selecting the useful subset is
the prioritizer's job.
"""

from __future__ import annotations

import re
from typing import Iterator, Optional
from urllib.parse import parse_qsl, unquote, urlencode, urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup
from bs4.builder import ParserRejectedMarkup
from bs4.element import Tag

from mailsift.models import LinkCandidate

_SKIPPED_SCHEMES = ("mailto:", "tel:", "javascript:", "data:", "sms:")

_DEFAULT_PORTS = {"http": 80, "https": 443}

_ONCLICK_URL = re.compile(
    r"(?:window\.)?(?:location(?:\.href)?\s*=|open\s*\(|location\.assign\s*\()\s*['\"]([^'\"]+)['\"]",
    re.IGNORECASE,
)

_CTA_PHRASES = re.compile(
    r"^(?:view|see|read|apply|open|learn|show|get|check|go|start|download|register|sign up|"
    r"book|join|continue|details|more)\b"
    r"|\b(?:read more|learn more|view details|see details|apply now|view job|see the job|"
    r"se jobbet|click here|find out more)\b",
    re.IGNORECASE,
)

_BUTTON_STYLE = re.compile(r"background(?:-color)?\s*:", re.IGNORECASE)
_PADDING_STYLE = re.compile(r"padding\s*:", re.IGNORECASE)


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------

def decode_safelinks(url: str) -> str:
    """Return the real destination of an Outlook SafeLinks URL.

    Any other URL (or a SafeLinks URL without a ``url`` parameter) is returned
    unchanged.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.netloc.lower().endswith("safelinks.protection.outlook.com"):
        return url
    for key, value in parse_qsl(parts.query, keep_blank_values=False):
        if key.lower() == "url" and value:
            return unquote(value)
    return url


def normalize_url(href: str, base_url: Optional[str] = None) -> Optional[str]:
    """Return *href* as an absolute, comparable ``http(s)`` URL.

    Lowercases scheme and host, drops default ports, fragments and ``utm_*``
    tracking parameters, and uses ``/`` for an empty path.  Returns ``None``
    for anything that cannot be made absolute or is not ``http(s)``.
    """
    href = href.strip()
    if not href:
        return None
    if base_url:
        href = urljoin(base_url, href)
    try:
        parts = urlsplit(href)
        port = parts.port
    except ValueError:
        return None

    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS or not parts.hostname:
        return None

    host = parts.hostname.lower()
    if port and port != _DEFAULT_PORTS[scheme]:
        host = f"{host}:{port}"

    query_pairs = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not k.lower().startswith("utm_")
    ]
    query = urlencode(query_pairs, doseq=True)
    path = parts.path or "/"
    return urlunsplit((scheme, host, path, query, ""))


# ---------------------------------------------------------------------------
# Markup helpers
# ---------------------------------------------------------------------------

def _clean_text(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def _is_button_like(el: Tag) -> bool:
    classes = el.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    class_str = " ".join(classes).lower()
    if "button" in class_str or "btn" in class_str:
        return True
    if str(el.get("role", "")).lower() == "button":
        return True
    if el.find_parent("button") is not None:
        return True
    style = str(el.get("style", ""))
    if _BUTTON_STYLE.search(style) and _PADDING_STYLE.search(style):
        return True
    # Email templates put the button colour on the wrapping table cell.
    cell = el.find_parent("td")
    if cell is not None and cell.get("bgcolor") and _clean_text(cell.get_text()) == _clean_text(el.get_text()):
        return True
    return False


def _is_cta(el: Tag, text: str) -> bool:
    if _is_button_like(el):
        return True
    return bool(text) and len(text) <= 40 and bool(_CTA_PHRASES.search(text))


def _iter_raw_links(soup: BeautifulSoup) -> Iterator[tuple[str, str, bool]]:
    """Yield ``(href, anchor_text, is_cta)`` in document order."""
    for el in soup.find_all(["a", "button"]):
        if el.name == "a":
            href = el.get("href")
            if not href:
                continue
            text = _clean_text(el.get_text(" "))
            if not text:
                img = el.find("img")
                if img is not None:
                    text = _clean_text(img.get("alt", ""))
            yield str(href), text, _is_cta(el, text)
        else:
            onclick = str(el.get("onclick", ""))
            match = _ONCLICK_URL.search(onclick)
            if match:
                yield match.group(1), _clean_text(el.get_text(" ")), True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_links(markup: str, base_url: Optional[str] = None) -> list[LinkCandidate]:
    """Extract every followable link from *markup*.

    Args:
        markup: Email HTML.  Malformed markup is tolerated; whatever the
            parser recovers is used.
        base_url: Used to resolve relative hrefs.  Without it, relative hrefs
            are dropped.

    Returns:
        Candidates in first-seen order, de-duplicated by normalized URL.  The
        first occurrence's anchor text wins, but a later occurrence can still
        mark the link as a call-to-action.
    """
    if not markup or not markup.strip():
        return []

    try:
        soup = BeautifulSoup(markup, "html.parser")
    except ParserRejectedMarkup:
        return []

    by_url: dict[str, LinkCandidate] = {}
    for href, text, is_cta in _iter_raw_links(soup):
        href = href.strip()
        if not href or href.startswith("#") or href.lower().startswith(_SKIPPED_SCHEMES):
            continue
        url = normalize_url(decode_safelinks(href), base_url)
        if url is None:
            continue
        existing = by_url.get(url)
        if existing is None:
            by_url[url] = LinkCandidate(url=url, anchor_text=text, is_cta=is_cta, raw_href=href)
        elif is_cta and not existing.is_cta:
            by_url[url] = LinkCandidate(
                url=url,
                anchor_text=existing.anchor_text,
                is_cta=True,
                raw_href=existing.raw_href,
            )
    return list(by_url.values())
