"""HTTP fetcher with meta-refresh following and an optional Playwright fallback.

Email links are frequently wrapped in tracking redirects.  HTTP redirects are
followed by ``httpx``; ``<meta http-equiv="refresh">`` hops are followed here;
JavaScript redirects and SPA shells are handed to a headless browser that is
given ``settle_seconds`` to finish navigating.
"""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urljoin

import httpx

from mailsift.scraper.models import RawPage

# ---------------------------------------------------------------------------
# SPA / JS-rendered page detection heuristics
# ---------------------------------------------------------------------------
_SPA_PATTERNS = [
    re.compile(r'<div[^>]+id=["\'](?:root|app)["\']', re.IGNORECASE),
    re.compile(r"window\.__NEXT_DATA__", re.IGNORECASE),
    re.compile(r"ng-version=", re.IGNORECASE),
    re.compile(r"data-reactroot", re.IGNORECASE),
]

# Client-side redirect stubs (tracking links, URL shorteners).
_JS_REDIRECT = re.compile(
    r"(?:window\.)?location(?:\.href)?\s*=\s*['\"][^'\"]+['\"]|location\.replace\(",
    re.IGNORECASE,
)

_META_REFRESH = re.compile(
    r"<meta[^>]+http-equiv=[\"']?refresh[\"']?[^>]*content=[\"']\s*\d*\s*;?\s*url\s*=\s*['\"]?([^'\">\s]+)",
    re.IGNORECASE,
)

_DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (compatible; mailsift/0.1; +https://github.com/mailsift)"
    )
}

MAX_REFRESH_HOPS = 3


def _is_spa(html: str) -> bool:
    """Return ``True`` if *html* looks like a JavaScript SPA that needs rendering."""
    for pattern in _SPA_PATTERNS:
        if pattern.search(html):
            return True
    # Very little visible text relative to total HTML size.  Strip <script>
    # and <style> blocks first so their source doesn't count as visible text.
    no_scripts = re.sub(r"<(script|style)[^>]*>.*?</(script|style)>", "", html, flags=re.IGNORECASE | re.DOTALL)
    stripped = re.sub(r"<[^>]+>", "", no_scripts).strip()
    if len(html) > 2000 and len(stripped) < 200:
        return True
    return False


def _needs_browser(html: str) -> bool:
    """SPA shells and short JavaScript redirect stubs both need a real browser."""
    if _is_spa(html):
        return True
    return len(html) < 5000 and bool(_JS_REDIRECT.search(html))


def _meta_refresh_target(html: str, base_url: str) -> Optional[str]:
    """Return the absolute target of a ``<meta http-equiv="refresh">`` tag."""
    match = _META_REFRESH.search(html)
    if not match:
        return None
    return urljoin(base_url, match.group(1).strip())


def _fetch_with_playwright(url: str, timeout: float, settle_seconds: float) -> RawPage:
    """Render *url* with a headless Chromium browser and return its HTML.

    The browser waits ``settle_seconds`` after the network goes idle so that
    client-side redirect chains can land on their final page.  Playwright is
    imported lazily so tests that don't exercise this path don't need a
    browser installed.
    """
    from playwright.sync_api import sync_playwright  # noqa: PLC0415

    with sync_playwright() as pw:
        browser = pw.chromium.launch(headless=True)
        try:
            page = browser.new_page()
            response = page.goto(
                url,
                timeout=int(timeout * 1000),
                wait_until="networkidle",
            )
            if settle_seconds > 0:
                page.wait_for_timeout(int(settle_seconds * 1000))
            html = page.content()
            final_url = page.url
            status_code = response.status if response is not None else 200
        finally:
            browser.close()

    return RawPage(url=url, html=html, status_code=status_code, final_url=final_url)


def fetch_url(
    url: str,
    *,
    timeout: float = 30.0,
    settle_seconds: float = 0.0,
    use_browser: bool = True,
) -> RawPage:
    """Fetch *url* and return a :class:`RawPage`.

    Uses ``httpx`` for standard pages, following HTTP redirects and up to
    :data:`MAX_REFRESH_HOPS` meta-refresh hops.  Falls back to a headless
    Playwright browser when the response looks like a SPA or a JavaScript
    redirect stub and ``use_browser`` is set.

    Raises:
        httpx.HTTPStatusError: If the server returns a 4xx/5xx status code.
        httpx.TransportError: On connection failures and timeouts.
    """
    with httpx.Client(
        headers=_DEFAULT_HEADERS,
        timeout=timeout,
        follow_redirects=True,
    ) as client:
        current = url
        response = client.get(current)
        response.raise_for_status()
        for _ in range(MAX_REFRESH_HOPS):
            target = _meta_refresh_target(response.text, str(response.url))
            if not target or target == str(response.url):
                break
            current = target
            response = client.get(current)
            response.raise_for_status()

        raw = RawPage(
            url=url,
            html=response.text,
            status_code=response.status_code,
            final_url=str(response.url),
        )

    if use_browser and _needs_browser(raw.html):
        rendered = _fetch_with_playwright(raw.resolved_url, timeout, settle_seconds)
        raw = RawPage(
            url=url,
            html=rendered.html,
            status_code=rendered.status_code,
            final_url=rendered.resolved_url,
        )

    return raw
