"""Direct fetch: load the linked page itself, retrying transient failures."""

from __future__ import annotations

import logging
import time
from typing import Callable

import httpx

from mailsift.errors import RetrievalError
from mailsift.models import RetrievedContent
from mailsift.retrieval.base import ContentRetriever, RetrievalContext
from mailsift.retrieval.web import WebClient

logger = logging.getLogger(__name__)

_TRANSIENT_STATUS = {408, 425, 429}


def is_transient(exc: Exception) -> bool:
    """Timeouts, connection failures, 408/425/429 and 5xx responses are worth retrying."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status in _TRANSIENT_STATUS or status >= 500
    return isinstance(exc, (httpx.TimeoutException, httpx.TransportError))


def _describe(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    return f"{type(exc).__name__}: {exc}"


class DirectFetchRetriever(ContentRetriever):
    """Fetch the URL through the web client with bounded exponential backoff.

    Attempt ``n`` (0-based) that fails transiently is followed by a sleep of
    ``base_delay * 2**n`` seconds before the next attempt.  A non-transient
    failure or an exhausted attempt budget ends the retrieval.
    """

    strategy = "direct_fetch"

    def __init__(
        self,
        web: WebClient,
        *,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        settle_seconds: float = 3.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._web = web
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._settle_seconds = settle_seconds
        self._sleep = sleep

    def retrieve(self, url: str, context: RetrievalContext) -> RetrievedContent:
        last_error = RetrievalError("not attempted", url=url)

        for attempt in range(self._max_attempts):
            attempts = attempt + 1
            try:
                page = self._web.fetch(url, self._settle_seconds)
            except Exception as exc:
                transient = is_transient(exc)
                last_error = RetrievalError(
                    _describe(exc), url=url, attempts=attempts, transient=transient
                )
                if transient and attempts < self._max_attempts:
                    delay = self._base_delay * (2 ** attempt)
                    logger.info(
                        "[RETRIEVING] %s failed (%s), attempt %d/%d; retrying in %.1fs",
                        url, last_error, attempts, self._max_attempts, delay,
                    )
                    self._sleep(delay)
                    continue
                break

            if not page.text.strip():
                last_error = RetrievalError(
                    "no readable content", url=url, attempts=attempts, transient=False
                )
                break

            return RetrievedContent(
                requested_url=url,
                canonical_url=page.final_url or url,
                text=page.text,
                format="text",
                strategy=self.strategy,
                success=True,
                title=page.title,
                metadata={"attempts": attempts, "status_code": page.status_code},
            )

        logger.warning(
            "[RETRIEVING] giving up on %s after %d attempt(s): %s",
            url, last_error.attempts, last_error,
        )
        return RetrievedContent.failure(
            url, self.strategy, last_error, attempts=last_error.attempts
        )
