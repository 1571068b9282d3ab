"""Link prioritization: ask the semantic classifier which links are worth following.

Candidates whose anchor text matches the boost pattern are listed first and
flagged for the ranker.  The ranker replies with 1-based positions into that
reordered list (or ``NONE``).  The reply is validated once here; anything
malformed selects nothing.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Optional, Sequence

from mailsift.analysis.llm import SemanticClassifier
from mailsift.models import Criteria, Err, LinkCandidate, Ok, Result

logger = logging.getLogger(__name__)

_POSITION = re.compile(r"^\d+$")


def compile_boost_pattern(pattern: Optional[str]) -> Optional[re.Pattern]:
    """Compile *pattern* case-insensitively; an invalid regex is matched literally."""
    if not pattern:
        return None
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        logger.info("[PRIORITIZING] boost pattern %r is not a valid regex, matching literally", pattern)
        return re.compile(re.escape(pattern), re.IGNORECASE)


def order_by_boost(
    candidates: Sequence[LinkCandidate],
    boost_pattern: Optional[str],
) -> tuple[list[LinkCandidate], int]:
    """Return candidates with boost matches first, and how many matched."""
    regex = compile_boost_pattern(boost_pattern)
    if regex is None:
        return list(candidates), 0
    boosted = [c for c in candidates if regex.search(c.anchor_text or "")]
    regular = [c for c in candidates if not regex.search(c.anchor_text or "")]
    return boosted + regular, len(boosted)


def parse_selection(reply: object, count: int) -> Result[list[int]]:
    """Validate a ranker reply into distinct, in-range 1-based positions."""
    if not isinstance(reply, str):
        return Err(f"expected text reply, got {type(reply).__name__}")
    text = reply.strip().strip("\"'").strip().rstrip(".")
    if not text:
        return Err("empty reply")
    if text.upper() == "NONE":
        return Ok([])

    positions: list[int] = []
    for part in text.split(","):
        part = part.strip()
        if not _POSITION.match(part):
            return Err(f"unparseable position {part!r}")
        position = int(part)
        if not 1 <= position <= count:
            return Err(f"position {position} outside 1..{count}")
        if position in positions:
            return Err(f"position {position} repeated")
        positions.append(position)
    return Ok(positions)


def select_links(
    candidates: Sequence[LinkCandidate],
    criteria: Criteria,
    *,
    classifier: SemanticClassifier,
    max_links: Optional[int] = None,
) -> Result[list[LinkCandidate]]:
    """Rank *candidates* and return the selected subset as a tagged result.

    ``Err`` covers both a raised classifier error and a malformed reply.
    """
    if not candidates:
        return Ok([])

    ordered, boosted = order_by_boost(candidates, criteria.boost_pattern)
    logger.info(
        "[PRIORITIZING] %d candidate(s), %d boost match(es)", len(ordered), boosted
    )

    try:
        reply = classifier.rank(ordered, criteria, boosted)
    except Exception as exc:
        return Err(f"ranker failed: {exc}")

    parsed = parse_selection(reply, len(ordered))
    if not parsed.ok:
        return Err(f"malformed ranker reply {reply!r}: {parsed.reason}")

    selected = [ordered[p - 1] for p in parsed.value]
    if max_links is not None:
        selected = selected[:max_links]

    total = len(selected)
    ranked = [
        replace(link, rank_score=round(1.0 - i / total, 4))
        for i, link in enumerate(selected)
    ]
    return Ok(ranked)


def prioritize_links(
    candidates: Sequence[LinkCandidate],
    match_criteria: str,
    extraction_fields: str,
    boost_pattern: Optional[str],
    *,
    classifier: SemanticClassifier,
    guidance: Optional[str] = None,
    max_links: Optional[int] = None,
) -> list[LinkCandidate]:
    """Return the links worth following, most relevant first.

    Fails closed: a classifier error or malformed reply yields ``[]``.  The
    boost pattern only raises a link's priority and never filters.
    """
    criteria = Criteria(
        match_criteria=match_criteria,
        extraction_fields=extraction_fields,
        boost_pattern=boost_pattern,
        guidance=guidance,
    )
    result = select_links(candidates, criteria, classifier=classifier, max_links=max_links)
    if not result.ok:
        logger.warning("[PRIORITIZING] %s; following no links", result.reason)
        return []
    logger.info("[PRIORITIZING] selected %d/%d link(s)", len(result.value), len(candidates))
    return result.value
