"""Aggregation of chunk classifications into one source-attributed result.

Merge rules, applied per field:

* ``None`` is treated as absent.
* A field seen once passes through unchanged.
* Two arrays are unioned, de-duplicated in first-seen order.
* Two objects are shallow-merged; the later value wins per key.
* Differing scalars (or mismatched kinds) become an ordered list of distinct
  variants, and further values are appended to that list.

The same rules merge classifications within a source and then the per-source
results into the global field map, so the output depends only on the input
order.
"""

from __future__ import annotations

import copy
from typing import Any, Iterable, Sequence

from mailsift.errors import AggregationInvariantError
from mailsift.models import AggregatedResult, ChunkClassification, SourceBreakdown, SourceRef


# ---------------------------------------------------------------------------
# Field merging
# ---------------------------------------------------------------------------

def _union(items: Iterable[Any], more: Iterable[Any]) -> list[Any]:
    merged: list[Any] = []
    for item in list(items) + list(more):
        if item not in merged:
            merged.append(item)
    return merged


def merge_value(existing: Any, new: Any) -> Any:
    """Combine two values for the same field."""
    if new is None:
        return existing
    if existing is None:
        return copy.deepcopy(new)
    if isinstance(existing, list) and isinstance(new, list):
        return _union(existing, copy.deepcopy(new))
    if isinstance(existing, dict) and isinstance(new, dict):
        return {**existing, **copy.deepcopy(new)}
    if existing == new:
        return existing
    if isinstance(existing, list):
        return _union(existing, [copy.deepcopy(new)])
    if isinstance(new, list):
        return _union([existing], copy.deepcopy(new))
    return [existing, copy.deepcopy(new)]


def merge_fields(field_maps: Iterable[dict[str, Any]]) -> dict[str, Any]:
    """Merge field maps key by key, in order."""
    merged: dict[str, Any] = {}
    for fields in field_maps:
        for key, value in fields.items():
            if value is None:
                continue
            merged[key] = merge_value(merged.get(key), value)
    return merged


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _check(classification: ChunkClassification) -> SourceRef:
    source = classification.source
    if source is None or not source.key:
        raise AggregationInvariantError("classification has no source reference")
    confidence = classification.confidence
    if not isinstance(confidence, (int, float)) or not 0.0 <= confidence <= 1.0:
        raise AggregationInvariantError(
            f"confidence {confidence!r} outside [0, 1] for {source.key}#{classification.chunk.index}"
        )
    if not isinstance(classification.extracted_fields, dict):
        raise AggregationInvariantError(
            f"extracted fields for {source.key}#{classification.chunk.index} are not a mapping"
        )
    return source


def _mean(values: Sequence[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def aggregate(classifications: Sequence[ChunkClassification]) -> AggregatedResult:
    """Fold *classifications* into an :class:`AggregatedResult`.

    Raises:
        AggregationInvariantError: If any classification lacks a source
            reference, has a confidence outside [0, 1] or non-mapping fields.
    """
    for classification in classifications:
        _check(classification)

    matched = [c for c in classifications if c.matched]
    if not matched:
        return AggregatedResult.empty()

    groups: dict[SourceRef, list[ChunkClassification]] = {}
    for classification in matched:
        groups.setdefault(classification.source, []).append(classification)

    breakdown = [
        SourceBreakdown(
            source=source.key,
            kind=source.kind,
            fields=merge_fields(c.extracted_fields for c in members),
            reasoning=[c.reasoning for c in members if c.reasoning],
            confidence=_mean([c.confidence for c in members]),
            matched_chunks=len(members),
        )
        for source, members in groups.items()
    ]

    return AggregatedResult(
        matched_overall=True,
        merged_fields=merge_fields(b.fields for b in breakdown),
        by_source=breakdown,
        overall_confidence=_mean([c.confidence for c in matched]),
        total_matches=len(matched),
    )
