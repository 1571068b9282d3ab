"""Per-chunk classification.

Each chunk is judged independently by the semantic classifier.  Replies are
coerced once into ``{matched, extracted_fields, reasoning, confidence}``; a
reply that cannot be coerced (or a classifier that raises) yields an
unmatched classification carrying the error text.
"""

from __future__ import annotations

import json
import logging
import math
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Mapping, Optional, Sequence

from mailsift.analysis.llm import SemanticClassifier
from mailsift.models import Chunk, ChunkClassification, Criteria, Err, Ok, Result

logger = logging.getLogger(__name__)

CLASSIFIER_ERROR = "classifier error"

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


# ---------------------------------------------------------------------------
# Reply coercion
# ---------------------------------------------------------------------------

def _decode(raw: Any) -> Result[Mapping[str, Any]]:
    if isinstance(raw, Mapping):
        return Ok(raw)
    if not isinstance(raw, str):
        return Err(f"unsupported reply type {type(raw).__name__}")

    text = raw.strip()
    fenced = _FENCE.search(text)
    if fenced:
        text = fenced.group(1).strip()
    elif not text.startswith("{"):
        start, end = text.find("{"), text.rfind("}")
        if start != -1 and end > start:
            text = text[start:end + 1]

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        return Err(f"reply is not JSON: {exc}")
    if not isinstance(data, Mapping):
        return Err("reply is not a JSON object")
    return Ok(data)


def _coerce_matched(value: Any) -> Result[bool]:
    if isinstance(value, bool):
        return Ok(value)
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return Ok(value.strip().lower() == "true")
    return Err(f"'matched' must be a boolean, got {value!r}")


def _coerce_confidence(value: Any, matched: bool) -> Result[float]:
    if value is None:
        return Ok(0.5 if matched else 0.0)
    if isinstance(value, bool):
        return Err("'confidence' must be numeric, got a boolean")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return Err(f"'confidence' must be numeric, got {value!r}")
    if not isinstance(value, (int, float)) or math.isnan(value):
        return Err(f"'confidence' must be numeric, got {value!r}")
    return Ok(min(1.0, max(0.0, float(value))))


def coerce_reply(raw: Any) -> Result[dict[str, Any]]:
    """Validate a raw classifier reply into a normalized mapping."""
    decoded = _decode(raw)
    if not decoded.ok:
        return decoded
    data = decoded.value

    if "matched" not in data:
        return Err("reply has no 'matched' key")
    matched = _coerce_matched(data["matched"])
    if not matched.ok:
        return matched

    fields = data.get("extractedData", data.get("extracted_data"))
    if fields is None:
        fields = {}
    if not isinstance(fields, Mapping):
        return Err(f"'extractedData' must be an object, got {type(fields).__name__}")

    confidence = _coerce_confidence(data.get("confidence"), matched.value)
    if not confidence.ok:
        return confidence

    reasoning = data.get("reasoning") or ""
    return Ok({
        "matched": matched.value,
        "extracted_fields": dict(fields),
        "reasoning": reasoning if isinstance(reasoning, str) else str(reasoning),
        "confidence": confidence.value,
    })


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def _failed(chunk: Chunk, detail: str) -> ChunkClassification:
    return ChunkClassification(
        chunk=chunk,
        matched=False,
        extracted_fields={},
        reasoning=CLASSIFIER_ERROR,
        confidence=0.0,
        error=detail,
    )


def classify_chunk(
    chunk: Chunk,
    match_criteria: str,
    extraction_fields: str,
    *,
    classifier: SemanticClassifier,
    user_intent: Optional[str] = None,
    extraction_examples: Optional[str] = None,
    analysis_feedback: Optional[str] = None,
) -> ChunkClassification:
    """Classify one chunk.  Never raises for classifier failures.

    *user_intent*, *extraction_examples* and *analysis_feedback* are optional
    prompt context: why the user wants the data, the output shape they expect
    and mistakes earlier runs made.
    """
    criteria = Criteria(
        match_criteria=match_criteria,
        extraction_fields=extraction_fields,
        user_intent=user_intent,
        extraction_examples=extraction_examples,
        analysis_feedback=analysis_feedback,
    )
    try:
        raw = classifier.classify(chunk.text, criteria)
    except Exception as exc:
        logger.warning(
            "[CLASSIFYING] %s#%d: classifier raised %s", chunk.source.key, chunk.index, exc
        )
        return _failed(chunk, f"{type(exc).__name__}: {exc}")

    reply = coerce_reply(raw)
    if not reply.ok:
        logger.warning(
            "[CLASSIFYING] %s#%d: malformed reply: %s", chunk.source.key, chunk.index, reply.reason
        )
        return _failed(chunk, reply.reason)

    value = reply.value
    return ChunkClassification(
        chunk=chunk,
        matched=value["matched"],
        extracted_fields=value["extracted_fields"],
        reasoning=value["reasoning"],
        confidence=value["confidence"],
    )


def classify_chunks(
    chunks: Sequence[Chunk],
    match_criteria: str,
    extraction_fields: str,
    *,
    classifier: SemanticClassifier,
    max_workers: int = 4,
    user_intent: Optional[str] = None,
    extraction_examples: Optional[str] = None,
    analysis_feedback: Optional[str] = None,
) -> list[ChunkClassification]:
    """Classify *chunks* in parallel; results come back in input order."""
    if not chunks:
        return []

    results: list[ChunkClassification | None] = [None] * len(chunks)
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(chunks)))) as pool:
        future_to_index = {
            pool.submit(
                classify_chunk,
                chunk,
                match_criteria,
                extraction_fields,
                classifier=classifier,
                user_intent=user_intent,
                extraction_examples=extraction_examples,
                analysis_feedback=analysis_feedback,
            ): i
            for i, chunk in enumerate(chunks)
        }
        for future in as_completed(future_to_index):
            i = future_to_index[future]
            results[i] = future.result()

    matched = sum(1 for r in results if r is not None and r.matched)
    logger.info("[CLASSIFYING] %d/%d chunk(s) matched", matched, len(chunks))
    return [r for r in results if r is not None]
