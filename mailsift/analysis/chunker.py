"""Paragraph-aware text chunker for classification.

Strategy: walk the text left to right; each chunk ends at the paragraph break
(a blank line, LF or CRLF) whose position is closest to *target_size*, provided
the trimmed piece lands between ``max(min_size, target_size // 2)`` and
``target_size + target_size // 4`` characters.  If no paragraph break falls in
that window the chunk is cut at *target_size* characters, or later when the
cut lands in whitespace and the trimmed piece would be under *min_size*.  A
trailing remainder shorter than *min_size* is folded into the previous chunk.

Chunks are contiguous slices of the input, so joining them reproduces the
text except for whitespace trimmed at the cut points.
"""

from __future__ import annotations

import re

from mailsift.models import Chunk, SourceRef

DEFAULT_CHUNK_SIZE = 3000
DEFAULT_MIN_SIZE = 500

_PARAGRAPH_BREAK = re.compile(r"\r?\n[ \t\r]*\n\s*")
_NON_SPACE = re.compile(r"\S")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _validate(target_size: int, min_size: int) -> None:
    if target_size <= 0:
        raise ValueError(f"target_size must be positive, got {target_size}")
    if min_size < 0:
        raise ValueError(f"min_size must not be negative, got {min_size}")
    if min_size > target_size:
        raise ValueError(
            f"min_size ({min_size}) must not exceed target_size ({target_size})"
        )


def _trimmed_len(text: str, start: int, end: int) -> int:
    return len(text[start:end].strip())


def _hard_cut(text: str, start: int, target_size: int, min_size: int) -> int:
    """End offset of a hard cut at *target_size*.

    Moved right while the trimmed piece is shorter than *min_size*.
    """
    end = start + target_size
    if _trimmed_len(text, start, end) >= min_size:
        return end
    first = _NON_SPACE.search(text, start)
    if first is None:
        return len(text)
    last = _NON_SPACE.search(text, first.start() + min_size - 1)
    return last.end() if last is not None else len(text)


def _spans(text: str, target_size: int, min_size: int) -> list[tuple[int, int]]:
    """Return ``(start, end)`` offsets of each chunk in *text*.

    Piece sizes are measured after trimming.
    """
    breaks = [(m.start(), m.end()) for m in _PARAGRAPH_BREAK.finditer(text)]
    shortest = max(min_size, target_size // 2)
    longest = target_size + target_size // 4

    spans: list[tuple[int, int]] = []
    start = 0
    first_break = 0  # index of the first break that can still follow `start`
    length = len(text)

    while length - start > target_size:
        while first_break < len(breaks) and breaks[first_break][0] <= start:
            first_break += 1

        best: tuple[int, int] | None = None
        for brk in breaks[first_break:]:
            if brk[0] - start > longest:
                break
            if _trimmed_len(text, start, brk[0]) < shortest:
                continue
            if best is None or abs(brk[0] - start - target_size) < abs(best[0] - start - target_size):
                best = brk

        if best is None:
            end = next_start = _hard_cut(text, start, target_size, min_size)
        else:
            end, next_start = best

        spans.append((start, end))
        start = next_start

    if start < length:
        if spans and len(text[start:].strip()) < min_size:
            prev_start, _ = spans.pop()
            spans.append((prev_start, length))
        else:
            spans.append((start, length))
    return spans


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def chunk_text(
    text: str,
    target_size: int = DEFAULT_CHUNK_SIZE,
    min_size: int = DEFAULT_MIN_SIZE,
) -> list[str]:
    """Split *text* into paragraph-aligned chunks of roughly *target_size* chars.

    Args:
        text: Plain text to split.
        target_size: Preferred chunk length in characters.
        min_size: No chunk except the last may be shorter than this.

    Returns:
        Non-empty, whitespace-trimmed chunks in document order.  Returns
        ``[]`` for blank input and a single chunk when the text already fits.

    Raises:
        ValueError: If the sizes are not ``0 <= min_size <= target_size`` with
            a positive *target_size*.
    """
    _validate(target_size, min_size)
    text = text.strip()
    if not text:
        return []
    if len(text) <= target_size:
        return [text]

    chunks = (text[s:e].strip() for s, e in _spans(text, target_size, min_size))
    return [c for c in chunks if c]


def chunk_source(
    text: str,
    source: SourceRef,
    target_size: int = DEFAULT_CHUNK_SIZE,
    min_size: int = DEFAULT_MIN_SIZE,
) -> list[Chunk]:
    """Chunk *text* and tag every piece with *source*."""
    return [
        Chunk(source=source, index=i, text=piece)
        for i, piece in enumerate(chunk_text(text, target_size, min_size))
    ]
