"""Text helpers including simple character chunking."""

from __future__ import annotations

import re
from typing import Iterable, Iterator, List

_WORD_RE = re.compile(r"\w+", re.UNICODE)


def chunk_text(text: str, *, max_chars: int = 400, overlap: int = 20) -> Iterator[str]:
    """Split text into overlapping character chunks.

    This coarse chunker keeps things simple while preserving context overlap.
    """
    if not text:
        return iter(())

    step = max(max_chars - overlap, 1)
    return (text[start : start + max_chars] for start in range(0, len(text), step))


def normalize_whitespace(lines: Iterable[str]) -> str:
    """Collapse whitespace and join lines."""
    return "\n".join(line.strip() for line in lines if line.strip())


def keyword_terms(text: str) -> List[str]:
    """Lower-cased word tokens, de-duplicated in order of appearance."""
    seen: dict[str, None] = {}
    for match in _WORD_RE.finditer(text.lower()):
        seen.setdefault(match.group(0), None)
    return list(seen)
