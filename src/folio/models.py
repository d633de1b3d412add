"""Core Folio data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(slots=True)
class Document:
    """A single indexed file or web page. ``path`` is its unique id."""

    path: str
    content: str
    filename: str
    extension: str
    last_modified: float
    hash: str


@dataclass(slots=True)
class QueueItem:
    """Web link waiting to be scraped, ranked by similarity to the active query."""

    url: str
    title: str
    priority: float = 0.0


@dataclass(slots=True)
class RankResult:
    """Cross-encoder score for one candidate passage."""

    corpus_id: int
    score: float
    text: Optional[str] = None


@dataclass(slots=True)
class SearchResult:
    text: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class RankedChunk:
    text: str
    path: str
    type: str
    score: float
