"""Relevance-ordered queue of web pages waiting to be scraped."""

from __future__ import annotations

import logging
from typing import List, Optional, Set

import numpy as np

from folio.embedding.worker import EmbeddingService
from folio.models import QueueItem
from folio.utils.vectors import cosine_similarity

LOGGER = logging.getLogger(__name__)


class CrawlQueue:
    """Priority queue of links ranked by similarity to the active query.

    Concurrency is bounded only through the in-flight set: callers pair every
    ``get_next()`` with a ``mark_complete()``.
    """

    def __init__(self, embedder: EmbeddingService, *, max_concurrent: int = 3) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be positive")
        self.embedder = embedder
        self.max_concurrent = max_concurrent
        self._queue: List[QueueItem] = []
        self._in_flight: Set[str] = set()
        self._query_vector: Optional[np.ndarray] = None

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def in_flight(self) -> Set[str]:
        return set(self._in_flight)

    def set_current_query(self, query: str) -> None:
        """Embed and cache ``query``; must precede similarity-ranked ``add_to_queue`` calls."""
        self._query_vector = self.embedder.embed(query)

    def add_to_queue(self, url: str, title: str, content: str) -> bool:
        """Queue ``url`` unless it is already queued or in flight; returns whether it was added."""
        if url in self._in_flight or any(item.url == url for item in self._queue):
            return False

        priority = 0.0
        if self._query_vector is not None and content:
            priority = cosine_similarity(self._query_vector, self.embedder.embed(content))

        self._queue.append(QueueItem(url=url, title=title, priority=priority))
        self._queue.sort(key=lambda item: item.priority, reverse=True)
        LOGGER.debug("Queued %s (priority %.3f)", url, priority)
        return True

    def get_next(self) -> Optional[QueueItem]:
        """Pop the best item not already in flight, or None when the budget or queue is exhausted."""
        while self._queue and len(self._in_flight) < self.max_concurrent:
            item = self._queue.pop(0)
            if item.url not in self._in_flight:
                self._in_flight.add(item.url)
                return item
        return None

    def mark_complete(self, url: str) -> None:
        self._in_flight.discard(url)

    def has_more(self) -> bool:
        return bool(self._queue) or bool(self._in_flight)

    def clear(self) -> None:
        self._queue.clear()
        self._in_flight.clear()
        self._query_vector = None
