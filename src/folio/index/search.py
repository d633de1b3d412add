"""Hybrid search with optional cross-encoder reranking."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from folio.embedding.worker import EmbeddingService, RerankerService
from folio.index.storage import SQLiteVectorStore
from folio.models import RankedChunk, SearchResult
from folio.utils.text import chunk_text

LOGGER = logging.getLogger(__name__)

RERANK_POOL_FACTOR = 3


def _to_result(hit: Dict[str, Any], score: float, seen_at: float) -> SearchResult:
    modified = float(hit["last_modified"]) / 1000
    return SearchResult(
        text=hit["content"],
        score=score,
        metadata={
            "path": hit["path"],
            "title": hit.get("filename"),
            "created_at": modified,
            "modified_at": modified,
            "filetype": hit.get("extension") or "",
            "languages": [],
            "links": [],
            "owner": None,
            "seen_at": seen_at,
        },
    )


class Searcher:
    """High-level API to query the document store."""

    def __init__(
        self,
        embedder: EmbeddingService,
        store: SQLiteVectorStore,
        reranker: Optional[RerankerService] = None,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.reranker = reranker

    def search(self, query: str, *, top_k: int = 10, rerank: bool = False) -> List[SearchResult]:
        use_reranker = rerank and self.reranker is not None
        embedding = self.embedder.embed_query(query)
        limit = top_k * RERANK_POOL_FACTOR if use_reranker else top_k
        hits = self.store.hybrid_search(query, embedding, limit=limit)
        seen_at = time.time()
        if not use_reranker:
            return [_to_result(hit, float(hit["score"]), seen_at) for hit in hits]

        hits = [hit for hit in hits if hit["content"]]
        if not hits:
            return []
        try:
            ranked = self.reranker.rerank(query, [hit["content"] for hit in hits], top_k=top_k)
        except Exception as exc:
            LOGGER.warning("Reranking failed, keeping hybrid order: %s", exc)
            total = len(hits)
            return [
                _to_result(hit, 1 - index / total, seen_at) for index, hit in enumerate(hits[:top_k])
            ]
        return [_to_result(hits[item.corpus_id], item.score, seen_at) for item in ranked]

    def rank_chunks(
        self,
        query: str,
        documents: Sequence[Dict[str, str]],
        *,
        chunk_chars: int = 400,
        overlap: int = 20,
        min_score: float = 0.1,
    ) -> List[RankedChunk]:
        """Split ``documents`` ({content, path, type}) into passages ranked against ``query``.

        Passages scoring at or below ``min_score`` are dropped. Without a
        working reranker the passages come back in document order with
        descending synthetic scores.
        """
        chunks = [
            RankedChunk(text=text, path=doc["path"], type=doc.get("type", ""), score=0.0)
            for doc in documents
            for text in chunk_text(doc.get("content", ""), max_chars=chunk_chars, overlap=overlap)
            if text.strip()
        ]
        if not chunks:
            return []

        try:
            if self.reranker is None:
                raise RuntimeError("no reranker configured")
            ranked = self.reranker.rerank(query, [chunk.text for chunk in chunks])
        except Exception as exc:
            LOGGER.warning("Error reranking chunks: %s", exc)
            total = len(chunks)
            for index, chunk in enumerate(chunks):
                chunk.score = 1 - index / total
            return chunks

        results = []
        for item in ranked:
            chunk = chunks[item.corpus_id]
            chunk.score = item.score
            if chunk.score > min_score:
                results.append(chunk)
        return results
