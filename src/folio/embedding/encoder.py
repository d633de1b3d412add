"""Embedding and cross-encoder model management.

Both classes load their model lazily on the first call to ``initialize()`` and
are meant to live inside a worker process (see ``folio.embedding.worker``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Sequence

import numpy as np
from sentence_transformers import CrossEncoder, SentenceTransformer

from folio.config import DEFAULT_MODEL, DEFAULT_RERANKER_MODEL
from folio.models import RankResult

logger = logging.getLogger(__name__)


def _select_device() -> str | None:
    """Pick the best available torch device, or None to let the library decide.

    Returns "cuda" for NVIDIA GPUs, "mps" for Apple Silicon and None otherwise.
    """
    try:
        import torch

        if torch.cuda.is_available():
            logger.debug(f"CUDA GPU detected: {torch.cuda.get_device_name(0)}")
            return "cuda"

        if hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
            logger.debug("Apple MPS GPU detected")
            return "mps"

        logger.debug("No GPU detected, will use CPU")
        return None
    except ImportError:
        logger.debug("PyTorch not available for GPU detection")
        return None
    except Exception as e:
        logger.debug(f"GPU detection failed: {e}")
        return None


@dataclass(slots=True)
class EmbeddingConfig:
    model_name: str = DEFAULT_MODEL
    batch_size: int = 16
    normalize: bool = True
    device: str | None = None


class EmbeddingModel:
    """Thin wrapper around `SentenceTransformer` producing normalized float32 vectors."""

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self.config = config or EmbeddingConfig()
        self._model: SentenceTransformer | None = None

    def initialize(self) -> bool:
        """Load the model once; later calls are no-ops."""
        if self._model is None:
            device = self.config.device or _select_device()
            self._model = SentenceTransformer(self.config.model_name, device=device)
            logger.info(
                "Loaded embedding model %s (device: %s, dimension: %s)",
                self.config.model_name,
                device or "auto",
                self.dimension,
            )
        return True

    @property
    def dimension(self) -> int:
        self.initialize()
        return int(self._model.get_sentence_embedding_dimension())

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Return float32 embeddings for input texts."""
        self.initialize()
        sentences = list(texts)
        embeddings = self._model.encode(
            sentences,
            batch_size=self.config.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=self.config.normalize,
        )
        return embeddings.astype("float32", copy=False)

    def embed_query(self, text: str) -> np.ndarray:
        """Convenience wrapper for single-query embedding."""
        return self.embed([text])[0]


class RerankerModel:
    """Scores (query, passage) pairs with a `CrossEncoder`."""

    def __init__(self, model_name: str = DEFAULT_RERANKER_MODEL, *, device: str | None = None) -> None:
        self.model_name = model_name
        self.device = device
        self._model: CrossEncoder | None = None

    def initialize(self) -> bool:
        if self._model is None:
            device = self.device or _select_device()
            self._model = CrossEncoder(self.model_name, device=device)
            logger.info("Loaded reranker model %s (device: %s)", self.model_name, device or "auto")
        return True

    def rank(
        self,
        query: str,
        documents: Sequence[str],
        *,
        top_k: int | None = None,
        return_documents: bool = False,
    ) -> List[RankResult]:
        """Return candidates sorted by descending relevance, truncated to ``top_k``."""
        if not documents:
            return []
        self.initialize()
        pairs = [(query, document) for document in documents]
        # single-label cross-encoders apply a sigmoid by default, so scores are in [0, 1]
        scores = self._model.predict(pairs, show_progress_bar=False, convert_to_numpy=True)
        results = [
            RankResult(
                corpus_id=index,
                score=float(score),
                text=documents[index] if return_documents else None,
            )
            for index, score in enumerate(np.asarray(scores, dtype="float32").reshape(-1))
        ]
        results.sort(key=lambda result: result.score, reverse=True)
        if top_k is not None:
            results = results[:top_k]
        return results
