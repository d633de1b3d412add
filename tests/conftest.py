"""Shared fixtures: a real SQLite store and a deterministic stand-in embedder."""

from __future__ import annotations

import zlib
from pathlib import Path
from typing import List

import numpy as np
import pytest

from folio.index.file_index import FileIndex
from folio.index.indexer import Indexer
from folio.index.storage import SQLiteVectorStore
from folio.utils.text import keyword_terms


class FakeEmbedder:
    """Bag-of-words vectors hashed into a fixed number of buckets."""

    dimension = 256

    def __init__(self) -> None:
        self.calls: List[object] = []
        self.closed = False

    def _vector(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimension, dtype="float32")
        for term in keyword_terms(text):
            vector[zlib.crc32(term.encode("utf-8")) % self.dimension] += 1.0
        norm = np.linalg.norm(vector)
        return vector / norm if norm else vector

    def embed(self, texts):
        self.calls.append(texts)
        if isinstance(texts, str):
            return self._vector(texts)
        items = list(texts)
        if not items:
            return np.empty((0, 0), dtype="float32")
        return np.vstack([self._vector(text) for text in items])

    def embed_query(self, text: str) -> np.ndarray:
        return self.embed(text)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def store(tmp_path: Path):
    store = SQLiteVectorStore(tmp_path / "db" / "folio.db")
    store.start()
    store.ensure_schema()
    yield store
    store.stop()


@pytest.fixture
def file_index(tmp_path: Path) -> FileIndex:
    return FileIndex(tmp_path / "data" / "folio-search-index.json")


@pytest.fixture
def indexer(fake_embedder: FakeEmbedder, store: SQLiteVectorStore, file_index: FileIndex) -> Indexer:
    return Indexer(fake_embedder, store, file_index)


@pytest.fixture
def knowledge_dir(tmp_path: Path) -> Path:
    folder = tmp_path / "knowledge"
    folder.mkdir()
    return folder
