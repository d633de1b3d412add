"""Tests for SQLiteVectorStore."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

import numpy as np
import pytest

from folio.errors import StoreError
from folio.index.storage import SQLiteVectorStore
from folio.models import Document


def _doc(path: str, content: str, digest: str = "h1") -> Document:
    return Document(
        path=path,
        content=content,
        filename=Path(path).stem,
        extension=Path(path).suffix[1:],
        last_modified=1_700_000_000_000.0,
        hash=digest,
    )


def _unit(*values: float) -> np.ndarray:
    vector = np.array(values, dtype="float32")
    return vector / np.linalg.norm(vector)


class TestLifecycle:
    """Opening, closing and schema creation."""

    def test_start_creates_database(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "folio.db"
        store = SQLiteVectorStore(db_path)
        assert not store.is_running

        store.start()
        try:
            assert db_path.exists()
            assert store.is_running
        finally:
            store.stop()

    def test_stop_twice_is_logged_noop(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        store = SQLiteVectorStore(tmp_path / "folio.db")
        store.start()
        store.stop()
        with caplog.at_level(logging.INFO):
            store.stop()
        assert "already stopped" in caplog.text
        assert not store.is_running

    def test_connection_requires_start(self, tmp_path: Path) -> None:
        with pytest.raises(StoreError):
            SQLiteVectorStore(tmp_path / "folio.db").connection

    def test_start_failure_raises_store_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(StoreError):
            SQLiteVectorStore(blocker / "folio.db").start()

    def test_invalid_alpha(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            SQLiteVectorStore(tmp_path / "folio.db", alpha=1.5)

    def test_schema_objects_exist(self, store: SQLiteVectorStore) -> None:
        names = {
            row["name"]
            for row in store.connection.execute("SELECT name FROM sqlite_master").fetchall()
        }
        assert {"documents", "documents_fts", "store_meta", "idx_documents_path"} <= names

    def test_ensure_schema_is_idempotent(self, store: SQLiteVectorStore, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO):
            store.ensure_schema()
            store.ensure_schema()
        assert "Schema already exists" in caplog.text

    def test_ensure_schema_other_errors_raise(self, tmp_path: Path) -> None:
        store = SQLiteVectorStore(tmp_path / "folio.db")
        store.start()
        try:
            store.connection.execute("CREATE VIEW documents AS SELECT 1 AS id")
            store.connection.commit()
            with pytest.raises(StoreError):
                store.ensure_schema()
        finally:
            store.stop()


class TestWrites:
    """Upserts, deletes and the dimension guard."""

    def test_upsert_replaces_existing_path(self, store: SQLiteVectorStore) -> None:
        store.upsert(_doc("/a.txt", "first", "h1"), _unit(1, 0, 0))
        store.upsert(_doc("/a.txt", "second", "h2"), _unit(0, 1, 0))

        assert store.count() == 1
        assert store.count("/a.txt") == 1
        row = store.connection.execute("SELECT content, hash FROM documents").fetchone()
        assert (row["content"], row["hash"]) == ("second", "h2")

    def test_upsert_records_dimension(self, store: SQLiteVectorStore) -> None:
        assert store.dimension is None
        store.upsert(_doc("/a.txt", "x"), _unit(1, 0, 0))
        assert store.dimension == 3

    def test_dimension_mismatch_rejected(self, store: SQLiteVectorStore) -> None:
        store.upsert(_doc("/a.txt", "x"), _unit(1, 0, 0))
        with pytest.raises(ValueError):
            store.upsert(_doc("/b.txt", "y"), _unit(1, 0))
        assert store.count() == 1

    def test_empty_vector_rejected(self, store: SQLiteVectorStore) -> None:
        with pytest.raises(ValueError):
            store.upsert(_doc("/a.txt", "x"), [])

    def test_delete_by_path_returns_count(self, store: SQLiteVectorStore) -> None:
        store.upsert(_doc("/a.txt", "x"), _unit(1, 0))
        store.upsert(_doc("/b.txt", "y"), _unit(0, 1))

        assert store.delete_by_path("/a.txt") == 1
        assert store.delete_by_path("/a.txt") == 0
        assert store.count() == 1

    def test_delete_keeps_keyword_index_in_sync(self, store: SQLiteVectorStore) -> None:
        store.upsert(_doc("/a.txt", "zebra stripes"), _unit(1, 0))
        store.delete_by_path("/a.txt")
        rows = store.connection.execute(
            "SELECT rowid FROM documents_fts WHERE documents_fts MATCH 'zebra'"
        ).fetchall()
        assert rows == []


class TestHybridSearch:
    """Relative score fusion of cosine and BM25."""

    def test_empty_store(self, store: SQLiteVectorStore) -> None:
        assert store.hybrid_search("anything", _unit(1, 0)) == []

    def test_vector_similarity_orders_results(self, store: SQLiteVectorStore) -> None:
        store.upsert(_doc("/near.txt", "alpha"), _unit(1, 0.1))
        store.upsert(_doc("/far.txt", "beta"), _unit(0, 1))

        results = store.hybrid_search("", _unit(1, 0))

        assert [hit["path"] for hit in results] == ["/near.txt", "/far.txt"]
        assert results[0]["score"] >= results[1]["score"]

    def test_keyword_match_breaks_vector_tie(self, store: SQLiteVectorStore) -> None:
        store.upsert(_doc("/plain.txt", "nothing relevant here"), _unit(1, 1))
        store.upsert(_doc("/match.txt", "the quarterly budget report"), _unit(1, 1))

        results = store.hybrid_search("budget", _unit(1, 1))

        assert results[0]["path"] == "/match.txt"
        assert results[0]["keyword_score"] == pytest.approx(1.0)
        assert results[1]["keyword_score"] == 0.0

    def test_result_fields(self, store: SQLiteVectorStore) -> None:
        store.upsert(_doc("/notes/a.md", "hello world"), _unit(1, 0))
        hit = store.hybrid_search("hello", _unit(1, 0))[0]

        assert hit["path"] == "/notes/a.md"
        assert hit["content"] == "hello world"
        assert hit["filename"] == "a"
        assert hit["extension"] == "md"
        assert hit["last_modified"] == 1_700_000_000_000.0
        assert 0.0 <= hit["score"] <= 1.0

    def test_limit(self, store: SQLiteVectorStore) -> None:
        for index in range(5):
            store.upsert(_doc(f"/{index}.txt", f"doc {index}"), _unit(1, index))
        assert len(store.hybrid_search("doc", _unit(1, 0), limit=2)) == 2

    def test_query_with_fts_syntax_is_safe(self, store: SQLiteVectorStore) -> None:
        store.upsert(_doc("/a.txt", "c++ and \"quotes\""), _unit(1, 0))
        assert len(store.hybrid_search('c++ "quotes" AND OR NEAR(', _unit(1, 0))) == 1

    def test_query_dimension_mismatch(self, store: SQLiteVectorStore) -> None:
        store.upsert(_doc("/a.txt", "x"), _unit(1, 0, 0))
        with pytest.raises(ValueError):
            store.hybrid_search("x", _unit(1, 0))


class TestInspection:
    """Listing and statistics."""

    def test_list_documents_and_stats(self, store: SQLiteVectorStore) -> None:
        store.upsert(_doc("/b.txt", "bbbb"), _unit(1, 0))
        store.upsert(_doc("/a.txt", "aa"), _unit(0, 1))

        documents = store.list_documents()
        stats = store.get_stats()

        assert [doc["path"] for doc in documents] == ["/a.txt", "/b.txt"]
        assert documents[0]["size"] == 2
        assert "vector" not in documents[0]
        assert stats == {"document_count": 2, "total_content_chars": 6, "dimension": 2}

    def test_data_survives_restart(self, tmp_path: Path) -> None:
        db_path = tmp_path / "folio.db"
        store = SQLiteVectorStore(db_path)
        store.start()
        store.ensure_schema()
        store.upsert(_doc("/a.txt", "persisted"), _unit(1, 0))
        store.stop()

        reopened = SQLiteVectorStore(db_path)
        reopened.start()
        try:
            reopened.ensure_schema()
            assert reopened.count() == 1
            assert reopened.dimension == 2
        finally:
            reopened.stop()
