"""SQLite document store with hybrid vector + keyword search.

Vectors are supplied by the caller and stored as float32 blobs; keyword
relevance comes from an FTS5 index kept in sync with the ``documents`` table
by triggers.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Sequence

import numpy as np

from folio.errors import StoreError
from folio.models import Document
from folio.utils.text import keyword_terms

LOGGER = logging.getLogger(__name__)

DEFAULT_ALPHA = 0.75

SCHEMA_STATEMENTS: Sequence[str] = (
    """
    CREATE TABLE documents (
        id INTEGER PRIMARY KEY,
        path TEXT NOT NULL,
        content TEXT NOT NULL,
        filename TEXT,
        extension TEXT,
        last_modified REAL NOT NULL,
        hash TEXT NOT NULL,
        vector BLOB NOT NULL
    )
    """,
    "CREATE INDEX idx_documents_path ON documents(path)",
    "CREATE TABLE store_meta (key TEXT PRIMARY KEY, value TEXT NOT NULL)",
    """
    CREATE VIRTUAL TABLE documents_fts USING fts5(
        content,
        filename,
        content='documents',
        content_rowid='id',
        tokenize='porter unicode61'
    )
    """,
    """
    CREATE TRIGGER documents_fts_insert AFTER INSERT ON documents BEGIN
        INSERT INTO documents_fts(rowid, content, filename)
        VALUES (new.id, new.content, new.filename);
    END
    """,
    """
    CREATE TRIGGER documents_fts_delete AFTER DELETE ON documents BEGIN
        INSERT INTO documents_fts(documents_fts, rowid, content, filename)
        VALUES ('delete', old.id, old.content, old.filename);
    END
    """,
)


def _min_max(scores: np.ndarray) -> np.ndarray:
    if scores.size == 0:
        return scores
    low, high = float(scores.min()), float(scores.max())
    if high == low:
        return np.ones_like(scores)
    return (scores - low) / (high - low)


class SQLiteVectorStore:
    """Persistence layer for documents and their embeddings."""

    def __init__(self, db_path: Path, *, alpha: float = DEFAULT_ALPHA) -> None:
        if not 0.0 <= alpha <= 1.0:
            raise ValueError("alpha must be between 0 and 1")
        self.db_path = Path(db_path)
        self.alpha = alpha
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def start(self) -> None:
        """Open the database file; calling it on a running store does nothing."""
        with self._lock:
            if self._conn is not None:
                return
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA journal_mode=WAL;")
                conn.execute("PRAGMA synchronous=NORMAL;")
            except (sqlite3.Error, OSError) as exc:
                raise StoreError(f"Unable to open document store at {self.db_path}: {exc}") from exc
            self._conn = conn
            LOGGER.info("Document store opened at %s", self.db_path)

    def stop(self) -> None:
        """Close the database. A second call is logged and ignored."""
        with self._lock:
            if self._conn is None:
                LOGGER.info("Document store already stopped")
                return
            self._conn.close()
            self._conn = None
            LOGGER.info("Document store stopped")

    @property
    def is_running(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("Document store is not started")
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self.connection
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def ensure_schema(self) -> None:
        """Create tables, index and triggers; parts that already exist are left alone."""
        created = 0
        with self.transaction() as conn:
            for statement in SCHEMA_STATEMENTS:
                try:
                    conn.execute(statement)
                    created += 1
                except sqlite3.OperationalError as exc:
                    if "already exists" in str(exc):
                        LOGGER.debug("Schema object already exists: %s", exc)
                        continue
                    raise StoreError(f"Error initializing document schema: {exc}") from exc
                except sqlite3.Error as exc:
                    raise StoreError(f"Error initializing document schema: {exc}") from exc
        if created:
            LOGGER.info("Schema created (%d objects)", created)
        else:
            LOGGER.info("Schema already exists")

    @property
    def dimension(self) -> int | None:
        """Vector length fixed by the first write, or None for an empty store."""
        with self._lock:
            row = self.connection.execute(
                "SELECT value FROM store_meta WHERE key = 'dimension'"
            ).fetchone()
        return int(row["value"]) if row else None

    def _check_dimension(self, conn: sqlite3.Connection, size: int) -> None:
        row = conn.execute("SELECT value FROM store_meta WHERE key = 'dimension'").fetchone()
        if row is None:
            conn.execute("INSERT INTO store_meta(key, value) VALUES ('dimension', ?)", (str(size),))
        elif int(row["value"]) != size:
            raise ValueError(
                f"Vector dimension {size} does not match store dimension {row['value']}"
            )

    def upsert(self, document: Document, vector: Sequence[float] | np.ndarray) -> None:
        """Replace every record for ``document.path`` with this one."""
        array = np.asarray(vector, dtype="float32").reshape(-1)
        if array.size == 0:
            raise ValueError("Cannot store an empty vector")

        with self.transaction() as conn:
            self._check_dimension(conn, int(array.size))
            conn.execute("DELETE FROM documents WHERE path = ?", (document.path,))
            conn.execute(
                """
                INSERT INTO documents(path, content, filename, extension, last_modified, hash, vector)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    document.path,
                    document.content,
                    document.filename,
                    document.extension,
                    document.last_modified,
                    document.hash,
                    sqlite3.Binary(array.tobytes()),
                ),
            )

    def delete_by_path(self, path: str) -> int:
        """Remove all records with exactly this path; returns how many went."""
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM documents WHERE path = ?", (path,))
        return cursor.rowcount

    def count(self, path: str | None = None) -> int:
        with self._lock:
            if path is None:
                row = self.connection.execute("SELECT COUNT(*) AS n FROM documents").fetchone()
            else:
                row = self.connection.execute(
                    "SELECT COUNT(*) AS n FROM documents WHERE path = ?", (path,)
                ).fetchone()
        return int(row["n"])

    def _keyword_scores(self, conn: sqlite3.Connection, query_text: str) -> Dict[int, float]:
        terms = keyword_terms(query_text)
        if not terms:
            return {}
        match = " OR ".join('"' + term.replace('"', '""') + '"' for term in terms)
        try:
            rows = conn.execute(
                "SELECT rowid, bm25(documents_fts) AS rank FROM documents_fts WHERE documents_fts MATCH ?",
                (match,),
            ).fetchall()
        except sqlite3.OperationalError as exc:
            LOGGER.warning("Keyword search failed for %r: %s", query_text, exc)
            return {}
        # bm25() is lower-is-better
        return {int(row["rowid"]): -float(row["rank"]) for row in rows}

    def hybrid_search(
        self,
        query_text: str,
        query_vector: Sequence[float] | np.ndarray,
        limit: int = 10,
    ) -> List[Dict[str, Any]]:
        """Rank documents by a blend of vector similarity and keyword relevance.

        Both score sets are min-max normalized (relative score fusion) and
        combined as ``alpha * vector + (1 - alpha) * keyword``; documents that
        do not match any keyword get 0 on the keyword side.
        """
        query = np.asarray(query_vector, dtype="float32").reshape(-1)
        with self._lock:
            conn = self.connection
            rows = conn.execute(
                """
                SELECT id, path, content, filename, extension, last_modified, hash, vector
                FROM documents
                """
            ).fetchall()
            if not rows or limit <= 0:
                return []
            keyword = self._keyword_scores(conn, query_text)

        matrix = np.vstack([np.frombuffer(row["vector"], dtype="float32") for row in rows])
        if matrix.shape[1] != query.shape[0]:
            raise ValueError(
                f"Query vector dimension {query.shape[0]} does not match store dimension {matrix.shape[1]}"
            )
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        norms[norms == 0] = 1.0
        vector_scores = (matrix @ query) / norms

        keyword_scores = np.zeros(len(rows), dtype="float32")
        matched = [index for index, row in enumerate(rows) if row["id"] in keyword]
        if matched:
            raw = np.array([keyword[rows[index]["id"]] for index in matched], dtype="float32")
            keyword_scores[matched] = _min_max(raw)

        fused = self.alpha * _min_max(vector_scores) + (1.0 - self.alpha) * keyword_scores
        order = np.argsort(-fused, kind="stable")[:limit]

        results: List[Dict[str, Any]] = []
        for idx in order:
            row = rows[idx]
            results.append(
                {
                    "path": row["path"],
                    "content": row["content"],
                    "filename": row["filename"],
                    "extension": row["extension"],
                    "last_modified": row["last_modified"],
                    "hash": row["hash"],
                    "score": float(fused[idx]),
                    "vector_score": float(vector_scores[idx]),
                    "keyword_score": float(keyword_scores[idx]),
                }
            )
        return results

    def list_documents(self) -> List[Dict[str, Any]]:
        """List every stored document without its content or vector."""
        with self._lock:
            rows = self.connection.execute(
                """
                SELECT id, path, filename, extension, last_modified, hash, LENGTH(content) AS size
                FROM documents
                ORDER BY path
                """
            ).fetchall()
        return [dict(row) for row in rows]

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            row = self.connection.execute(
                "SELECT COUNT(*) AS n, COALESCE(SUM(LENGTH(content)), 0) AS chars FROM documents"
            ).fetchone()
        return {
            "document_count": int(row["n"]),
            "total_content_chars": int(row["chars"]),
            "dimension": self.dimension,
        }
