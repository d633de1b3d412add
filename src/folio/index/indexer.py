"""Incremental, content-addressed indexing of files and web pages."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Set, Tuple, Union

from folio.embedding.worker import EmbeddingService
from folio.index.file_index import FileIndex
from folio.index.storage import SQLiteVectorStore
from folio.ingestion.reader import read_content
from folio.models import Document
from folio.utils.files import compute_sha256, hash_bytes, is_under

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]
Reader = Callable[[Path], str]

URL_EXTENSION = "md"


@dataclass(slots=True)
class IndexStats:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    removed: int = 0
    processed_files: list[Path] = field(default_factory=list)

    def increment(self, status: str, path: Path) -> None:
        if status == "inserted":
            self.inserted += 1
        elif status == "updated":
            self.updated += 1
        elif status == "skipped":
            self.skipped += 1
        else:
            self.failed += 1
        self.processed_files.append(path)


def _key(path: Union[str, Path]) -> str:
    if isinstance(path, str) and "://" in path:
        return path
    return str(Path(path).absolute())


class Indexer:
    """Keeps the document store in step with files on disk and captured pages.

    Every mutation runs under one re-entrant lock, so file-watcher events and
    directory scans never interleave inside a single file operation. The
    store write always happens before the file index is updated; a crash in
    between leaves a stale hash that the next pass repairs by re-indexing.
    """

    def __init__(
        self,
        embedder: EmbeddingService,
        store: SQLiteVectorStore,
        file_index: FileIndex,
        *,
        reader: Reader = read_content,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.file_index = file_index
        self.reader = reader
        self._lock = threading.RLock()

    def load_file_index(self) -> None:
        with self._lock:
            self.file_index.load()

    def persist(self) -> bool:
        """Write the file index; failures are logged and the in-memory index kept."""
        with self._lock:
            try:
                self.file_index.save()
            except OSError as exc:
                LOGGER.error("Error persisting file index to %s: %s", self.file_index.index_path, exc)
                return False
        LOGGER.debug("File index persisted (%d entries)", len(self.file_index))
        return True

    def index_directory(
        self, directory: Path, *, progress_callback: Optional[ProgressCallback] = None
    ) -> IndexStats:
        """Index every file below ``directory`` and drop records for files that disappeared.

        Failing to list ``directory`` itself raises; problems with individual
        entries are logged and counted as failures.
        """
        stats = IndexStats()
        self._index_tree(Path(directory).absolute(), stats, progress_callback)
        return stats

    def _index_tree(
        self,
        directory: Path,
        stats: IndexStats,
        progress_callback: Optional[ProgressCallback],
    ) -> Tuple[Set[str], List[Path]]:
        """Index one level and return the paths seen and the directories that failed to list."""
        entries = [entry for entry in sorted(directory.iterdir()) if not entry.name.startswith(".")]
        seen: Set[str] = set()
        unlisted: List[Path] = []
        total = len(entries)

        for position, entry in enumerate(entries, start=1):
            if entry.is_dir():
                if entry.is_symlink():
                    LOGGER.debug("Skipping symlinked directory %s", entry)
                    continue
                try:
                    child_seen, child_unlisted = self._index_tree(entry, stats, progress_callback)
                    seen |= child_seen
                    unlisted.extend(child_unlisted)
                except Exception as exc:
                    LOGGER.error("Error indexing directory %s: %s", entry, exc)
                    unlisted.append(entry)
                    stats.increment("failed", entry)
                continue

            try:
                if not entry.is_file():
                    continue
                seen.add(str(entry))
                stats.increment(self.index_file(entry), entry)
            except Exception as exc:
                LOGGER.error("Error processing entry %s: %s", entry, exc)
                stats.increment("failed", entry)

            if progress_callback is not None:
                progress_callback(position / total * 100, f"Indexing {entry.name}")

        stats.removed += self._remove_missing(directory, seen, unlisted)
        return seen, unlisted

    def _remove_missing(self, directory: Path, seen: Set[str], unlisted: List[Path]) -> int:
        with self._lock:
            stale = [
                path
                for path in self.file_index.paths_under(directory)
                if path not in seen and not any(is_under(path, skipped) for skipped in unlisted)
            ]
        removed = 0
        for path in stale:
            try:
                self.remove_file(path)
                removed += 1
            except Exception as exc:
                LOGGER.error("Error removing stale entry %s: %s", path, exc)
        return removed

    def index_file(self, path: Path) -> str:
        """Index one file if its bytes changed.

        Returns "inserted", "updated" or "skipped"; any failure propagates.
        """
        path = Path(path).absolute()
        key = str(path)
        with self._lock:
            current_hash = compute_sha256(path)
            previous_hash = self.file_index.get(key)

            if previous_hash == current_hash:
                LOGGER.info("File %s is unchanged. Skipping indexing.", key)
                return "skipped"

            if previous_hash is not None:
                self.store.delete_by_path(key)

            content = self.reader(path)
            if not content.strip():
                LOGGER.info("No text extracted from %s", key)
                if previous_hash is not None:
                    self.file_index.discard(key)
                    self.persist()
                return "skipped"

            document = Document(
                path=key,
                content=content,
                filename=path.stem,
                extension=path.suffix[1:],
                last_modified=path.stat().st_mtime * 1000,
                hash=current_hash,
            )
            self.store.upsert(document, self.embedder.embed(content))
            self.file_index.set(key, current_hash)
            self.persist()

        LOGGER.info("Indexed file: %s", key)
        return "updated" if previous_hash is not None else "inserted"

    def index_url(self, url: str, content: str, title: str) -> str:
        """Index a captured web page whose markdown content is supplied directly."""
        with self._lock:
            digest = hash_bytes(content.encode("utf-8"))
            previous_hash = self.file_index.get(url)

            if previous_hash == digest:
                LOGGER.info("URL %s is unchanged. Skipping indexing.", url)
                return "skipped"
            if not content.strip():
                LOGGER.info("Empty content for %s, skipping", url)
                if previous_hash is not None:
                    self.store.delete_by_path(url)
                    self.file_index.discard(url)
                    self.persist()
                return "skipped"

            document = Document(
                path=url,
                content=content,
                filename=title,
                extension=URL_EXTENSION,
                last_modified=time.time() * 1000,
                hash=digest,
            )
            self.store.upsert(document, self.embedder.embed(content))
            self.file_index.set(url, digest)
            self.persist()

        LOGGER.info("Indexed URL: %s", url)
        return "updated" if previous_hash is not None else "inserted"

    def remove_file(self, path: Union[str, Path]) -> int:
        """Delete the store records and file-index entry for a path or URL."""
        key = _key(path)
        with self._lock:
            deleted = self.store.delete_by_path(key)
            self.file_index.discard(key)
            self.persist()
        LOGGER.info("Removed from index: %s", key)
        return deleted
