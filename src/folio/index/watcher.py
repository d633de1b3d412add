"""Forward filesystem events from watchdog to the indexer."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from folio.index.indexer import Indexer
from folio.utils.files import is_hidden

LOGGER = logging.getLogger(__name__)


class IndexingEventHandler(FileSystemEventHandler):
    """Calls ``index_file``/``remove_file`` for file events, ignoring dotfiles.

    Errors are logged so one bad file never stops the observer thread.
    """

    def __init__(self, indexer: Indexer, root: Path) -> None:
        super().__init__()
        self.indexer = indexer
        self.root = Path(root)

    def _ignored(self, path: Path) -> bool:
        try:
            return is_hidden(path.relative_to(self.root))
        except ValueError:
            return is_hidden(path)

    def _index(self, src: str | bytes) -> None:
        path = Path(os.fsdecode(src))
        if self._ignored(path):
            return
        try:
            self.indexer.index_file(path)
        except Exception as exc:
            LOGGER.error("Error indexing %s after change event: %s", path, exc)

    def _remove(self, src: str | bytes) -> None:
        path = Path(os.fsdecode(src))
        if self._ignored(path):
            return
        try:
            self.indexer.remove_file(path)
        except Exception as exc:
            LOGGER.error("Error removing %s after delete event: %s", path, exc)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._index(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._index(event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._remove(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._remove(event.src_path)
            self._index(event.dest_path)


class FolderWatcher:
    """Watches one folder recursively and keeps the index current."""

    def __init__(self, indexer: Indexer, root: Path) -> None:
        self.root = Path(root).absolute()
        self.handler = IndexingEventHandler(indexer, self.root)
        self._observer: Optional[Observer] = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        if self._observer is not None:
            return
        observer = Observer()
        observer.schedule(self.handler, str(self.root), recursive=True)
        observer.start()
        self._observer = observer
        LOGGER.info("Watching: %s", self.root)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=2)
        self._observer = None
        LOGGER.info("File watcher stopped")
