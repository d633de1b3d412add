"""Explicit construction and lifecycle of the application's services."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from folio.config import AppConfig
from folio.crawl.crawler import Crawler, PageFetcher
from folio.crawl.queue import CrawlQueue
from folio.embedding.worker import EmbeddingService, RerankerService
from folio.index.file_index import FileIndex
from folio.index.indexer import Indexer
from folio.index.search import Searcher
from folio.index.storage import SQLiteVectorStore
from folio.index.watcher import FolderWatcher
from folio.shutdown import ShutdownController

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class FolioServices:
    """Everything a transport needs, built once and torn down once."""

    config: AppConfig
    store: SQLiteVectorStore
    embedder: EmbeddingService
    reranker: RerankerService
    file_index: FileIndex
    indexer: Indexer
    searcher: Searcher
    crawl_queue: CrawlQueue
    shutdown: ShutdownController = field(init=False)
    watcher: Optional[FolderWatcher] = None

    def __post_init__(self) -> None:
        self.shutdown = ShutdownController(self._teardown)

    def start(self) -> "FolioServices":
        """Open the store and load the file index; workers spawn on first use."""
        self.store.start()
        self.store.ensure_schema()
        self.indexer.load_file_index()
        LOGGER.info("Services ready (database: %s)", self.store.db_path)
        return self

    def watch(self, folder: Path | None = None) -> FolderWatcher:
        if self.watcher is None:
            self.watcher = FolderWatcher(self.indexer, Path(folder or self.config.knowledge_dir))
        self.watcher.start()
        return self.watcher

    def crawler(self, fetch_page: PageFetcher, *, max_pages: int = 10) -> Crawler:
        return Crawler(self.crawl_queue, self.indexer, fetch_page, max_pages=max_pages)

    def close(self) -> None:
        self.shutdown.run()

    def _teardown(self) -> None:
        if self.watcher is not None:
            self.watcher.stop()
        self.indexer.persist()
        self.store.stop()
        self.embedder.close()
        self.reranker.close()


def build_services(config: AppConfig | None = None) -> FolioServices:
    """Wire the services for ``config`` without starting anything."""
    config = config or AppConfig.from_env()
    db_path = config.resolve_db_path(Path.cwd())
    store = SQLiteVectorStore(db_path)
    embedder = EmbeddingService.from_config(config)
    reranker = RerankerService.from_config(config)
    file_index = FileIndex(Path(config.index_path))
    indexer = Indexer(embedder, store, file_index)
    return FolioServices(
        config=config,
        store=store,
        embedder=embedder,
        reranker=reranker,
        file_index=file_index,
        indexer=indexer,
        searcher=Searcher(embedder, store, reranker),
        crawl_queue=CrawlQueue(embedder, max_concurrent=config.max_concurrent),
    )
