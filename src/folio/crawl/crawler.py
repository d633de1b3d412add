"""Drain loop that scrapes queued pages into the index.

Fetching and HTML-to-markdown conversion belong to the caller, who passes a
``fetch_page(url) -> ScrapedPage | None`` callable. Pages are scraped one at a
time with a fixed pause in between.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional
from urllib.parse import quote_plus

from folio.crawl.links import DEFAULT_BLOCKED_DOMAINS, extract_links, page_title
from folio.crawl.queue import CrawlQueue
from folio.index.indexer import Indexer

LOGGER = logging.getLogger(__name__)

SEARCH_URL = "https://html.duckduckgo.com/html/?q={query}"


@dataclass(slots=True)
class ScrapedPage:
    url: str
    content: str
    title: str


PageFetcher = Callable[[str], Optional[ScrapedPage]]


@dataclass(slots=True)
class CrawlStats:
    indexed: int = 0
    failed: int = 0
    visited: List[str] = field(default_factory=list)


class Crawler:
    """Seeds a ``CrawlQueue`` from a results page and indexes the best pages first."""

    def __init__(
        self,
        queue: CrawlQueue,
        indexer: Indexer,
        fetch_page: PageFetcher,
        *,
        max_pages: int = 10,
        delay: float = 0.1,
        blocked_domains: Iterable[str] = DEFAULT_BLOCKED_DOMAINS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.queue = queue
        self.indexer = indexer
        self.fetch_page = fetch_page
        self.max_pages = max_pages
        self.delay = delay
        self.blocked_domains = frozenset(blocked_domains)
        self._sleep = sleep

    def _enqueue_links(self, page: ScrapedPage) -> int:
        added = 0
        for link in extract_links(page.content, self.blocked_domains):
            if self.queue.add_to_queue(link.url, link.title, link.title):
                added += 1
        return added

    def crawl(self, query: str, seed_url: str | None = None) -> CrawlStats:
        """Scrape and index up to ``max_pages`` pages reachable from ``seed_url``.

        The seed (by default a web search for ``query``) only supplies links
        and is not indexed itself. The queue is cleared when the crawl ends.
        """
        stats = CrawlStats()
        seed_url = seed_url or SEARCH_URL.format(query=quote_plus(query))
        try:
            self.queue.set_current_query(query)
            seed = self.fetch_page(seed_url)
            if seed is None:
                LOGGER.warning("Nothing fetched from seed %s", seed_url)
                return stats
            LOGGER.info("Queued %d links from %s", self._enqueue_links(seed), seed_url)

            while self.queue.has_more() and len(stats.visited) < self.max_pages:
                item = self.queue.get_next()
                if item is not None:
                    stats.visited.append(item.url)
                    try:
                        page = self.fetch_page(item.url)
                        if page is not None:
                            title = page.title.strip() or page_title(page.url)
                            self.indexer.index_url(page.url, page.content, title)
                            stats.indexed += 1
                            self._enqueue_links(page)
                    except Exception as exc:
                        LOGGER.error("Failed to scrape %s: %s", item.url, exc)
                        stats.failed += 1
                    finally:
                        self.queue.mark_complete(item.url)
                self._sleep(self.delay)
        finally:
            self.queue.clear()
        return stats
